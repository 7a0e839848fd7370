"""Tests for the SQLAlchemy storage backends on an in-memory SQLite database."""

from datetime import datetime

import pytest

pytest.importorskip("sqlalchemy")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tiered_memory.errors import NotFoundError, VersionConflictError  # noqa: E402
from tiered_memory.models import (  # noqa: E402
    AuditEntry,
    CategorySummary,
    EntityFact,
    EntityLink,
    RecurrencePattern,
    SentimentReading,
    build_payload,
)
from tiered_memory.storage.audit.sqlalchemy import SQLAlchemyAuditStore  # noqa: E402
from tiered_memory.storage.records.sqlalchemy import SQLAlchemyRecordStore  # noqa: E402
from tiered_memory.storage.summaries.sqlalchemy import SQLAlchemySummaryStore  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield engine
    engine.dispose()


@pytest.fixture
def sql_records(engine):
    store = SQLAlchemyRecordStore(engine)
    store.create_tables()
    return store


@pytest.fixture
def sql_summaries(engine):
    store = SQLAlchemySummaryStore(engine)
    store.create_tables()
    return store


@pytest.fixture
def sql_audit(engine):
    store = SQLAlchemyAuditStore(engine)
    store.create_tables()
    return store


def test_record_round_trip_keeps_payload(sql_records, make_record, owner_id):
    record = make_record(
        name="Yoga",
        summary="Yoga every Tuesday",
        payload=build_payload("event", recurrence_pattern=RecurrencePattern(frequency="weekly")),
        context_notes=["Started in March"],
        embedding=[0.1, 0.2, 0.3],
    )
    sql_records.add_record(record)

    fetched = sql_records.get_record(owner_id, record.id)

    assert fetched.memory_type == "event"
    assert fetched.recurrence_pattern.frequency == "weekly"
    assert fetched.context_notes == ["Started in March"]
    assert fetched.embedding == [0.1, 0.2, 0.3]
    assert sql_records.get_record("other", record.id) is None


def test_update_with_version_check(sql_records, make_record, owner_id):
    record = sql_records.add_record(make_record())

    updated = sql_records.update_record(
        owner_id, record.id, {"summary": "Moved to York", "version": 2}, expected_version=1
    )
    assert updated.version == 2

    with pytest.raises(VersionConflictError):
        sql_records.update_record(owner_id, record.id, {"summary": "stale"}, expected_version=1)

    assert sql_records.get_record(owner_id, record.id).summary == "Moved to York"


def test_update_missing_record(sql_records, owner_id):
    with pytest.raises(NotFoundError):
        sql_records.update_record(owner_id, "missing", {"summary": "x"})


def test_supersede_and_merge(sql_records, make_record, owner_id):
    old = sql_records.add_record(make_record(name="Job", summary="Works at Google"))
    retired, new = sql_records.supersede_record(
        owner_id, old.id, 1, make_record(name="Job", summary="Works at Notion")
    )

    assert retired.is_historical and retired.superseded_by == new.id
    assert new.supersedes_id == old.id and new.version == 2

    other = sql_records.add_record(make_record(name="Job", summary="Employed by Notion"))
    keeper, merged = sql_records.merge_records(
        owner_id, new.id, 2, {"mention_count": 2, "version": 3}, other.id, 1
    )

    assert keeper.version == 3
    assert merged.status == "archived"
    assert merged.superseded_by == new.id
    assert [r.id for r in sql_records.list_active_records(owner_id)] == [new.id]


def test_find_similar_and_by_name(sql_records, make_record, owner_id):
    sql_records.add_record(make_record(name="Sarah Jones", embedding=[1.0, 0.0, 0.0]))
    sql_records.add_record(make_record(name="Tom", embedding=[0.0, 1.0, 0.0]))

    similar = sql_records.find_similar(owner_id, [1.0, 0.05, 0.0], threshold=0.5)

    assert [r.name for r, _ in similar] == ["Sarah Jones"]
    assert [r.name for r in sql_records.find_by_name(owner_id, "sarah")] == ["Sarah Jones"]


def test_graph_facts_and_sentiment(sql_records, make_record, owner_id):
    sarah = sql_records.add_record(make_record(name="Sarah"))
    tom = sql_records.add_record(make_record(name="Tom"))
    sql_records.add_link(
        EntityLink(owner_id=owner_id, source_id=sarah.id, target_id=tom.id,
                   relationship_type="married_to", strength=0.8)
    )

    paths = sql_records.traverse_graph(owner_id, tom.id)
    assert [(p.name, p.relationship_types) for p in paths] == [("Sarah", ["married_to"])]

    fact = sql_records.add_fact(
        EntityFact(owner_id=owner_id, subject_id=sarah.id, predicate="works_at",
                   object_text="Notion")
    )
    assert sql_records.find_fact(owner_id, sarah.id, "works_at", "NOTION").id == fact.id
    assert sql_records.update_fact_confidence(owner_id, fact.id, 0.95).confidence == 0.95

    for value in (0.2, -0.4, 0.6):
        sql_records.add_sentiment(
            SentimentReading(owner_id=owner_id, record_id=sarah.id, sentiment=value)
        )
    assert sql_records.recent_sentiments(owner_id, sarah.id, limit=2) == [0.6, -0.4]

    assert sql_records.clear_owner(owner_id) == 2
    assert sql_records.get_facts(owner_id, sarah.id) == []


def test_summary_store(sql_summaries, owner_id):
    sql_summaries.upsert_summary(
        CategorySummary(owner_id=owner_id, category="work_life", summary="Works at Google",
                        last_records=["Job"])
    )
    sql_summaries.upsert_summary(
        CategorySummary(owner_id=owner_id, category="work_life", summary="Works at Notion",
                        entity_count=2)
    )
    sql_summaries.upsert_summary(
        CategorySummary(owner_id=owner_id, category="health", summary="Runs twice a week")
    )

    work = sql_summaries.get_summary(owner_id, "work_life")
    assert work.summary == "Works at Notion"
    assert work.entity_count == 2
    assert len(sql_summaries.list_summaries(owner_id)) == 2
    assert [s.category for s in sql_summaries.list_summaries(owner_id, ["health"])] == ["health"]


def test_audit_store(sql_audit, owner_id):
    sql_audit.append(AuditEntry(owner_id=owner_id, operation="ADD", record_id="r1"))
    sql_audit.append(
        AuditEntry(owner_id=owner_id, operation="CONSOLIDATE", record_id="r2",
                   merged_record_ids=["r1"], deleted_snapshot={"name": "x"})
    )

    entries = sql_audit.list_entries(owner_id, record_id="r1")

    assert [e.operation for e in entries] == ["CONSOLIDATE", "ADD"]
    assert entries[0].merged_record_ids == ["r1"]
    assert sql_audit.count(owner_id, operation="ADD") == 1


def test_find_similar_follows_lifecycle(sql_records, make_record, owner_id):
    old = sql_records.add_record(make_record(name="Job", summary="Works at Google", embedding=[1.0, 0.0, 0.0]))
    _, new = sql_records.supersede_record(
        owner_id, old.id, 1, make_record(name="Job", summary="Works at Notion", embedding=[1.0, 0.1, 0.0])
    )
    gone = sql_records.add_record(make_record(name="Gym", embedding=[0.9, 0.0, 0.1]))
    sql_records.delete_record(owner_id, gone.id)
    sql_records.add_record(make_record(name="Job", owner_id="someone_else", embedding=[1.0, 0.0, 0.0]))

    similar = sql_records.find_similar(owner_id, [1.0, 0.0, 0.0], threshold=0.5)

    assert [r.id for r, _ in similar] == [new.id]


def test_new_store_reloads_index_from_database(engine, sql_records, make_record, owner_id):
    record = sql_records.add_record(make_record(name="Sarah", embedding=[0.0, 1.0, 0.0]))

    reopened = SQLAlchemyRecordStore(engine)
    similar = reopened.find_similar(owner_id, [0.0, 1.0, 0.0], threshold=0.9)

    assert [(r.id, round(score, 3)) for r, score in similar] == [(record.id, 1.0)]


def test_find_similar_applies_record_filter(sql_records, make_record, owner_id):
    sql_records.add_record(
        make_record(name="Concert", embedding=[1.0, 0.0, 0.0], expires_at=datetime(2000, 1, 1))
    )
    current = sql_records.add_record(make_record(name="Concert tickets", embedding=[1.0, 0.0, 0.0]))

    similar = sql_records.find_similar(owner_id, [1.0, 0.0, 0.0], threshold=0.5)

    assert [r.id for r, _ in similar] == [current.id]


def test_hard_delete_cascades(sql_records, make_record, owner_id):
    sarah = sql_records.add_record(make_record(name="Sarah"))
    tom = sql_records.add_record(make_record(name="Tom"))
    sql_records.add_fact(
        EntityFact(owner_id=owner_id, subject_id=sarah.id, predicate="diagnosed_with",
                   object_text="panic disorder")
    )
    sql_records.add_fact(
        EntityFact(owner_id=owner_id, subject_id=tom.id, predicate="married_to",
                   object_text="Sarah", object_record_id=sarah.id)
    )
    sql_records.add_link(
        EntityLink(owner_id=owner_id, source_id=tom.id, target_id=sarah.id,
                   relationship_type="married_to", strength=0.8)
    )
    sql_records.add_sentiment(SentimentReading(owner_id=owner_id, record_id=sarah.id, sentiment=0.4))

    assert sql_records.delete_record(owner_id, sarah.id)

    assert sql_records.get_facts(owner_id, sarah.id) == []
    assert sql_records.recent_sentiments(owner_id, sarah.id) == []
    assert sql_records.traverse_graph(owner_id, tom.id) == []
    assert sql_records.get_facts(owner_id, tom.id)[0].object_record_id is None
    assert not sql_records.delete_record(owner_id, sarah.id)

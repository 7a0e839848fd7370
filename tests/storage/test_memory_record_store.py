"""
Unit tests for in-memory record storage.

Tests CRUD, version checks, supersede and merge, similarity search, graph
traversal, structured facts and sentiment readings.
"""

from datetime import datetime, timedelta

import pytest

from tiered_memory.errors import NotFoundError, ValidationError, VersionConflictError
from tiered_memory.models import EntityFact, EntityLink, RecordQueryFilter, SentimentReading


def test_add_and_get_record(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())

    fetched = record_store.get_record(owner_id, record.id)

    assert fetched is not None
    assert fetched.name == "Sarah"
    assert fetched.version == 1


def test_get_record_other_owner_is_missing(record_store, make_record):
    record = record_store.add_record(make_record())

    assert record_store.get_record("someone_else", record.id) is None
    assert record_store.get_records("someone_else", [record.id]) == []


def test_returned_records_are_copies(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())
    fetched = record_store.get_record(owner_id, record.id)

    fetched.summary = "mutated"

    assert record_store.get_record(owner_id, record.id).summary == "Sister who lives in Leeds"


def test_update_record_with_version(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())

    updated = record_store.update_record(
        owner_id, record.id, {"summary": "Sister who moved to York", "version": 2}, expected_version=1
    )

    assert updated.summary == "Sister who moved to York"
    assert updated.version == 2
    assert updated.updated_at >= record.updated_at


def test_update_record_version_conflict(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())
    record_store.update_record(owner_id, record.id, {"version": 2}, expected_version=1)

    with pytest.raises(VersionConflictError) as exc_info:
        record_store.update_record(owner_id, record.id, {"summary": "late"}, expected_version=1)

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2


def test_update_record_rejects_immutable_and_unknown_fields(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())

    with pytest.raises(ValidationError):
        record_store.update_record(owner_id, record.id, {"owner_id": "thief"})
    with pytest.raises(ValidationError):
        record_store.update_record(owner_id, record.id, {"colour": "blue"})


def test_update_missing_record(record_store, owner_id):
    with pytest.raises(NotFoundError):
        record_store.update_record(owner_id, "missing", {"summary": "x"})


def test_supersede_record(record_store, make_record, owner_id):
    old = record_store.add_record(make_record(name="Job", summary="Works at Google"))
    successor = make_record(name="Job", summary="Works at Notion")

    retired, new = record_store.supersede_record(owner_id, old.id, 1, successor)

    assert retired.is_historical
    assert retired.status == "superseded"
    assert retired.superseded_by == new.id
    assert new.supersedes_id == old.id
    assert new.version == 2
    assert new.is_active
    assert [r.id for r in record_store.list_active_records(owner_id)] == [new.id]


def test_supersede_record_version_conflict(record_store, make_record, owner_id):
    old = record_store.add_record(make_record())

    with pytest.raises(VersionConflictError):
        record_store.supersede_record(owner_id, old.id, 5, make_record())

    assert record_store.get_record(owner_id, old.id).is_active


def test_merge_records(record_store, make_record, owner_id):
    keeper = record_store.add_record(make_record(summary="Loves coffee"))
    merged = record_store.add_record(make_record(summary="Drinks a lot of coffee"))

    new_keeper, archived = record_store.merge_records(
        owner_id, keeper.id, 1, {"summary": "Loves coffee and drinks a lot", "version": 2},
        merged.id, 1,
    )

    assert new_keeper.summary == "Loves coffee and drinks a lot"
    assert archived.status == "archived"
    assert archived.superseded_by == keeper.id


def test_delete_record(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())

    assert record_store.delete_record(owner_id, record.id) is True
    assert record_store.delete_record(owner_id, record.id) is False
    assert record_store.get_record(owner_id, record.id) is None


def test_top_records_ordering(record_store, make_record, owner_id):
    record_store.add_record(make_record(name="a", importance_score=0.5, mention_count=9))
    record_store.add_record(make_record(name="b", importance_score=1.0, mention_count=1))
    record_store.add_record(make_record(name="c", importance_score=0.5, mention_count=2))
    record_store.add_record(make_record(name="d", importance_score=1.0, status="archived"))

    names = [r.name for r in record_store.top_records(owner_id, limit=10)]

    assert names == ["b", "a", "c"]


def test_find_by_name_substring(record_store, make_record, owner_id):
    record_store.add_record(make_record(name="Sarah Jones"))
    record_store.add_record(make_record(name="Tom"))

    matches = record_store.find_by_name(owner_id, "sarah")

    assert [r.name for r in matches] == ["Sarah Jones"]
    assert record_store.find_by_name(owner_id, "  ") == []


def test_find_similar(record_store, make_record, owner_id):
    close = record_store.add_record(make_record(name="close", embedding=[1.0, 0.0, 0.0]))
    record_store.add_record(make_record(name="far", embedding=[0.0, 1.0, 0.0]))
    record_store.add_record(make_record(name="other_dim", embedding=[1.0, 0.0]))
    record_store.add_record(make_record(name="no_embedding"))

    results = record_store.find_similar(owner_id, [0.9, 0.1, 0.0], threshold=0.5)

    assert [(r.id, round(s, 2)) for r, s in results] == [(close.id, 0.99)]


def test_find_similar_applies_filter(record_store, make_record, owner_id):
    now = datetime.now()
    record_store.add_record(
        make_record(name="expired", embedding=[1.0, 0.0, 0.0], expires_at=now - timedelta(days=1))
    )
    record_store.add_record(
        make_record(name="planned", embedding=[1.0, 0.0, 0.0], effective_from=now + timedelta(days=3))
    )

    assert record_store.find_similar(owner_id, [1.0, 0.0, 0.0]) == []

    results = record_store.find_similar(
        owner_id, [1.0, 0.0, 0.0], query_filter=RecordQueryFilter(hide_future=False)
    )
    assert [r.name for r, _ in results] == ["planned"]


def test_links_and_traversal(record_store, make_record, owner_id):
    sarah = record_store.add_record(make_record(name="Sarah"))
    tom = record_store.add_record(make_record(name="Tom"))
    rex = record_store.add_record(make_record(name="Rex"))

    record_store.add_link(
        EntityLink(owner_id=owner_id, source_id=sarah.id, target_id=tom.id,
                   relationship_type="married_to", strength=0.8)
    )
    record_store.add_link(
        EntityLink(owner_id=owner_id, source_id=tom.id, target_id=rex.id,
                   relationship_type="owns", strength=0.5)
    )

    paths = record_store.traverse_graph(owner_id, sarah.id, max_depth=2)

    assert [(p.name, p.depth) for p in paths] == [("Tom", 1), ("Rex", 2)]
    assert paths[1].relationship_path == ["Sarah", "Tom", "Rex"]
    assert paths[1].total_strength == pytest.approx(0.4)


def test_add_link_requires_owned_records(record_store, make_record, owner_id):
    sarah = record_store.add_record(make_record(name="Sarah"))

    with pytest.raises(NotFoundError):
        record_store.add_link(
            EntityLink(owner_id=owner_id, source_id=sarah.id, target_id="missing",
                       relationship_type="knows")
        )


def test_facts(record_store, make_record, owner_id):
    sarah = record_store.add_record(make_record(name="Sarah"))
    fact = record_store.add_fact(
        EntityFact(owner_id=owner_id, subject_id=sarah.id, predicate="works_at",
                   object_text="Notion", confidence=0.6)
    )

    found = record_store.find_fact(owner_id, sarah.id, "WORKS_AT", "notion")
    assert found.id == fact.id

    updated = record_store.update_fact_confidence(owner_id, fact.id, 0.9)
    assert updated.confidence == 0.9
    assert [f.confidence for f in record_store.get_facts(owner_id, sarah.id)] == [0.9]


def test_recent_sentiments_newest_first(record_store, make_record, owner_id):
    record = record_store.add_record(make_record())
    for value in (0.1, 0.2, 0.3):
        record_store.add_sentiment(
            SentimentReading(owner_id=owner_id, record_id=record.id, sentiment=value)
        )

    assert record_store.recent_sentiments(owner_id, record.id, limit=2) == [0.3, 0.2]


def test_clear_owner(record_store, make_record, owner_id):
    record_store.add_record(make_record())
    record_store.add_record(make_record(owner_id="other"))

    assert record_store.clear_owner(owner_id) == 1
    assert record_store.list_active_records(owner_id) == []
    assert len(record_store.list_active_records("other")) == 1

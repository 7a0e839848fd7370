"""
Unit tests for MemoryOperationExecutor.

The executor applies one MemoryDecision to the record store:

- **ADD**: Insert a version-1 record built from the candidate
- **UPDATE replace/append**: Rewrite in place, version + 1, checked against the read version
- **UPDATE supersede**: Retire the old record and insert its successor atomically
- **DELETE**: Hard delete (with snapshot) or archive
- **NOOP**: No mutation

Every operation appends one audit entry; sentiment readings refresh the
record's rolling average.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from tiered_memory.config import DecisionConfig
from tiered_memory.decisions.models import MemoryDecision, SimilarRecord
from tiered_memory.errors import NotFoundError, PersistenceError, VersionConflictError
from tiered_memory.execution.operation_executor import MemoryOperationExecutor, append_summary
from tiered_memory.models import CandidateFact, EntityFact, EntityLink, SentimentReading


@pytest.fixture
def executor(record_store, audit_store):
    return MemoryOperationExecutor(record_store, audit_store)


@pytest.fixture
def job_record(record_store, make_record):
    return record_store.add_record(
        make_record(name="Job", summary="Works at Google", context_notes=["Joined in 2019"])
    )


def _similar(record, score=0.9):
    return [SimilarRecord(record=record, similarity_score=score)]


def test_append_summary():
    assert append_summary("Loves hiking.", "Climbs on weekends") == "Loves hiking. Climbs on weekends"
    assert append_summary("", "Climbs on weekends") == "Climbs on weekends"


@pytest.mark.asyncio
async def test_add_creates_record(executor, record_store, audit_store, owner_id):
    candidate = CandidateFact(
        name="Sarah",
        memory_type="entity",
        entity_type="person",
        relationship="sister",
        content="Sarah is my sister",
        importance="high",
        context="Talked to Sarah today",
    )
    decision = MemoryDecision(operation="ADD", content=candidate.content, reasoning="new")

    result = await executor.execute(owner_id, candidate, decision, [])

    assert result.operation == "ADD"
    assert result.new_version == 1
    record = record_store.get_record(owner_id, result.record_id)
    assert record.memory_type == "entity"
    assert record.payload.relationship == "sister"
    assert record.importance_score == 0.8
    assert record.context_notes == ["Talked to Sarah today"]
    assert record.embedding is None

    entries = audit_store.list_entries(owner_id)
    assert [e.operation for e in entries] == ["ADD"]
    assert entries[0].record_id == result.record_id


@pytest.mark.asyncio
async def test_add_reuses_candidate_embedding(record_store, audit_store, mock_embedding, owner_id):
    executor = MemoryOperationExecutor(record_store, audit_store, embedding=mock_embedding)
    candidate = CandidateFact(name="Coffee", content="Drinks oat flat whites")
    decision = MemoryDecision(operation="ADD", content=candidate.content)

    result = await executor.execute(
        owner_id, candidate, decision, [], candidate_embedding=[0.0, 1.0, 0.0]
    )

    assert record_store.get_record(owner_id, result.record_id).embedding == [0.0, 1.0, 0.0]
    mock_embedding.embed_document.assert_not_called()


@pytest.mark.asyncio
async def test_add_with_failed_embedding_stores_none(record_store, audit_store, mock_embedding, owner_id):
    mock_embedding.embed_document = AsyncMock(return_value=[0.0, 0.0, 0.0])
    executor = MemoryOperationExecutor(record_store, audit_store, embedding=mock_embedding)
    candidate = CandidateFact(name="Coffee", content="Drinks oat flat whites")

    result = await executor.execute(
        owner_id, candidate, MemoryDecision(operation="ADD", content=candidate.content), []
    )

    assert record_store.get_record(owner_id, result.record_id).embedding is None


@pytest.mark.asyncio
async def test_update_replace(executor, record_store, audit_store, job_record, owner_id):
    """A job change decided as replace rewrites the record in place."""
    candidate = CandidateFact(name="Job", content="Now works at Notion")
    decision = MemoryDecision(
        operation="UPDATE",
        memory_id=job_record.id,
        new_content="Works at Notion",
        merge_strategy="replace",
    )

    result = await executor.execute(owner_id, candidate, decision, _similar(job_record))

    assert result.strategy == "replace"
    assert result.old_content == "Works at Google"
    assert result.new_content == "Works at Notion"
    assert (result.old_version, result.new_version) == (1, 2)

    record = record_store.get_record(owner_id, job_record.id)
    assert record.summary == "Works at Notion"
    assert record.version == 2
    assert record.mention_count == 2
    assert record.context_notes == ["Joined in 2019", "Works at Notion"]

    entry = audit_store.list_entries(owner_id, operation="UPDATE")[0]
    assert entry.merge_strategy == "replace"
    assert entry.similar_records[0]["id"] == job_record.id


@pytest.mark.asyncio
async def test_update_append(executor, record_store, job_record, owner_id):
    candidate = CandidateFact(name="Job", content="Leads the search team")
    decision = MemoryDecision(
        operation="UPDATE",
        memory_id=job_record.id,
        new_content="Leads the search team",
        merge_strategy="append",
    )

    await executor.execute(owner_id, candidate, decision, _similar(job_record))

    record = record_store.get_record(owner_id, job_record.id)
    assert record.summary == "Works at Google. Leads the search team"


@pytest.mark.asyncio
async def test_update_supersede(executor, record_store, audit_store, job_record, owner_id):
    """A life change keeps the old version as history."""
    candidate = CandidateFact(name="Job", content="Started at Notion", importance="high")
    decision = MemoryDecision(
        operation="UPDATE",
        memory_id=job_record.id,
        new_content="Works at Notion",
        merge_strategy="supersede",
    )

    result = await executor.execute(owner_id, candidate, decision, _similar(job_record))

    assert result.old_id == job_record.id
    assert result.new_id == result.record_id

    old = record_store.get_record(owner_id, job_record.id)
    new = record_store.get_record(owner_id, result.new_id)
    assert old.is_historical
    assert old.status == "superseded"
    assert old.superseded_by == new.id
    assert new.supersedes_id == old.id
    assert new.name == "Job"
    assert new.version == 2
    assert new.effective_from is not None
    assert new.is_active
    assert [r.id for r in record_store.list_active_records(owner_id)] == [new.id]

    entry = audit_store.list_entries(owner_id)[0]
    assert entry.merged_record_ids == [old.id]
    assert entry.merge_strategy == "supersede"


@pytest.mark.asyncio
async def test_update_detects_version_conflict(executor, record_store, job_record, owner_id):
    """A decision made against a stale snapshot is rejected."""
    record_store.update_record(owner_id, job_record.id, {"summary": "Works at Meta", "version": 2})
    decision = MemoryDecision(
        operation="UPDATE",
        memory_id=job_record.id,
        new_content="Works at Notion",
        merge_strategy="replace",
    )

    with pytest.raises(VersionConflictError):
        await executor.execute(
            owner_id, CandidateFact(name="Job", content="Works at Notion"), decision,
            _similar(job_record),
        )

    assert record_store.get_record(owner_id, job_record.id).summary == "Works at Meta"


@pytest.mark.asyncio
async def test_update_missing_target(executor, owner_id):
    decision = MemoryDecision(
        operation="UPDATE", memory_id="missing", new_content="x", merge_strategy="replace"
    )

    with pytest.raises(NotFoundError):
        await executor.execute(owner_id, CandidateFact(name="a", content="x"), decision, [])


@pytest.mark.asyncio
async def test_soft_delete_archives(executor, record_store, job_record, owner_id):
    decision = MemoryDecision(operation="DELETE", memory_id=job_record.id, reasoning="quit")

    result = await executor.execute(
        owner_id, CandidateFact(name="Job", content="Quit my job"), decision, _similar(job_record)
    )

    assert result.operation == "DELETE"
    assert not result.hard_delete
    record = record_store.get_record(owner_id, job_record.id)
    assert record.status == "archived"
    assert record.version == 2


@pytest.mark.asyncio
async def test_hard_delete_keeps_snapshot(executor, record_store, audit_store, job_record, owner_id):
    decision = MemoryDecision(operation="DELETE", memory_id=job_record.id, hard_delete=True)

    result = await executor.execute(
        owner_id, CandidateFact(name="Job", content="Forget my job"), decision, _similar(job_record)
    )

    assert result.hard_delete
    assert record_store.get_record(owner_id, job_record.id) is None
    entry = audit_store.list_entries(owner_id)[0]
    assert entry.hard_delete
    assert entry.deleted_snapshot["summary"] == "Works at Google"
    assert "embedding" not in entry.deleted_snapshot


@pytest.mark.asyncio
async def test_hard_delete_forgets_facts_links_and_sentiment(
    executor, record_store, job_record, make_record, owner_id
):
    therapist = record_store.add_record(make_record(name="Dr Patel", summary="Therapist"))
    record_store.add_fact(
        EntityFact(owner_id=owner_id, subject_id=job_record.id, predicate="diagnosed_with",
                   object_text="panic disorder")
    )
    record_store.add_fact(
        EntityFact(owner_id=owner_id, subject_id=therapist.id, predicate="treats",
                   object_text="Job", object_record_id=job_record.id)
    )
    record_store.add_link(
        EntityLink(owner_id=owner_id, source_id=therapist.id, target_id=job_record.id,
                   relationship_type="related_to", strength=0.9)
    )
    record_store.add_sentiment(SentimentReading(owner_id=owner_id, record_id=job_record.id, sentiment=-0.5))
    decision = MemoryDecision(operation="DELETE", memory_id=job_record.id, hard_delete=True)

    await executor.execute(
        owner_id, CandidateFact(name="Job", content="Forget my job"), decision, _similar(job_record)
    )

    assert record_store.get_facts(owner_id, job_record.id) == []
    assert record_store.recent_sentiments(owner_id, job_record.id) == []
    assert record_store.traverse_graph(owner_id, therapist.id) == []
    remaining = record_store.get_facts(owner_id, therapist.id)
    assert [(f.predicate, f.object_text, f.object_record_id) for f in remaining] == [("treats", "Job", None)]


@pytest.mark.asyncio
async def test_noop_does_not_mutate(executor, record_store, audit_store, job_record, owner_id):
    decision = MemoryDecision.noop("Already known", existing_memory_id=job_record.id)

    result = await executor.execute(
        owner_id, CandidateFact(name="Job", content="Works at Google"), decision, _similar(job_record)
    )

    assert result.operation == "NOOP"
    assert result.existing_memory_id == job_record.id
    assert record_store.get_record(owner_id, job_record.id).version == 1
    assert audit_store.count(owner_id, operation="NOOP") == 1


@pytest.mark.asyncio
async def test_sentiment_average_uses_recent_window(record_store, audit_store, job_record, owner_id):
    executor = MemoryOperationExecutor(
        record_store, audit_store, config=DecisionConfig(sentiment_window=3)
    )
    for value in (-1.0, 0.2, 0.4):
        record_store.add_sentiment(
            SentimentReading(owner_id=owner_id, record_id=job_record.id, sentiment=value)
        )
    candidate = CandidateFact(name="Job", content="Loving the new team", sentiment=0.9)
    decision = MemoryDecision(
        operation="UPDATE",
        memory_id=job_record.id,
        new_content="Loving the new team",
        merge_strategy="append",
    )

    result = await executor.execute(owner_id, candidate, decision, _similar(job_record))

    record = record_store.get_record(owner_id, job_record.id)
    assert record.sentiment_average == pytest.approx((0.2 + 0.4 + 0.9) / 3)
    assert result.metadata["sentiment_average"] == pytest.approx(0.5)
    assert record.version == 2


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_operation(record_store, owner_id):
    audit_store = Mock()
    audit_store.append = Mock(side_effect=PersistenceError("disk full"))
    executor = MemoryOperationExecutor(record_store, audit_store)
    candidate = CandidateFact(name="Coffee", content="Drinks oat flat whites")

    result = await executor.execute(
        owner_id, candidate, MemoryDecision(operation="ADD", content=candidate.content), []
    )

    assert result.succeeded
    assert result.metadata["audit_error"] == "disk full"
    assert record_store.get_record(owner_id, result.record_id) is not None

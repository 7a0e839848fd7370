"""
Memory operation executor.

Applies a MemoryDecision to the record store. This component takes the
operation chosen by the DecisionEngine, performs the versioned writes,
appends the audit entry and maintains the sentiment rolling average.
"""

import logging
import time
from datetime import datetime
from typing import List, Optional

from tiered_memory.config import DecisionConfig
from tiered_memory.decisions.models import MemoryDecision, SimilarRecord
from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.embeddings.safe import embed_or_zero
from tiered_memory.errors import NotFoundError, TieredMemoryError
from tiered_memory.execution.models import MemoryOperationResult
from tiered_memory.models import (
    AuditEntry,
    CandidateFact,
    MemoryRecord,
    SentimentReading,
    build_payload,
    importance_to_score,
)
from tiered_memory.storage.protocols import AuditStore, RecordStore
from tiered_memory.storage.vectors import usable_embedding

logger = logging.getLogger(__name__)

VALID_MEMORY_TYPES = (
    "entity", "fact", "preference", "event", "goal", "procedure", "decision", "action"
)


def _preview(text: Optional[str], limit: int = 50) -> str:
    if not text:
        return ""
    return text[:limit] + "..." if len(text) > limit else text


def append_summary(old: str, addition: str) -> str:
    """Join existing content and new detail as sentences."""
    base = old.rstrip().rstrip(".")
    if not base:
        return addition
    return f"{base}. {addition}"


class MemoryOperationExecutor:
    """
    Executes lifecycle operations against the record store.

    - ADD: Insert a new version-1 record
    - UPDATE replace/append: Rewrite the record in place, version + 1
    - UPDATE supersede: Retire the record and insert its successor atomically
    - DELETE: Remove the row (hard) or archive it
    - NOOP: No mutation

    Every operation appends one audit entry.
    """

    def __init__(
        self,
        record_store: RecordStore,
        audit_store: AuditStore,
        embedding: Optional[TextEmbedding] = None,
        config: Optional[DecisionConfig] = None,
    ):
        """
        Initialize the operation executor.

        Args:
            record_store: Store for memory records
            audit_store: Append-only audit log
            embedding: Embedder for new or rewritten content (None = no embeddings)
            config: Decision configuration (sentiment window, context note limit)
        """
        self.record_store = record_store
        self.audit_store = audit_store
        self.embedding = embedding
        self.config = config or DecisionConfig()

        logger.info("MemoryOperationExecutor initialized")

    async def execute(
        self,
        owner_id: str,
        candidate: CandidateFact,
        decision: MemoryDecision,
        similar: List[SimilarRecord],
        candidate_embedding: Optional[List[float]] = None,
        job_id: Optional[str] = None,
        started_at: Optional[float] = None,
    ) -> MemoryOperationResult:
        """
        Apply a decision.

        Args:
            owner_id: Owner of the records
            candidate: The (already redacted) candidate fact
            decision: The operation to apply
            similar: Similar records the decision was made against
            candidate_embedding: Embedding of candidate.content, reused when
                the stored text equals the candidate content
            job_id: Optional batch job identifier for the audit log
            started_at: time.perf_counter() value when processing began

        Returns:
            MemoryOperationResult describing the change

        Raises:
            NotFoundError: If an UPDATE or DELETE target does not exist
            VersionConflictError: If the target changed since it was read
            PersistenceError: If a store write fails
        """
        started_at = started_at if started_at is not None else time.perf_counter()

        if decision.operation == "ADD":
            result = await self._execute_add(owner_id, candidate, decision, candidate_embedding)
        elif decision.operation == "UPDATE":
            result = await self._execute_update(
                owner_id, candidate, decision, similar, candidate_embedding
            )
        elif decision.operation == "DELETE":
            result = await self._execute_delete(owner_id, decision, similar)
        elif decision.operation == "NOOP":
            result = MemoryOperationResult(
                operation="NOOP",
                reasoning=decision.reasoning,
                existing_memory_id=decision.existing_memory_id,
                record_id=decision.existing_memory_id,
            )
        else:
            raise ValueError(f"Unknown operation: {decision.operation}")

        if candidate.sentiment is not None and result.operation in ("ADD", "UPDATE"):
            self._record_sentiment(owner_id, result, candidate)

        result.processing_time_ms = (time.perf_counter() - started_at) * 1000
        self._audit(owner_id, candidate, decision, similar, result, job_id)

        logger.info(
            f"Memory operation: {result.operation}"
            f"{f' ({result.strategy})' if result.strategy else ''}, "
            f"record_id={result.record_id}, text='{_preview(candidate.content)}'"
        )
        return result

    async def _embed(
        self, text: str, candidate: CandidateFact, candidate_embedding: Optional[List[float]]
    ) -> Optional[List[float]]:
        """Embedding for stored text; zero-vector failures are stored as no embedding."""
        if candidate_embedding is not None and text == candidate.content:
            return usable_embedding(candidate_embedding)
        if self.embedding is None:
            return None
        return usable_embedding(await embed_or_zero(self.embedding, text))

    def _notes_with(self, notes: List[str], note: Optional[str]) -> List[str]:
        if not note:
            return list(notes)[-self.config.context_note_limit:]
        return (list(notes) + [note])[-self.config.context_note_limit:]

    async def _execute_add(
        self,
        owner_id: str,
        candidate: CandidateFact,
        decision: MemoryDecision,
        candidate_embedding: Optional[List[float]],
    ) -> MemoryOperationResult:
        """
        Insert a new record.

        Returns:
            MemoryOperationResult with the new record ID
        """
        content = decision.content or candidate.content
        memory_type = decision.memory_type or candidate.memory_type
        if memory_type not in VALID_MEMORY_TYPES:
            logger.warning(f"Ignoring unknown memory type '{memory_type}' from decision")
            memory_type = candidate.memory_type

        record = MemoryRecord(
            owner_id=owner_id,
            name=candidate.name,
            summary=content,
            context_notes=self._notes_with([], candidate.context),
            payload=build_payload(
                memory_type,
                entity_type=candidate.entity_type,
                recurrence_pattern=candidate.recurrence_pattern,
                relationship=candidate.relationship,
            ),
            importance=candidate.importance,
            importance_score=importance_to_score(candidate.importance),
            sentiment_average=candidate.sentiment or 0.0,
            mention_count=1,
            status="active",
            version=1,
            is_historical=candidate.is_historical,
            effective_from=candidate.effective_from,
            expires_at=candidate.expires_at,
            sensitivity_level=candidate.sensitivity_level,
            confidence=candidate.confidence,
            embedding=await self._embed(content, candidate, candidate_embedding),
        )
        stored = self.record_store.add_record(record)

        return MemoryOperationResult(
            operation="ADD",
            record_id=stored.id,
            new_content=stored.summary,
            new_version=stored.version,
            reasoning=decision.reasoning,
        )

    def _target(
        self, owner_id: str, memory_id: str, similar: List[SimilarRecord]
    ) -> MemoryRecord:
        """The record as it was when the decision was made (falls back to a fresh read)."""
        for item in similar:
            if item.record.id == memory_id:
                return item.record

        record = self.record_store.get_record(owner_id, memory_id)
        if record is None:
            raise NotFoundError(memory_id, owner_id)
        return record

    async def _execute_update(
        self,
        owner_id: str,
        candidate: CandidateFact,
        decision: MemoryDecision,
        similar: List[SimilarRecord],
        candidate_embedding: Optional[List[float]],
    ) -> MemoryOperationResult:
        """
        Rewrite or supersede an existing record.

        The write is checked against the version the decision was based on.
        """
        existing = self._target(owner_id, decision.memory_id, similar)
        strategy = decision.merge_strategy

        if strategy == "supersede":
            return await self._execute_supersede(
                owner_id, candidate, decision, existing, candidate_embedding
            )

        if strategy == "append":
            new_summary = append_summary(existing.summary, decision.new_content)
        else:
            new_summary = decision.new_content

        updates = {
            "summary": new_summary,
            "version": existing.version + 1,
            "context_notes": self._notes_with(existing.context_notes, decision.new_content),
            "mention_count": existing.mention_count + 1,
        }
        embedding = await self._embed(new_summary, candidate, candidate_embedding)
        if embedding is not None:
            updates["embedding"] = embedding

        updated = self.record_store.update_record(
            owner_id, existing.id, updates, expected_version=existing.version
        )

        return MemoryOperationResult(
            operation="UPDATE",
            record_id=updated.id,
            strategy=strategy,
            old_content=existing.summary,
            new_content=updated.summary,
            old_version=existing.version,
            new_version=updated.version,
            reasoning=decision.reasoning,
        )

    async def _execute_supersede(
        self,
        owner_id: str,
        candidate: CandidateFact,
        decision: MemoryDecision,
        existing: MemoryRecord,
        candidate_embedding: Optional[List[float]],
    ) -> MemoryOperationResult:
        successor = MemoryRecord(
            owner_id=owner_id,
            name=existing.name,
            summary=decision.new_content,
            context_notes=self._notes_with(existing.context_notes, decision.new_content),
            payload=existing.payload,
            importance=candidate.importance,
            importance_score=importance_to_score(candidate.importance),
            sentiment_average=existing.sentiment_average,
            mention_count=existing.mention_count + 1,
            effective_from=candidate.effective_from or datetime.now(),
            expires_at=candidate.expires_at,
            sensitivity_level=candidate.sensitivity_level,
            confidence=candidate.confidence,
            embedding=await self._embed(decision.new_content, candidate, candidate_embedding),
        )

        old, new = self.record_store.supersede_record(
            owner_id, existing.id, expected_version=existing.version, successor=successor
        )

        return MemoryOperationResult(
            operation="UPDATE",
            record_id=new.id,
            strategy="supersede",
            old_id=old.id,
            new_id=new.id,
            old_content=old.summary,
            new_content=new.summary,
            old_version=old.version,
            new_version=new.version,
            reasoning=decision.reasoning,
        )

    async def _execute_delete(
        self, owner_id: str, decision: MemoryDecision, similar: List[SimilarRecord]
    ) -> MemoryOperationResult:
        """
        Remove a record permanently, or archive it.

        Hard deletes keep a snapshot of the removed row for the audit log.
        """
        existing = self._target(owner_id, decision.memory_id, similar)

        if decision.hard_delete:
            if not self.record_store.delete_record(owner_id, existing.id):
                raise NotFoundError(existing.id, owner_id)
            return MemoryOperationResult(
                operation="DELETE",
                record_id=existing.id,
                old_content=existing.summary,
                old_version=existing.version,
                hard_delete=True,
                reasoning=decision.reasoning,
                metadata={
                    "deleted_snapshot": existing.model_dump(mode="json", exclude={"embedding"})
                },
            )

        archived = self.record_store.update_record(
            owner_id,
            existing.id,
            {"status": "archived", "version": existing.version + 1},
            expected_version=existing.version,
        )
        return MemoryOperationResult(
            operation="DELETE",
            record_id=archived.id,
            old_content=existing.summary,
            old_version=existing.version,
            new_version=archived.version,
            hard_delete=False,
            reasoning=decision.reasoning,
        )

    def _record_sentiment(
        self, owner_id: str, result: MemoryOperationResult, candidate: CandidateFact
    ) -> None:
        """Store a sentiment reading and refresh the record's rolling average."""
        try:
            self.record_store.add_sentiment(
                SentimentReading(
                    owner_id=owner_id,
                    record_id=result.record_id,
                    sentiment=candidate.sentiment,
                    source_note_id=candidate.source_note_id,
                )
            )
            readings = self.record_store.recent_sentiments(
                owner_id, result.record_id, limit=self.config.sentiment_window
            )
            if readings:
                average = sum(readings) / len(readings)
                self.record_store.update_record(
                    owner_id,
                    result.record_id,
                    {"sentiment_average": average},
                    expected_version=result.new_version,
                )
                result.metadata["sentiment_average"] = average
        except TieredMemoryError as e:
            logger.warning(f"Failed to update sentiment for {result.record_id}: {e}")
            result.metadata["sentiment_error"] = str(e)

    def _audit(
        self,
        owner_id: str,
        candidate: CandidateFact,
        decision: MemoryDecision,
        similar: List[SimilarRecord],
        result: MemoryOperationResult,
        job_id: Optional[str],
    ) -> None:
        entry = AuditEntry(
            owner_id=owner_id,
            operation=result.operation,
            candidate_content=candidate.content,
            candidate_type=candidate.memory_type,
            similar_records=[
                {
                    "id": item.record.id,
                    "name": item.record.name,
                    "summary": item.record.summary,
                    "similarity": round(item.similarity_score, 4),
                }
                for item in similar
            ],
            reasoning=decision.reasoning,
            record_id=result.record_id,
            merged_record_ids=[result.old_id] if result.old_id else [],
            merge_strategy=result.strategy,
            old_content=result.old_content,
            new_content=result.new_content,
            old_version=result.old_version,
            new_version=result.new_version,
            hard_delete=result.hard_delete,
            deleted_snapshot=result.metadata.get("deleted_snapshot"),
            job_id=job_id,
            source_note_id=candidate.source_note_id,
            processing_time_ms=result.processing_time_ms,
        )

        try:
            self.audit_store.append(entry)
        except TieredMemoryError as e:
            logger.error(f"Failed to write audit entry for {result.operation}: {e}")
            result.metadata["audit_error"] = str(e)

"""
Duplicate consolidation for an owner's records.

Finds pairs of active records whose embeddings are nearly identical and folds
the weaker record of each pair into the stronger one. Runs on demand; with
force=False it only previews what would be merged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from casual_llm import LLMProvider

from tiered_memory.config import ConsolidationConfig
from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.embeddings.safe import embed_or_zero
from tiered_memory.errors import TieredMemoryError, UpstreamLanguageModelError
from tiered_memory.intelligence.llm import generate_text
from tiered_memory.intelligence.prompts import MERGE_SUMMARIES_PROMPT
from tiered_memory.models import AuditEntry, MemoryRecord
from tiered_memory.storage.protocols import AuditStore, RecordStore
from tiered_memory.storage.vectors import cosine_similarity, usable_embedding

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationCandidate:
    """Two records similar enough to be the same memory."""

    record_a: MemoryRecord
    record_b: MemoryRecord
    similarity: float

    def preview(self) -> dict:
        return {
            "record_a": {"id": self.record_a.id, "name": self.record_a.name},
            "record_b": {"id": self.record_b.id, "name": self.record_b.name},
            "similarity": round(self.similarity, 4),
        }


@dataclass
class MergeOutcome:
    keeper_id: str
    merged_id: str
    similarity: float
    new_summary: str
    keeper_version: int


@dataclass
class ConsolidationResult:
    """
    Outcome of one consolidation run.

    Attributes:
        candidates_found: Pairs at or above the similarity threshold
        dry_run: True when nothing was mutated (force=False)
        preview: Up to preview_limit candidate pairs (dry runs)
        merged: Merges applied (forced runs)
        errors: Per-pair error messages; the batch continues past them
    """

    candidates_found: int
    dry_run: bool
    preview: List[dict] = field(default_factory=list)
    merged: List[MergeOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class ConsolidationEngine:
    """
    Merges near-duplicate records.

    Keeper selection uses a composite score of importance, mention count and
    age; the other record is archived with superseded_by pointing at the
    keeper, and the keeper's summary becomes a model-written merge of both.
    """

    def __init__(
        self,
        record_store: RecordStore,
        audit_store: AuditStore,
        llm_provider: Optional[LLMProvider] = None,
        config: Optional[ConsolidationConfig] = None,
        embedding: Optional[TextEmbedding] = None,
    ):
        """
        Initialize the consolidation engine.

        Args:
            record_store: Store for memory records
            audit_store: Append-only audit log
            llm_provider: Model used to merge summaries (None keeps the keeper summary)
            config: Consolidation configuration
            embedding: Embedder used to re-embed merged summaries (None keeps the keeper vector)
        """
        self.record_store = record_store
        self.audit_store = audit_store
        self.llm_provider = llm_provider
        self.config = config or ConsolidationConfig()
        self.embedding = embedding
        self.merge_llm_failure_count = 0

        logger.info(f"ConsolidationEngine initialized (threshold={self.config.threshold})")

    def find_candidates(self, records: List[MemoryRecord]) -> List[ConsolidationCandidate]:
        """
        Pair up records whose cosine similarity reaches the threshold.

        Returns:
            Candidate pairs, most similar first
        """
        candidates = []
        for i, record_a in enumerate(records):
            for record_b in records[i + 1:]:
                if not record_a.embedding or not record_b.embedding:
                    continue
                if len(record_a.embedding) != len(record_b.embedding):
                    continue

                similarity = cosine_similarity(record_a.embedding, record_b.embedding)
                if similarity >= self.config.threshold:
                    candidates.append(ConsolidationCandidate(record_a, record_b, similarity))

        candidates.sort(key=lambda c: c.similarity, reverse=True)
        return candidates

    def keeper_score(self, record: MemoryRecord, now: Optional[datetime] = None) -> float:
        """Composite score: importance, mention count and age in years."""
        now = now or datetime.now()
        age_years = max((now - record.created_at).total_seconds(), 0.0) / (365 * 24 * 3600)
        return (
            record.importance_score * self.config.importance_weight
            + record.mention_count * self.config.mention_weight
            + age_years * self.config.age_weight
        )

    def choose_keeper(
        self, record_a: MemoryRecord, record_b: MemoryRecord, now: Optional[datetime] = None
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """
        Decide which record survives.

        Ties go to the record that comes first by (created_at, id).

        Returns:
            Tuple of (keeper, merged)
        """
        now = now or datetime.now()
        score_a = self.keeper_score(record_a, now)
        score_b = self.keeper_score(record_b, now)

        if score_a > score_b:
            return record_a, record_b
        if score_b > score_a:
            return record_b, record_a

        first, second = sorted((record_a, record_b), key=lambda r: (r.created_at, r.id))
        return first, second

    async def merge_summaries(self, keeper: MemoryRecord, merged: MemoryRecord) -> str:
        """Model-written merge of both summaries; falls back to the keeper summary."""
        if self.llm_provider is None:
            return keeper.summary

        prompt = MERGE_SUMMARIES_PROMPT.format(
            keeper_summary=keeper.summary, merged_summary=merged.summary
        )
        try:
            return await generate_text(self.llm_provider, prompt, temperature=0.2, max_tokens=200)
        except UpstreamLanguageModelError as e:
            self.merge_llm_failure_count += 1
            logger.warning(f"Summary merge failed for {keeper.id}, keeping keeper summary: {e}")
            return keeper.summary

    async def consolidate(self, owner_id: str, force: bool = False) -> ConsolidationResult:
        """
        Find and (when forced) merge duplicate records for an owner.

        Args:
            owner_id: The owner ID
            force: Apply merges; False returns a preview without mutating

        Returns:
            ConsolidationResult
        """
        records = self.record_store.list_active_records(
            owner_id, with_embeddings_only=True, limit=self.config.max_records
        )
        candidates = self.find_candidates(records)

        logger.info(
            f"Consolidation for {owner_id}: {len(records)} records, "
            f"{len(candidates)} candidate pairs (force={force})"
        )

        if not force:
            return ConsolidationResult(
                candidates_found=len(candidates),
                dry_run=True,
                preview=[c.preview() for c in candidates[: self.config.preview_limit]],
            )

        result = ConsolidationResult(candidates_found=len(candidates), dry_run=False)
        current: Dict[str, MemoryRecord] = {record.id: record for record in records}
        archived: Set[str] = set()
        now = datetime.now()

        for candidate in candidates:
            if len(result.merged) >= self.config.max_merges:
                logger.info(f"Reached max merges ({self.config.max_merges}) for {owner_id}")
                break

            a_id, b_id = candidate.record_a.id, candidate.record_b.id
            if a_id in archived or b_id in archived:
                continue

            keeper, merged = self.choose_keeper(current[a_id], current[b_id], now)
            try:
                outcome = await self._merge_pair(owner_id, keeper, merged, candidate.similarity)
            except TieredMemoryError as e:
                logger.error(f"Failed to merge {merged.id} into {keeper.id}: {e}")
                result.errors.append(f"{merged.id} -> {keeper.id}: {e}")
                continue

            current[keeper.id] = outcome[0]
            archived.add(merged.id)
            result.merged.append(outcome[1])

        logger.info(
            f"Consolidation for {owner_id} merged {len(result.merged)} pairs "
            f"({len(result.errors)} errors)"
        )
        return result

    async def _merge_pair(
        self, owner_id: str, keeper: MemoryRecord, merged: MemoryRecord, similarity: float
    ) -> Tuple[MemoryRecord, MergeOutcome]:
        new_summary = await self.merge_summaries(keeper, merged)
        keeper_updates = {
            "summary": new_summary,
            "importance_score": max(keeper.importance_score, merged.importance_score),
            "mention_count": keeper.mention_count + merged.mention_count,
            "version": keeper.version + 1,
        }
        if new_summary != keeper.summary and self.embedding is not None:
            vector = usable_embedding(await embed_or_zero(self.embedding, new_summary))
            if vector is not None:
                keeper_updates["embedding"] = vector
            else:
                logger.warning(f"Keeping previous embedding for {keeper.id}: re-embed failed")

        new_keeper, _ = self.record_store.merge_records(
            owner_id,
            keeper_id=keeper.id,
            keeper_version=keeper.version,
            keeper_updates=keeper_updates,
            merged_id=merged.id,
            merged_version=merged.version,
        )

        try:
            self.audit_store.append(
                AuditEntry(
                    owner_id=owner_id,
                    operation="CONSOLIDATE",
                    candidate_content=merged.summary,
                    candidate_type=merged.memory_type,
                    reasoning=f"Merged with {keeper.name} ({similarity * 100:.1f}% similar)",
                    record_id=keeper.id,
                    merged_record_ids=[merged.id],
                    old_content=keeper.summary,
                    new_content=new_summary,
                    old_version=keeper.version,
                    new_version=new_keeper.version,
                )
            )
        except TieredMemoryError as e:
            logger.error(f"Failed to write consolidation audit entry for {keeper.id}: {e}")

        logger.debug(f"Merged {merged.id} into {keeper.id} ({similarity:.3f})")
        return new_keeper, MergeOutcome(
            keeper_id=keeper.id,
            merged_id=merged.id,
            similarity=similarity,
            new_summary=new_summary,
            keeper_version=new_keeper.version,
        )

    def get_metrics(self) -> dict:
        return {"consolidation_merge_llm_failure_count": self.merge_llm_failure_count}

"""
Memory service.

Composes the decision engine, consolidation, summary evolution, tiered
retrieval and context assembly over one set of stores. Leaf components raise
typed errors; this layer turns per-item failures into results so a batch is
never aborted by one bad fact.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from casual_llm import LLMProvider

from tiered_memory.config import MemoryConfig
from tiered_memory.context.assembler import AssembledContext, ContextAssembler
from tiered_memory.decisions.decider import LLMMemoryDecider, MemoryDecider
from tiered_memory.decisions.engine import DecisionEngine
from tiered_memory.decisions.models import SimilarRecord
from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.embeddings.safe import embed_or_zero
from tiered_memory.errors import TieredMemoryError
from tiered_memory.execution.models import MemoryOperationResult
from tiered_memory.execution.operation_executor import MemoryOperationExecutor
from tiered_memory.intelligence.consolidation import ConsolidationEngine, ConsolidationResult
from tiered_memory.intelligence.summaries import CategorySummaryEvolver, SummaryEvolutionResult
from tiered_memory.models import (
    AuditEntry,
    CandidateFact,
    EntityFact,
    EntityLink,
    MemoryRecord,
    RecordQueryFilter,
    StructuredFact,
)
from tiered_memory.retrieval.hybrid import HybridRetriever
from tiered_memory.retrieval.models import QueryPlan, TieredResult
from tiered_memory.retrieval.tiered import TieredRetriever
from tiered_memory.storage.protocols import AuditStore, RecordStore, SummaryStore
from tiered_memory.storage.vectors import is_zero_vector
from tiered_memory.utils.date_normalizer import normalize_candidate_dates

logger = logging.getLogger(__name__)

# Decisions compare against planned changes too, so future-dated records count.
DECISION_FILTER = RecordQueryFilter(hide_future=False)


@dataclass
class MemoryClients:
    """Bundle of the external dependencies a MemoryService needs."""

    record_store: RecordStore
    summary_store: SummaryStore
    audit_store: AuditStore
    llm_provider: LLMProvider
    embedding: Optional[TextEmbedding] = None


@dataclass
class FactSaveResult:
    saved: List[str] = field(default_factory=list)
    reinforced: List[str] = field(default_factory=list)
    skipped: int = 0
    errors: List[dict] = field(default_factory=list)


class MemoryService:
    """
    Entry point for storing facts and building context.

    Example:
        >>> service = MemoryService.from_clients(clients)
        >>> result = await service.process_fact("user-1", candidate)
        >>> context = await service.build_context("user-1", "How is Sarah doing?")
    """

    def __init__(
        self,
        record_store: RecordStore,
        summary_store: SummaryStore,
        audit_store: AuditStore,
        llm_provider: LLMProvider,
        embedding: Optional[TextEmbedding] = None,
        config: Optional[MemoryConfig] = None,
        decider: Optional[MemoryDecider] = None,
    ):
        """
        Initialize the memory service.

        Args:
            record_store: Store for memory records, links, facts and sentiment
            summary_store: Store for category summaries
            audit_store: Append-only audit log
            llm_provider: Model for decisions, merges, summaries and sufficiency checks
            embedding: Embedder for records and queries (None disables vectors)
            config: Service configuration (default: MemoryConfig())
            decider: Override the language-model decider
        """
        self.record_store = record_store
        self.summary_store = summary_store
        self.audit_store = audit_store
        self.llm_provider = llm_provider
        self.embedding = embedding
        self.config = config or MemoryConfig()

        decision_config = self.config.decision
        self.executor = MemoryOperationExecutor(
            record_store, audit_store, embedding=embedding, config=decision_config
        )
        self.decision_engine = DecisionEngine(
            decider
            or LLMMemoryDecider(
                llm_provider,
                temperature=decision_config.decision_temperature,
                max_tokens=decision_config.decision_max_tokens,
            ),
            executor=self.executor,
            config=decision_config,
        )
        self.consolidation = ConsolidationEngine(
            record_store,
            audit_store,
            llm_provider=llm_provider,
            config=self.config.consolidation,
            embedding=embedding,
        )
        self.summary_evolver = CategorySummaryEvolver(summary_store, llm_provider)
        self.hybrid = HybridRetriever(record_store, embedding, self.config.retrieval.fusion)
        self.retriever = TieredRetriever(
            record_store, summary_store, self.hybrid, llm_provider, self.config.retrieval
        )
        self.assembler = ContextAssembler(self.config.context)

    @classmethod
    def from_clients(
        cls, clients: MemoryClients, config: Optional[MemoryConfig] = None
    ) -> "MemoryService":
        return cls(
            record_store=clients.record_store,
            summary_store=clients.summary_store,
            audit_store=clients.audit_store,
            llm_provider=clients.llm_provider,
            embedding=clients.embedding,
            config=config,
        )

    async def _embed_for_search(self, text: str) -> Optional[List[float]]:
        if self.embedding is None:
            return None
        vector = await embed_or_zero(self.embedding, text)
        if is_zero_vector(vector):
            return None
        return vector

    async def _similar_with_embedding(
        self, owner_id: str, text: str
    ) -> Tuple[List[SimilarRecord], Optional[List[float]]]:
        vector = await self._embed_for_search(text)
        if vector is None:
            return [], None

        matches = self.record_store.find_similar(
            owner_id,
            vector,
            threshold=self.config.decision.similarity_threshold,
            limit=self.config.decision.max_similar,
            query_filter=DECISION_FILTER,
        )
        return [SimilarRecord(record=record, similarity_score=score) for record, score in matches], vector

    async def find_similar(self, owner_id: str, text: str) -> List[SimilarRecord]:
        """
        Find existing records similar to a piece of text.

        Returns:
            Similar records, most similar first (empty when no embedding is available)
        """
        similar, _ = await self._similar_with_embedding(owner_id, text)
        return similar

    async def process_fact(
        self,
        owner_id: str,
        candidate: CandidateFact,
        reference_date: Optional[datetime] = None,
        job_id: Optional[str] = None,
    ) -> MemoryOperationResult:
        """
        Decide and apply one lifecycle operation for a candidate fact.

        Relative dates in the content are resolved against reference_date
        before similarity search. Failures are reported on the result rather
        than raised.

        Args:
            owner_id: Owner of the records
            candidate: The proposed fact
            reference_date: Date relative expressions are resolved against (default: now)
            job_id: Optional batch job identifier for the audit log

        Returns:
            MemoryOperationResult (error set on failure)
        """
        candidate = normalize_candidate_dates(candidate, reference_date or datetime.now())

        try:
            redacted, _ = self.decision_engine.redact_candidate(candidate)
            if redacted is None:
                similar, vector = [], None
            else:
                similar, vector = await self._similar_with_embedding(owner_id, redacted.content)

            return await self.decision_engine.process(
                owner_id, candidate, similar, candidate_embedding=vector, job_id=job_id
            )
        except TieredMemoryError as e:
            logger.error(f"Failed to process fact '{candidate.name}' for {owner_id}: {e}")
            return MemoryOperationResult(
                operation="NOOP",
                reasoning="Operation failed",
                error=str(e),
                metadata={"error_type": type(e).__name__},
            )

    async def process_facts(
        self,
        owner_id: str,
        candidates: List[CandidateFact],
        reference_date: Optional[datetime] = None,
        job_id: Optional[str] = None,
    ) -> List[MemoryOperationResult]:
        """
        Process candidates in order.

        Candidates are applied one at a time so later facts see the records
        created by earlier ones.
        """
        job_id = job_id or str(uuid.uuid4())
        results = []
        for candidate in candidates:
            results.append(await self.process_fact(owner_id, candidate, reference_date, job_id))

        failed = sum(1 for result in results if not result.succeeded)
        logger.info(
            f"Processed {len(results)} facts for {owner_id} (job={job_id}, failed={failed})"
        )
        return results

    def _resolve_name(self, owner_id: str, name: str) -> Optional[MemoryRecord]:
        matches = self.record_store.find_by_name(owner_id, name, limit=5)
        for record in matches:
            if record.name.lower() == name.lower():
                return record
        return matches[0] if matches else None

    def save_facts(
        self,
        owner_id: str,
        facts: List[StructuredFact],
        source_note_id: Optional[str] = None,
    ) -> FactSaveResult:
        """
        Save subject-predicate-object triples against records resolved by name.

        An identical existing triple is not duplicated; its confidence is
        raised when the new confidence is higher.

        Returns:
            FactSaveResult with saved and reinforced fact IDs plus per-fact errors
        """
        result = FactSaveResult()

        for fact in facts:
            try:
                subject = self._resolve_name(owner_id, fact.entity_name)
                if subject is None:
                    logger.warning(f"No record found for fact subject: {fact.entity_name}")
                    result.skipped += 1
                    result.errors.append(
                        {"fact": fact.describe(), "error": "Subject record not found"}
                    )
                    continue

                existing = self.record_store.find_fact(
                    owner_id, subject.id, fact.predicate, fact.object
                )
                if existing is not None:
                    if fact.confidence > existing.confidence:
                        self.record_store.update_fact_confidence(
                            owner_id, existing.id, fact.confidence
                        )
                        result.reinforced.append(existing.id)
                    result.skipped += 1
                    continue

                object_record_id = None
                if fact.object_is_entity:
                    target = self._resolve_name(owner_id, fact.object)
                    object_record_id = target.id if target else None

                saved = self.record_store.add_fact(
                    EntityFact(
                        owner_id=owner_id,
                        subject_id=subject.id,
                        predicate=fact.predicate,
                        object_text=fact.object,
                        object_record_id=object_record_id,
                        confidence=fact.confidence,
                        source_note_id=source_note_id,
                    )
                )
                result.saved.append(saved.id)
                logger.debug(f"Saved fact: {fact.describe()}")
            except TieredMemoryError as e:
                logger.error(f"Failed to save fact '{fact.describe()}': {e}")
                result.errors.append({"fact": fact.describe(), "error": str(e)})

        logger.info(
            f"Saved {len(result.saved)} facts for {owner_id} "
            f"(reinforced={len(result.reinforced)}, skipped={result.skipped})"
        )
        return result

    def add_link(
        self,
        owner_id: str,
        source_id: str,
        target_id: str,
        relationship_type: str,
        strength: float = 0.5,
        directed: bool = False,
    ) -> EntityLink:
        """
        Connect two records in the entity graph.

        Raises:
            NotFoundError: If either record does not exist for this owner
        """
        return self.record_store.add_link(
            EntityLink(
                owner_id=owner_id,
                source_id=source_id,
                target_id=target_id,
                relationship_type=relationship_type,
                strength=strength,
                directed=directed,
            )
        )

    async def consolidate(self, owner_id: str, force: bool = False) -> ConsolidationResult:
        """Preview (force=False) or apply near-duplicate merges."""
        return await self.consolidation.consolidate(owner_id, force=force)

    async def evolve_summaries(
        self, owner_id: str, records: Optional[List[MemoryRecord]] = None
    ) -> SummaryEvolutionResult:
        """
        Rewrite category summaries from records.

        Args:
            owner_id: The owner ID
            records: Newly stored records (default: all active records)
        """
        if records is None:
            active = self.record_store.list_active_records(owner_id)
            return await self.summary_evolver.evolve(owner_id, active, full_rebuild=True)
        return await self.summary_evolver.evolve(owner_id, records)

    def get_history(
        self,
        owner_id: str,
        record_id: Optional[str] = None,
        operation: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """Audit entries for an owner, newest first."""
        return self.audit_store.list_entries(
            owner_id, record_id=record_id, operation=operation, limit=limit
        )

    async def retrieve(
        self,
        owner_id: str,
        query: str,
        entity_names: Optional[List[str]] = None,
        **options,
    ) -> TieredResult:
        """
        Tiered retrieval for a query.

        Args:
            owner_id: The owner ID
            query: The user query
            entity_names: Entity names already known for the query
                (default: guessed from capitalised words)
            **options: Passed to TieredRetriever.retrieve (skip_tier1,
                skip_tier2, force_tier3, categories, config)
        """
        plan = QueryPlan.from_query(query, entity_names=entity_names)
        return await self.retriever.retrieve(owner_id, query, plan=plan, **options)

    async def build_context(
        self,
        owner_id: str,
        query: str,
        max_tokens: Optional[int] = None,
        entity_names: Optional[List[str]] = None,
        **options,
    ) -> AssembledContext:
        """
        Retrieve for a query and pack the result into a token budget.

        Returns:
            AssembledContext (render with format_for_prompt or build_user_context_prompt)
        """
        result = await self.retrieve(owner_id, query, entity_names=entity_names, **options)
        context = self.assembler.assemble_from_result(result, max_tokens=max_tokens)

        logger.info(
            f"Built context for {owner_id}: tier {result.tier_used}, "
            f"{context.total_tokens} tokens"
        )
        return context

    def get_metrics(self) -> dict:
        metrics = {}
        metrics.update(self.decision_engine.get_metrics())
        if isinstance(self.decision_engine.decider, LLMMemoryDecider):
            metrics.update(self.decision_engine.decider.get_metrics())
        metrics.update(self.consolidation.get_metrics())
        metrics.update(self.retriever.get_metrics())
        return metrics

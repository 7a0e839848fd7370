"""
Tiered retrieval orchestrator.

Starts with cheap pre-computed category summaries and only drills down when
they are not enough:

- Tier 1: category summaries for the categories the query is about
- Tier 2: the owner's most important records
- Tier 3: hybrid retrieval (direct + vector + graph)

Fast and accurate modes are two configurations of the same escalation:
accurate mode asks a language model whether the summaries suffice, fast mode
uses a coverage heuristic and sends queries that name entities straight to
tier 3.
"""

import logging
import time
from typing import List, Optional

from casual_llm import LLMProvider

from tiered_memory.categories import identify_relevant_categories
from tiered_memory.config import RetrievalConfig
from tiered_memory.retrieval.hybrid import HybridRetriever
from tiered_memory.retrieval.models import QueryPlan, SufficiencyCheck, TieredResult
from tiered_memory.retrieval.sufficiency import (
    LLMSufficiencyChecker,
    check_entity_sufficiency,
    heuristic_summary_check,
)
from tiered_memory.storage.protocols import RecordStore, SummaryStore

logger = logging.getLogger(__name__)


class TieredRetriever:
    """
    Escalating retrieval over summaries, top records and hybrid search.

    Example:
        >>> retriever = TieredRetriever(records, summaries, hybrid, llm, RetrievalConfig.accurate())
        >>> result = await retriever.retrieve("user-1", "How is work going?")
        >>> result.tier_used
        1
    """

    def __init__(
        self,
        record_store: RecordStore,
        summary_store: SummaryStore,
        hybrid: HybridRetriever,
        llm_provider: Optional[LLMProvider] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the tiered retriever.

        Args:
            record_store: Store for memory records (tier 2)
            summary_store: Store for category summaries (tier 1)
            hybrid: Hybrid retriever (tier 3)
            llm_provider: Model for the accurate-mode tier 1 check
            config: Retrieval configuration (default: fast mode)
        """
        self.record_store = record_store
        self.summary_store = summary_store
        self.hybrid = hybrid
        self.config = config or RetrievalConfig.fast()
        self.sufficiency_checker = (
            LLMSufficiencyChecker(llm_provider, max_tokens=self.config.sufficiency_max_tokens)
            if llm_provider is not None
            else None
        )
        self.tier_counts = {1: 0, 2: 0, 3: 0}

        logger.info(f"TieredRetriever initialized (mode={self.config.mode})")

    async def _check_summaries(
        self, query: str, summaries, categories: List[str], config: RetrievalConfig
    ) -> SufficiencyCheck:
        if config.mode == "accurate":
            if self.sufficiency_checker is not None:
                return await self.sufficiency_checker.check_summaries(query, summaries)
            logger.warning("Accurate mode without a language model; using heuristic check")
        return heuristic_summary_check(summaries, categories)

    async def retrieve(
        self,
        owner_id: str,
        query: str,
        plan: Optional[QueryPlan] = None,
        categories: Optional[List[str]] = None,
        skip_tier1: bool = False,
        skip_tier2: bool = False,
        force_tier3: bool = False,
        config: Optional[RetrievalConfig] = None,
    ) -> TieredResult:
        """
        Retrieve context for a query, escalating tiers as needed.

        Args:
            owner_id: The owner ID
            query: The user query
            plan: Prepared query plan (default: built from the query)
            categories: Explicit categories for tier 1 (default: keyword match)
            skip_tier1: Do not consult category summaries
            skip_tier2: Do not consult top records
            force_tier3: Go straight to hybrid retrieval
            config: Override retrieval config for this call

        Returns:
            TieredResult holding the material of the tier that answered
        """
        started_at = time.perf_counter()
        config = config or self.config
        plan = plan or QueryPlan.from_query(query)
        if categories is None:
            categories = identify_relevant_categories(query, limit=config.max_categories)

        checks: List[SufficiencyCheck] = []

        def finish(result: TieredResult) -> TieredResult:
            result.categories = categories
            result.sufficiency_checks = checks
            result.processing_time_ms = (time.perf_counter() - started_at) * 1000
            self.tier_counts[result.tier_used] += 1
            logger.info(
                f"Tiered retrieval for {owner_id}: tier {result.tier_used} "
                f"({result.processing_time_ms:.1f}ms, mode={config.mode})"
            )
            return result

        escalate_now = force_tier3 or (
            config.skip_to_full_on_entities and bool(plan.entity_names)
        )

        if not escalate_now and not skip_tier1:
            summaries = self.summary_store.list_summaries(owner_id, categories or None)
            check = await self._check_summaries(query, summaries, categories, config)
            checks.append(check)

            if check.sufficient and check.confidence >= config.tier1_min_confidence:
                logger.debug(f"Tier 1 sufficient: {check.reason}")
                return finish(TieredResult(tier_used=1, summaries=summaries))

        if not escalate_now and not skip_tier2:
            records = self.record_store.top_records(owner_id, limit=config.tier2_limit)
            check = check_entity_sufficiency(plan, records, config)
            checks.append(check)

            if check.sufficient and check.confidence >= config.tier2_min_confidence:
                logger.debug(f"Tier 2 sufficient: {check.reason}")
                return finish(TieredResult(tier_used=2, entities=records))

        fusion = await self.hybrid.retrieve(owner_id, plan, config.fusion)
        return finish(
            TieredResult(tier_used=3, full_results=fusion.items, fusion_stats=fusion.stats)
        )

    def get_metrics(self) -> dict:
        return {f"retrieval_tier{tier}_count": count for tier, count in self.tier_counts.items()}

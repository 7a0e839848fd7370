"""
Sufficiency checks for tiered retrieval.

Tier 1 (category summaries) is judged either by a language model (accurate
mode) or by a coverage heuristic (fast mode). Tier 2 (top records) is judged
by entity-name coverage or, for queries without names, by record count.
"""

import logging
from typing import List, Optional

from casual_llm import LLMProvider

from tiered_memory.config import RetrievalConfig
from tiered_memory.errors import UpstreamLanguageModelError
from tiered_memory.intelligence.llm import generate_json
from tiered_memory.intelligence.prompts import SUMMARY_SUFFICIENCY_PROMPT
from tiered_memory.models import CategorySummary, MemoryRecord
from tiered_memory.retrieval.models import QueryPlan, SufficiencyCheck

logger = logging.getLogger(__name__)


def _as_float(value, default: float = 0.0) -> float:
    try:
        return min(max(float(value), 0.0), 1.0)
    except (TypeError, ValueError):
        return default


def heuristic_summary_check(
    summaries: List[CategorySummary], categories: List[str]
) -> SufficiencyCheck:
    """Summaries suffice when the identified categories all have one."""
    if not summaries:
        return SufficiencyCheck(tier=1, sufficient=False, confidence=0.0, reason="no_summaries")
    if not categories:
        return SufficiencyCheck(
            tier=1, sufficient=False, confidence=0.0, reason="no_categories_identified"
        )

    covered = {summary.category for summary in summaries if summary.summary.strip()}
    matched = [category for category in categories if category in covered]
    confidence = len(matched) / len(categories)

    return SufficiencyCheck(
        tier=1,
        sufficient=bool(matched),
        confidence=confidence,
        reason=f"summaries for {len(matched)}/{len(categories)} categories",
        matched=matched,
        missing=[category for category in categories if category not in covered],
    )


def check_entity_sufficiency(
    plan: QueryPlan, records: List[MemoryRecord], config: RetrievalConfig
) -> SufficiencyCheck:
    """
    Judge whether top records answer the query.

    With entity names in the plan, the share of names found among record
    names (substring, case-insensitive) must reach entity_match_ratio.
    Otherwise at least min_tier2_records records are needed, with confidence
    growing to 1.0 at full_confidence_records.
    """
    if plan.entity_names:
        record_names = [record.name.lower() for record in records]
        matched = [
            name
            for name in plan.entity_names
            if any(name.lower() in record_name for record_name in record_names)
        ]
        ratio = len(matched) / len(plan.entity_names)
        return SufficiencyCheck(
            tier=2,
            sufficient=ratio >= config.entity_match_ratio,
            confidence=ratio,
            reason=f"matched {len(matched)}/{len(plan.entity_names)} entities",
            matched=matched,
            missing=[name for name in plan.entity_names if name not in matched],
        )

    return SufficiencyCheck(
        tier=2,
        sufficient=len(records) >= config.min_tier2_records,
        confidence=min(len(records) / config.full_confidence_records, 1.0),
        reason=f"{len(records)} records available",
        matched=[record.name for record in records],
    )


class LLMSufficiencyChecker:
    """
    Asks a language model whether category summaries answer a query.

    Any failure is reported as insufficient with zero confidence, which makes
    the orchestrator escalate.
    """

    def __init__(self, llm_provider: LLMProvider, max_tokens: int = 200):
        self.llm_provider = llm_provider
        self.max_tokens = max_tokens
        self.llm_failure_count = 0

    async def check_summaries(
        self, query: str, summaries: List[CategorySummary]
    ) -> SufficiencyCheck:
        if not summaries:
            return SufficiencyCheck(tier=1, sufficient=False, confidence=0.0, reason="no_summaries")

        summary_context = "\n\n".join(
            f"[{summary.category.replace('_', ' ').upper()}]: {summary.summary}"
            for summary in summaries
        )
        prompt = SUMMARY_SUFFICIENCY_PROMPT.format(query=query, summaries=summary_context)

        try:
            data = await generate_json(
                self.llm_provider, prompt, temperature=0.0, max_tokens=self.max_tokens
            )
        except UpstreamLanguageModelError as e:
            self.llm_failure_count += 1
            logger.warning(f"Sufficiency check failed: {e}")
            return SufficiencyCheck(tier=1, sufficient=False, confidence=0.0, reason="error")

        needs: Optional[list] = data.get("needs_specifics")
        return SufficiencyCheck(
            tier=1,
            sufficient=data.get("sufficient") is True,
            confidence=_as_float(data.get("confidence")),
            reason=str(data.get("reason", "")),
            needs_specifics=[str(item) for item in needs] if isinstance(needs, list) else [],
        )

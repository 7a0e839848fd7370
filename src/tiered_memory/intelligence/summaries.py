"""
Category summary evolution.

Each (owner, category) has one prose summary that is rewritten, never
appended to, whenever new records arrive in that category.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from casual_llm import LLMProvider

from tiered_memory.categories import classify_record
from tiered_memory.errors import TieredMemoryError, UpstreamLanguageModelError
from tiered_memory.intelligence.llm import generate_text
from tiered_memory.intelligence.prompts import EVOLVE_SUMMARY_PROMPT
from tiered_memory.models import CategorySummary, MemoryRecord
from tiered_memory.storage.protocols import SummaryStore

logger = logging.getLogger(__name__)


@dataclass
class SummaryEvolutionResult:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def describe_record(record: MemoryRecord) -> str:
    label = record.entity_type or record.memory_type
    detail = record.summary or "; ".join(record.context_notes[-3:])
    return f"- {record.name} ({label}): {detail}"


class CategorySummaryEvolver:
    """
    Rewrites category summaries from newly stored records.

    Example:
        >>> evolver = CategorySummaryEvolver(summary_store, llm)
        >>> result = await evolver.evolve("user-1", new_records)
        >>> result.updated
        ['work_life']
    """

    def __init__(
        self,
        summary_store: SummaryStore,
        llm_provider: LLMProvider,
        max_tokens: int = 300,
    ):
        self.summary_store = summary_store
        self.llm_provider = llm_provider
        self.max_tokens = max_tokens
        self.llm_failure_count = 0

        logger.info("CategorySummaryEvolver initialized")

    def group_by_category(self, records: List[MemoryRecord]) -> Dict[str, List[MemoryRecord]]:
        grouped: Dict[str, List[MemoryRecord]] = defaultdict(list)
        for record in records:
            grouped[classify_record(record)].append(record)
        return dict(grouped)

    @staticmethod
    def _entity_count(
        existing: Optional[CategorySummary], records: List[MemoryRecord], full_rebuild: bool
    ) -> int:
        if full_rebuild or existing is None:
            return len(records)
        return existing.entity_count + len(records)

    async def rewrite_summary(
        self, category: str, existing: Optional[str], records: List[MemoryRecord]
    ) -> str:
        """
        Ask the model for a rewritten summary.

        Raises:
            UpstreamLanguageModelError: If the model call fails
        """
        existing_block = (
            f"CURRENT SUMMARY:\n{existing}\n\n" if existing else "No existing summary yet.\n\n"
        )
        prompt = EVOLVE_SUMMARY_PROMPT.format(
            category=category.replace("_", " "),
            existing_block=existing_block,
            new_information="\n".join(describe_record(record) for record in records),
        )
        return await generate_text(
            self.llm_provider, prompt, temperature=0.5, max_tokens=self.max_tokens
        )

    async def evolve(
        self, owner_id: str, records: List[MemoryRecord], full_rebuild: bool = False
    ) -> SummaryEvolutionResult:
        """
        Update the summaries touched by a batch of records.

        Model failures keep the previous summary text; store failures are
        collected per category and the batch continues.

        Args:
            owner_id: The owner ID
            records: Newly added or changed records
            full_rebuild: records is every active record, so entity_count is
                reset to the category size instead of accumulated

        Returns:
            SummaryEvolutionResult listing created, updated and failed categories
        """
        result = SummaryEvolutionResult()

        for category, category_records in self.group_by_category(records).items():
            try:
                existing = self.summary_store.get_summary(owner_id, category)
                previous_text = existing.summary if existing else None

                try:
                    text = await self.rewrite_summary(category, previous_text, category_records)
                except UpstreamLanguageModelError as e:
                    self.llm_failure_count += 1
                    logger.warning(f"Summary rewrite failed for {category}: {e}")
                    if previous_text is None:
                        result.errors.append(f"{category}: {e}")
                        continue
                    text = previous_text

                self.summary_store.upsert_summary(
                    CategorySummary(
                        owner_id=owner_id,
                        category=category,
                        summary=text,
                        entity_count=self._entity_count(existing, category_records, full_rebuild),
                        last_records=[record.name for record in category_records],
                        updated_at=datetime.now(),
                    )
                )
            except TieredMemoryError as e:
                logger.error(f"Failed to evolve summary {category} for {owner_id}: {e}")
                result.errors.append(f"{category}: {e}")
                continue

            (result.updated if existing else result.created).append(category)

        logger.info(
            f"Evolved summaries for {owner_id}: created={result.created}, "
            f"updated={result.updated}, errors={len(result.errors)}"
        )
        return result

"""
In-memory category summary storage implementation.

Suitable for testing and development; data is lost on restart.
"""

import logging
from typing import Dict, List, Optional, Tuple

from tiered_memory.models import CategorySummary

logger = logging.getLogger(__name__)


class InMemorySummaryStore:
    """
    In-memory implementation of the SummaryStore protocol.

    Keeps one summary per (owner_id, category).
    """

    def __init__(self):
        self._summaries: Dict[Tuple[str, str], CategorySummary] = {}
        logger.info("InMemorySummaryStore initialized")

    def get_summary(self, owner_id: str, category: str) -> Optional[CategorySummary]:
        summary = self._summaries.get((owner_id, category))
        return summary.model_copy() if summary else None

    def upsert_summary(self, summary: CategorySummary) -> CategorySummary:
        key = (summary.owner_id, summary.category)
        action = "Updated" if key in self._summaries else "Created"
        self._summaries[key] = summary.model_copy()

        logger.debug(f"{action} summary {summary.category} for owner {summary.owner_id}")
        return summary

    def list_summaries(
        self, owner_id: str, categories: Optional[List[str]] = None
    ) -> List[CategorySummary]:
        summaries = [
            summary.model_copy()
            for (owner, category), summary in self._summaries.items()
            if owner == owner_id and (categories is None or category in categories)
        ]
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def clear_owner(self, owner_id: str) -> int:
        keys = [key for key in self._summaries if key[0] == owner_id]
        for key in keys:
            del self._summaries[key]

        logger.info(f"Cleared {len(keys)} summaries for owner_id={owner_id}")
        return len(keys)

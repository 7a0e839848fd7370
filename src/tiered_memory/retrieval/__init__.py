"""
Retrieval components.

Provides the tiered orchestrator, hybrid fusion and the sufficiency checks
that decide when to escalate.
"""

from tiered_memory.retrieval.hybrid import HybridRetriever, fuse_results, select_seeds
from tiered_memory.retrieval.models import (
    FusionResult,
    FusionStats,
    QueryPlan,
    RetrievedItem,
    SufficiencyCheck,
    TieredResult,
)
from tiered_memory.retrieval.sufficiency import (
    LLMSufficiencyChecker,
    check_entity_sufficiency,
    heuristic_summary_check,
)
from tiered_memory.retrieval.tiered import TieredRetriever

__all__ = [
    "TieredRetriever",
    "HybridRetriever",
    "LLMSufficiencyChecker",
    "QueryPlan",
    "RetrievedItem",
    "FusionResult",
    "FusionStats",
    "SufficiencyCheck",
    "TieredResult",
    "fuse_results",
    "select_seeds",
    "check_entity_sufficiency",
    "heuristic_summary_check",
]

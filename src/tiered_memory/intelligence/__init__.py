"""
Intelligence components for the memory lifecycle.

Provides duplicate consolidation, category summary evolution, the secret
guard and the language-model call helpers they share.
"""

from tiered_memory.intelligence.consolidation import (
    ConsolidationCandidate,
    ConsolidationEngine,
    ConsolidationResult,
    MergeOutcome,
)
from tiered_memory.intelligence.llm import generate_json, generate_text, parse_json_object
from tiered_memory.intelligence.secrets import RedactionResult, contains_secret, redact_secrets
from tiered_memory.intelligence.summaries import CategorySummaryEvolver, SummaryEvolutionResult

__all__ = [
    # Consolidation
    "ConsolidationEngine",
    "ConsolidationCandidate",
    "ConsolidationResult",
    "MergeOutcome",
    # Summaries
    "CategorySummaryEvolver",
    "SummaryEvolutionResult",
    # Secrets
    "RedactionResult",
    "redact_secrets",
    "contains_secret",
    # LLM helpers
    "generate_text",
    "generate_json",
    "parse_json_object",
]

"""
Context assembly for downstream prompts.
"""

from tiered_memory.context.assembler import (
    AssembledContext,
    ContextAssembler,
    ContextSection,
    ProfileContext,
    build_user_context_prompt,
    fit_to_budget,
    format_for_prompt,
    format_record,
)
from tiered_memory.context.scoring import (
    calculate_final_score,
    calculate_time_decay,
    estimate_tokens,
    recency_score,
)

__all__ = [
    "ContextAssembler",
    "AssembledContext",
    "ContextSection",
    "ProfileContext",
    "format_for_prompt",
    "format_record",
    "fit_to_budget",
    "build_user_context_prompt",
    "calculate_final_score",
    "calculate_time_decay",
    "estimate_tokens",
    "recency_score",
]

"""
Lifecycle decisions for candidate facts.

Provides the decision models, the language-model decider and the
DecisionEngine that orders the guards in front of it.
"""

from tiered_memory.decisions.models import MemoryDecision, SimilarRecord
from tiered_memory.decisions.decider import LLMMemoryDecider, MemoryDecider
from tiered_memory.decisions.engine import DecisionEngine

__all__ = [
    "DecisionEngine",
    "LLMMemoryDecider",
    "MemoryDecider",
    "MemoryDecision",
    "SimilarRecord",
]

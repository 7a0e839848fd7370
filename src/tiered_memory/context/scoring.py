"""
Scoring helpers for context assembly.

final_score = importance * 0.3 + recency * 0.25 + relevance * 0.35
              + mention_frequency * 0.1

Recency decays exponentially with a 14-day half-life by default.
"""

import math
from datetime import datetime
from typing import Optional

from tiered_memory.config import ContextConfig

NEUTRAL_SCORE = 0.5


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def recency_score(days: float, half_life_days: float = 14.0) -> float:
    """0.5 ** (days / half_life); ages at or below zero score 1.0."""
    if days <= 0:
        return 1.0
    return 0.5 ** (days / half_life_days)


def calculate_time_decay(
    date: Optional[datetime], half_life_days: float = 14.0, now: Optional[datetime] = None
) -> float:
    """
    Recency of a timestamp.

    Args:
        date: When the item was last updated (None scores neutral)
        half_life_days: Days for the score to halve
        now: Reference time (default: datetime.now())

    Returns:
        Score in (0, 1]; future dates clamp to 1.0, missing dates give 0.5
    """
    if date is None:
        return NEUTRAL_SCORE

    now = now or datetime.now()
    if date.tzinfo is not None and now.tzinfo is None:
        date = date.replace(tzinfo=None)

    days = (now - date).total_seconds() / 86400
    return recency_score(days, half_life_days)


def mention_frequency(mention_count: int) -> float:
    return min(max(mention_count, 0) / 10, 1.0)


def resolve_relevance(
    combined_score: Optional[float] = None, retrieval_score: Optional[float] = None
) -> float:
    """Combined score if present, else the single-source score, else neutral."""
    if combined_score is not None:
        return combined_score
    if retrieval_score is not None:
        return retrieval_score
    return NEUTRAL_SCORE


def calculate_final_score(
    importance: float,
    recency: float,
    relevance: float,
    mention_freq: float,
    config: Optional[ContextConfig] = None,
) -> float:
    config = config or ContextConfig()
    return (
        importance * config.importance_weight
        + recency * config.recency_weight
        + relevance * config.relevance_weight
        + mention_freq * config.mention_weight
    )

"""
Utility functions for tiered-memory.
"""

from tiered_memory.utils.date_normalizer import (
    extract_and_normalize_date,
    normalize_candidate_dates,
    parse_temporal_marker,
    to_naive_local,
)

__all__ = [
    "extract_and_normalize_date",
    "normalize_candidate_dates",
    "parse_temporal_marker",
    "to_naive_local",
]

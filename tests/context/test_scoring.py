"""Tests for context scoring helpers."""

from datetime import datetime, timedelta

import pytest

from tiered_memory.config import ContextConfig
from tiered_memory.context.scoring import (
    calculate_final_score,
    calculate_time_decay,
    estimate_tokens,
    mention_frequency,
    recency_score,
    resolve_relevance,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.mark.parametrize(
    "days,expected",
    [(0, 1.0), (-3, 1.0), (7, 0.5 ** 0.5), (14, 0.5), (28, 0.25)],
)
def test_recency_half_life(days, expected):
    assert recency_score(days) == pytest.approx(expected)


def test_time_decay_from_dates():
    assert calculate_time_decay(NOW - timedelta(days=14), now=NOW) == pytest.approx(0.5)
    assert calculate_time_decay(NOW - timedelta(days=28), now=NOW) == pytest.approx(0.25)
    assert calculate_time_decay(NOW + timedelta(days=2), now=NOW) == 1.0
    assert calculate_time_decay(None, now=NOW) == 0.5


def test_time_decay_custom_half_life():
    assert calculate_time_decay(NOW - timedelta(days=7), half_life_days=7, now=NOW) == pytest.approx(0.5)


def test_mention_frequency():
    assert mention_frequency(3) == pytest.approx(0.3)
    assert mention_frequency(25) == 1.0
    assert mention_frequency(-1) == 0.0


def test_resolve_relevance():
    assert resolve_relevance(0.8, 0.6) == 0.8
    assert resolve_relevance(None, 0.6) == 0.6
    assert resolve_relevance(0.0, 0.9) == 0.0
    assert resolve_relevance(None, 0.0) == 0.0
    assert resolve_relevance(None, None) == 0.5


def test_final_score_weights():
    assert calculate_final_score(1.0, 1.0, 1.0, 1.0) == pytest.approx(1.0)
    assert calculate_final_score(0.8, 0.5, 0.6, 0.3) == pytest.approx(0.605)


def test_final_score_custom_weights():
    config = ContextConfig(
        importance_weight=1.0, recency_weight=0.0, relevance_weight=0.0, mention_weight=0.0
    )

    assert calculate_final_score(0.8, 0.1, 0.1, 0.1, config) == pytest.approx(0.8)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2

"""
Temporal marker normalization for candidate facts.

Candidate facts arrive from extraction with temporal markers that may be ISO
timestamps or natural-language phrases ("next Friday", "in 3 days"). This
module turns them into absolute datetimes and rewrites relative references in
fact content so stored summaries stay meaningful after the day they were
written.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

import dateparser

if TYPE_CHECKING:
    from tiered_memory.models import CandidateFact

logger = logging.getLogger(__name__)


# Monday=0, Sunday=6
WEEKDAY_MAP = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

# Memory types whose future dates mark when they stop being current
EXPIRING_MEMORY_TYPES = ("event", "goal", "action")

DATEPARSER_SETTINGS = {
    "PREFER_DATES_FROM": "future",
    "RETURN_AS_TIMEZONE_AWARE": False,
}


def get_next_weekday(current_date: datetime, target_weekday: int, min_days_ahead: int = 1) -> datetime:
    """
    Get the next occurrence of a weekday.

    Args:
        current_date: The reference date
        target_weekday: Target day (0=Monday, 6=Sunday)
        min_days_ahead: Minimum days in the future (1 = at least tomorrow)

    Returns:
        datetime of the next occurrence of that weekday
    """
    days_ahead = (target_weekday - current_date.weekday()) % 7
    if days_ahead < min_days_ahead:
        days_ahead += 7
    return current_date + timedelta(days=days_ahead)


def _relative_patterns(reference_date: datetime):
    weekday_names = "|".join(WEEKDAY_MAP)
    return [
        (
            r"\btomorrow(?:\s+(?:morning|afternoon|evening|night))?\b",
            lambda m: reference_date + timedelta(days=1),
        ),
        (
            r"\bin\s+(\d+)\s+days?\b",
            lambda m: reference_date + timedelta(days=int(m.group(1))),
        ),
        (
            rf"\bnext\s+({weekday_names})\b",
            lambda m: get_next_weekday(reference_date, WEEKDAY_MAP[m.group(1).lower()]),
        ),
        (
            rf"\b(?:on\s+)?({weekday_names})\b",
            lambda m: get_next_weekday(reference_date, WEEKDAY_MAP[m.group(1).lower()]),
        ),
    ]


def extract_and_normalize_date(text: str, reference_date: datetime) -> tuple[str, Optional[datetime]]:
    """
    Replace the first relative date reference in text with an absolute date.

    Args:
        text: Fact content potentially containing relative dates
        reference_date: The reference date (usually "now")

    Returns:
        Tuple of (normalized_text, absolute_date). absolute_date is None when
        no relative reference was found.
    """
    for pattern, resolve in _relative_patterns(reference_date):
        match = re.search(pattern, text, re.IGNORECASE)
        if not match:
            continue

        absolute_date = resolve(match)
        replacement = f"on {absolute_date.strftime('%B %d')}"
        normalized = text[: match.start()] + replacement + text[match.end():]

        logger.debug(
            f"Normalized date: '{match.group(0)}' -> '{replacement}' "
            f"({absolute_date.strftime('%Y-%m-%d')})"
        )
        return normalized, absolute_date

    return text, None


def to_naive_local(moment: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def parse_temporal_marker(value: Any, reference_date: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a temporal marker into a datetime.

    Accepts datetimes, ISO strings, and natural-language phrases understood
    by dateparser. Unparseable markers are dropped with a warning rather than
    rejecting the whole fact. Offsets are converted to naive local time so
    markers compare with datetime.now().
    """
    if value is None or isinstance(value, datetime):
        return to_naive_local(value)

    if not isinstance(value, str) or not value.strip():
        return None

    try:
        return to_naive_local(datetime.fromisoformat(value))
    except ValueError:
        pass

    settings = dict(DATEPARSER_SETTINGS)
    settings["RELATIVE_BASE"] = to_naive_local(reference_date) or datetime.now()
    parsed = dateparser.parse(value, settings=settings)

    if parsed is None:
        logger.warning(f"Could not parse temporal marker: '{value}'")

    return to_naive_local(parsed)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=0)


def normalize_candidate_dates(candidate: "CandidateFact", reference_date: datetime) -> "CandidateFact":
    """
    Normalize relative dates inside a candidate fact's content.

    Future-dated events, goals and actions without an explicit expiry get
    expires_at set to the end of the referenced day.

    Returns:
        A copy of the candidate with normalized content and expiry
    """
    reference_date = to_naive_local(reference_date)
    normalized_text, absolute_date = extract_and_normalize_date(candidate.content, reference_date)
    updates: dict = {}

    if normalized_text != candidate.content:
        logger.info(f"Date normalized: '{candidate.content}' -> '{normalized_text}'")
        updates["content"] = normalized_text

    if (
        absolute_date is not None
        and candidate.expires_at is None
        and candidate.memory_type in EXPIRING_MEMORY_TYPES
        and absolute_date.date() > reference_date.date()
    ):
        updates["expires_at"] = end_of_day(absolute_date)

    if not updates:
        return candidate

    return candidate.model_copy(update=updates)

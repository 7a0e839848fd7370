"""
Context assembly.

Scores retrieved material, ranks it and packs it into a token budget split
across three sections: category summaries, top entities and query-specific
memories. The item that overflows a section is truncated when enough budget
remains, otherwise dropped; either way the section stops there.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from pydantic import BaseModel, Field

from tiered_memory.config import ContextConfig
from tiered_memory.context.scoring import (
    calculate_final_score,
    calculate_time_decay,
    estimate_tokens,
    mention_frequency,
    resolve_relevance,
)
from tiered_memory.models import CategorySummary, MemoryRecord
from tiered_memory.retrieval.models import RetrievedItem, TieredResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECTION_HEADERS = {
    "summaries": "What I know about you:",
    "entities": "People and things in your world:",
    "relevant_memories": "Relevant memories:",
}


class ProfileContext(BaseModel):
    """Static facts about the user placed ahead of retrieved context."""

    name: Optional[str] = None
    life_seasons: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)


@dataclass
class ContextSection:
    type: str
    header: str
    content: List[str]
    tokens: int = 0


@dataclass
class AssembledContext:
    sections: List[ContextSection] = field(default_factory=list)
    total_tokens: int = 0
    items_included: Dict[str, int] = field(
        default_factory=lambda: {"summaries": 0, "entities": 0, "relevant_memories": 0}
    )

    @property
    def is_empty(self) -> bool:
        return not self.sections


def format_summary(summary: CategorySummary) -> str:
    return f"[{summary.category.replace('_', ' ').upper()}]: {summary.summary}"


def format_record(record: MemoryRecord, relationship_path: Sequence[str] = ()) -> str:
    """One line per record: name and type, summary, relationship, recent notes, sentiment."""
    parts = [f"[{record.name}] ({record.entity_type or record.memory_type})"]

    if record.summary:
        parts.append(record.summary)

    relationship = getattr(record.payload, "relationship", None)
    if relationship:
        parts.append(f"Relationship: {relationship}")

    if len(relationship_path) > 1:
        parts.append(f"Connected via: {' -> '.join(relationship_path)}")

    if record.context_notes:
        parts.append(f"Recent: {'; '.join(record.context_notes[-2:])}")

    if record.sentiment_average > 0.3:
        parts.append("Sentiment: positive")
    elif record.sentiment_average < -0.3:
        parts.append("Sentiment: negative")

    return " | ".join(parts)


def format_item(item: RetrievedItem) -> str:
    if item.record is None:
        return f"[{item.name}]"
    return format_record(item.record, item.relationship_path)


def fit_to_budget(
    items: Sequence[T], budget: int, formatter: Callable[[T], str], min_truncation_tokens: int = 50
) -> Tuple[List[str], int]:
    """
    Greedily pack formatted items into a token budget.

    Returns:
        Tuple of (lines, tokens used)
    """
    lines: List[str] = []
    used = 0

    for item in items:
        text = formatter(item)
        tokens = estimate_tokens(text)

        if used + tokens > budget:
            remaining = budget - used
            if remaining > min_truncation_tokens:
                lines.append(text[: remaining * 4 - 3] + "...")
                used += remaining
            break

        lines.append(text)
        used += tokens

    return lines, used


class ContextAssembler:
    """
    Builds prompt-ready context from retrieval output.

    Example:
        >>> assembler = ContextAssembler(ContextConfig(max_tokens=2000))
        >>> context = assembler.assemble_from_result(tiered_result)
        >>> prompt = build_user_context_prompt(context, ProfileContext(name="Sam"))
    """

    def __init__(self, config: Optional[ContextConfig] = None):
        self.config = config or ContextConfig()

    def score_record(
        self,
        record: MemoryRecord,
        combined_score: Optional[float] = None,
        retrieval_score: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> float:
        return calculate_final_score(
            importance=record.importance_score,
            recency=calculate_time_decay(
                record.updated_at, self.config.recency_half_life_days, now
            ),
            relevance=resolve_relevance(combined_score, retrieval_score),
            mention_freq=mention_frequency(record.mention_count),
            config=self.config,
        )

    def score_item(self, item: RetrievedItem, now: Optional[datetime] = None) -> float:
        if item.record is None:
            return calculate_final_score(
                0.5, 0.5, resolve_relevance(item.combined_score, item.retrieval_score), 0.0,
                self.config,
            )
        return self.score_record(item.record, item.combined_score, item.retrieval_score, now)

    def _rank(self, items: Sequence[T], scorer: Callable[[T], float]) -> List[T]:
        return sorted(items, key=scorer, reverse=True)

    def _add_section(
        self,
        context: AssembledContext,
        section_type: str,
        items: Sequence[T],
        share: float,
        budget_total: int,
        formatter: Callable[[T], str],
    ) -> None:
        if not items:
            return

        lines, tokens = fit_to_budget(
            items, int(budget_total * share), formatter, self.config.min_truncation_tokens
        )
        if not lines:
            return

        context.sections.append(
            ContextSection(
                type=section_type,
                header=SECTION_HEADERS[section_type],
                content=lines,
                tokens=tokens,
            )
        )
        context.total_tokens += tokens
        context.items_included[section_type] = len(lines)

    def assemble(
        self,
        summaries: Optional[List[CategorySummary]] = None,
        entities: Optional[List[MemoryRecord]] = None,
        memories: Optional[List[RetrievedItem]] = None,
        max_tokens: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AssembledContext:
        """
        Assemble context sections within a token budget.

        Summaries keep their given order; entities and memories are ranked
        by final score.

        Args:
            summaries: Category summaries (tier 1)
            entities: Top records (tier 2)
            memories: Hybrid retrieval results (tier 3)
            max_tokens: Total budget (default from config)
            now: Reference time for recency

        Returns:
            AssembledContext
        """
        budget_total = max_tokens or self.config.max_tokens
        now = now or datetime.now()
        context = AssembledContext()

        self._add_section(
            context, "summaries", summaries or [], self.config.summaries_share,
            budget_total, format_summary,
        )
        self._add_section(
            context,
            "entities",
            self._rank(entities or [], lambda record: self.score_record(record, now=now)),
            self.config.entities_share,
            budget_total,
            format_record,
        )
        self._add_section(
            context,
            "relevant_memories",
            self._rank(memories or [], lambda item: self.score_item(item, now)),
            self.config.memories_share,
            budget_total,
            format_item,
        )

        logger.debug(
            f"Assembled context: {context.total_tokens} tokens, items={context.items_included}"
        )
        return context

    def assemble_from_result(
        self, result: TieredResult, max_tokens: Optional[int] = None
    ) -> AssembledContext:
        return self.assemble(
            summaries=result.summaries,
            entities=result.entities,
            memories=result.full_results,
            max_tokens=max_tokens,
        )

    def assemble_quick_context(
        self,
        records: List[Union[MemoryRecord, RetrievedItem]],
        max_tokens: int = 2000,
        now: Optional[datetime] = None,
    ) -> Tuple[str, int, int]:
        """
        Score a flat list of records into one block without sections.

        Returns:
            Tuple of (text, tokens, items included)
        """
        if not records:
            return "", 0, 0

        now = now or datetime.now()

        def score(entry) -> float:
            if isinstance(entry, RetrievedItem):
                return self.score_item(entry, now)
            return self.score_record(entry, now=now)

        def fmt(entry) -> str:
            if isinstance(entry, RetrievedItem):
                return format_item(entry)
            return format_record(entry)

        lines, tokens = fit_to_budget(
            self._rank(records, score), max_tokens, fmt, self.config.min_truncation_tokens
        )
        return "\n".join(lines), tokens, len(lines)


def format_for_prompt(context: AssembledContext) -> str:
    """Render sections as '## header' blocks separated by blank lines."""
    parts = []
    for section in context.sections:
        parts.append(f"## {section.header}")
        parts.append("\n".join(section.content))
        parts.append("")
    return "\n".join(parts).strip()


def build_user_context_prompt(
    context: AssembledContext, profile: Optional[ProfileContext] = None
) -> str:
    """Wrap formatted context (and optional profile lines) in <user_context> tags."""
    parts = ["<user_context>"]

    if profile is not None:
        if profile.name:
            parts.append(f"User's name: {profile.name}")
        if profile.life_seasons:
            parts.append(f"Life season: {', '.join(profile.life_seasons)}")
        if profile.focus_areas:
            parts.append(f"Currently focused on: {', '.join(profile.focus_areas)}")
        parts.append("")

    formatted = format_for_prompt(context)
    if formatted:
        parts.append(formatted)

    parts.append("</user_context>")
    return "\n".join(parts)

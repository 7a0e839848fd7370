"""
Data structures for tiered and hybrid retrieval.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tiered_memory.models import CategorySummary, MemoryRecord

RetrievalSource = Literal["direct", "vector", "graph"]

# Capitalised words that start sentences or questions rather than name things
_NON_NAME_WORDS = {
    "i", "what", "who", "when", "where", "why", "how", "which", "did", "does", "do", "is",
    "are", "was", "were", "can", "could", "should", "would", "will", "tell", "the", "a",
    "an", "my", "me", "and", "or", "about", "have", "has", "any", "remind", "show",
}


class QueryPlan(BaseModel):
    """
    A query prepared for retrieval.

    Attributes:
        query: The original user query
        vector_query: Text to embed for vector search
        entity_names: Names to look up directly
    """

    query: str
    vector_query: str = ""
    entity_names: List[str] = Field(default_factory=list)

    @field_validator("entity_names")
    @classmethod
    def _dedupe_names(cls, names: List[str]) -> List[str]:
        seen = {}
        for name in names:
            cleaned = name.strip()
            if cleaned and cleaned.lower() not in seen:
                seen[cleaned.lower()] = cleaned
        return list(seen.values())

    @classmethod
    def from_query(cls, query: str, entity_names: Optional[List[str]] = None) -> "QueryPlan":
        """
        Build a plan from a raw query.

        Without explicit entity names, capitalised words that are not
        question words are taken as names.
        """
        if entity_names is None:
            words = re.findall(r"\b[A-Z][a-zA-Z'\-]+\b", query)
            entity_names = [
                word.removesuffix("'s") for word in words if word.lower() not in _NON_NAME_WORDS
            ]
        return cls(query=query, vector_query=query, entity_names=entity_names)


@dataclass
class RetrievedItem:
    """A record returned by hybrid retrieval with per-source scores."""

    id: str
    name: str
    record: Optional[MemoryRecord]
    retrieval_source: RetrievalSource
    retrieval_score: float
    combined_score: Optional[float] = None
    sources: List[RetrievalSource] = field(default_factory=list)
    direct_score: Optional[float] = None
    vector_score: Optional[float] = None
    graph_score: Optional[float] = None
    relationship_path: List[str] = field(default_factory=list)
    relationship_types: List[str] = field(default_factory=list)
    graph_depth: Optional[int] = None

    @property
    def is_multi_source(self) -> bool:
        return len(self.sources) > 1


@dataclass
class FusionStats:
    direct_count: int = 0
    vector_count: int = 0
    graph_count: int = 0
    merged_count: int = 0
    multi_source_count: int = 0


@dataclass
class FusionResult:
    items: List[RetrievedItem]
    stats: FusionStats
    seeds: List[str] = field(default_factory=list)


@dataclass
class SufficiencyCheck:
    """
    Whether a tier's material is enough to answer the query.

    Attributes:
        tier: Tier that was checked (1 or 2)
        sufficient: The checker's verdict
        confidence: Checker confidence (0.0-1.0)
        reason: Short explanation
        matched / missing: Entity names found and not found (tier 2)
        needs_specifics: Details the summaries lack (tier 1, accurate mode)
    """

    tier: int
    sufficient: bool
    confidence: float
    reason: str = ""
    matched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    needs_specifics: List[str] = field(default_factory=list)


@dataclass
class TieredResult:
    """
    Outcome of tiered retrieval.

    Only the material of the tier that answered is populated: summaries for
    tier 1, entities for tier 2, full_results for tier 3.
    """

    tier_used: int
    categories: List[str] = field(default_factory=list)
    summaries: List[CategorySummary] = field(default_factory=list)
    entities: List[MemoryRecord] = field(default_factory=list)
    full_results: List[RetrievedItem] = field(default_factory=list)
    fusion_stats: Optional[FusionStats] = None
    sufficiency_checks: List[SufficiencyCheck] = field(default_factory=list)
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "tier_used": self.tier_used,
            "categories": self.categories,
            "summaries": [s.category for s in self.summaries],
            "entities": [e.id for e in self.entities],
            "full_results": [item.id for item in self.full_results],
            "processing_time_ms": round(self.processing_time_ms, 2),
        }

"""
Configuration for tiered-memory components.

Every engine takes its own pydantic config model with working defaults.
MemoryConfig aggregates them for MemoryService, and load_config() applies
overrides from TIERED_MEMORY_* environment variables.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

RetrievalMode = Literal["fast", "accurate"]


class DecisionConfig(BaseModel):
    similarity_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Minimum similarity for candidate comparisons"
    )
    max_similar: int = Field(default=5, ge=1)
    confidence_floor: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Candidates below this confidence are dropped"
    )
    sentiment_window: int = Field(
        default=20, ge=1, description="Number of recent readings averaged into sentiment"
    )
    context_note_limit: int = Field(default=10, ge=1)
    decision_temperature: float = 0.1
    decision_max_tokens: int = 500


class ConsolidationConfig(BaseModel):
    threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    importance_weight: float = 1.0
    mention_weight: float = 0.01
    age_weight: float = 1.0
    max_records: int = Field(default=500, ge=2)
    max_merges: int = Field(default=50, ge=1)
    preview_limit: int = Field(default=10, ge=1)


class FusionConfig(BaseModel):
    """Weights and limits for combining direct, vector and graph retrieval."""

    direct_weight: float = Field(default=0.5, ge=0.0)
    vector_weight: float = Field(default=0.0, ge=0.0)
    graph_weight: float = Field(default=0.5, ge=0.0)
    vector_enabled: bool = False

    vector_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    vector_limit: int = Field(default=15, ge=1)
    direct_limit: int = Field(default=3, ge=1, description="Matches per entity name")
    graph_depth: int = Field(default=2, ge=1)
    graph_min_strength: float = Field(default=0.3, ge=0.0, le=1.0)
    max_seeds: int = Field(default=3, ge=1)
    vector_seed_count: int = Field(default=3, ge=0)
    include_historical: bool = False

    @model_validator(mode="after")
    def _check_vector_weight(self) -> "FusionConfig":
        if self.vector_enabled and self.vector_weight == 0:
            logger.warning("Vector search enabled with vector_weight=0; it will only seed the graph")
        return self

    @classmethod
    def graph_direct(cls, **overrides) -> "FusionConfig":
        """Direct lookup and graph traversal only, no vector search."""
        return cls(
            **{"direct_weight": 0.5, "vector_weight": 0.0, "graph_weight": 0.5,
               "vector_enabled": False, **overrides}
        )

    @classmethod
    def three_way(cls, **overrides) -> "FusionConfig":
        """Direct, vector and graph retrieval all weighted."""
        return cls(
            **{"direct_weight": 0.3, "vector_weight": 0.4, "graph_weight": 0.3,
               "vector_enabled": True, **overrides}
        )


class RetrievalConfig(BaseModel):
    mode: RetrievalMode = "fast"
    max_categories: int = Field(default=3, ge=1)
    tier1_min_confidence: float = 0.7
    tier2_limit: int = Field(default=15, ge=1)
    tier2_min_confidence: float = 0.6
    entity_match_ratio: float = 0.7
    min_tier2_records: int = Field(default=5, ge=1)
    full_confidence_records: int = Field(default=5, ge=1)
    skip_to_full_on_entities: bool = True
    sufficiency_max_tokens: int = 200
    fusion: FusionConfig = Field(default_factory=FusionConfig.graph_direct)

    @classmethod
    def fast(cls, **overrides) -> "RetrievalConfig":
        """Heuristic checks only; entity queries go straight to hybrid retrieval."""
        return cls(
            **{"mode": "fast", "tier2_limit": 15, "min_tier2_records": 5,
               "skip_to_full_on_entities": True, **overrides}
        )

    @classmethod
    def accurate(cls, **overrides) -> "RetrievalConfig":
        """Language-model check for summaries; every tier is tried in order."""
        return cls(
            **{"mode": "accurate", "tier2_limit": 10, "min_tier2_records": 3,
               "skip_to_full_on_entities": False, **overrides}
        )


class ContextConfig(BaseModel):
    max_tokens: int = Field(default=4000, ge=1)
    summaries_share: float = 0.3
    entities_share: float = 0.4
    memories_share: float = 0.3
    recency_half_life_days: float = Field(default=14.0, gt=0)
    min_truncation_tokens: int = 50
    importance_weight: float = 0.3
    recency_weight: float = 0.25
    relevance_weight: float = 0.35
    mention_weight: float = 0.1

    @model_validator(mode="after")
    def _check_shares(self) -> "ContextConfig":
        total = self.summaries_share + self.entities_share + self.memories_share
        if total > 1.0 + 1e-9:
            raise ValueError(f"Section shares must not exceed 1.0 (got {total:.2f})")
        return self


class MemoryConfig(BaseModel):
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig.fast)
    context: ContextConfig = Field(default_factory=ContextConfig)


class MemorySettings(BaseSettings):
    """
    Environment overrides, read from TIERED_MEMORY_* variables.

    Unset values keep the component defaults.
    """

    model_config = SettingsConfigDict(env_prefix="TIERED_MEMORY_")

    retrieval_mode: RetrievalMode = "fast"
    vector_search: bool = False
    consolidation_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    context_max_tokens: Optional[int] = Field(default=None, ge=1)
    confidence_floor: Optional[float] = Field(default=None, ge=0.0, le=1.0)


def load_config(settings: Optional[MemorySettings] = None) -> MemoryConfig:
    """
    Build a MemoryConfig from defaults plus environment overrides.

    Recognised variables:
        TIERED_MEMORY_RETRIEVAL_MODE: "fast" or "accurate"
        TIERED_MEMORY_VECTOR_SEARCH: enable three-way fusion
        TIERED_MEMORY_CONSOLIDATION_THRESHOLD: float in [0, 1]
        TIERED_MEMORY_CONTEXT_MAX_TOKENS: int
        TIERED_MEMORY_CONFIDENCE_FLOOR: float in [0, 1]

    Args:
        settings: Pre-built settings; read from the environment when omitted

    Returns:
        Validated MemoryConfig
    """
    settings = settings or MemorySettings()

    if settings.retrieval_mode == "accurate":
        retrieval = RetrievalConfig.accurate()
    else:
        retrieval = RetrievalConfig.fast()

    if settings.vector_search:
        retrieval = retrieval.model_copy(update={"fusion": FusionConfig.three_way()})

    decision = DecisionConfig()
    if settings.confidence_floor is not None:
        decision = DecisionConfig(confidence_floor=settings.confidence_floor)

    consolidation = ConsolidationConfig()
    if settings.consolidation_threshold is not None:
        consolidation = ConsolidationConfig(threshold=settings.consolidation_threshold)

    context = ContextConfig()
    if settings.context_max_tokens is not None:
        context = ContextConfig(max_tokens=settings.context_max_tokens)

    config = MemoryConfig(
        decision=decision,
        consolidation=consolidation,
        retrieval=retrieval,
        context=context,
    )
    logger.info(
        f"Loaded config: mode={config.retrieval.mode}, "
        f"vector_search={config.retrieval.fusion.vector_enabled}"
    )
    return config

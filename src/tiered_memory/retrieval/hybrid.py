"""
Hybrid retrieval: direct name lookup, vector search and graph traversal.

Direct lookup and vector search run concurrently. Their hits seed a graph
traversal whose per-seed walks also run concurrently. The three result sets
are merged by record id into a single ranking where each source contributes
score * weight to the combined score.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from tiered_memory.config import FusionConfig
from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.embeddings.safe import embed_or_zero, is_zero_vector
from tiered_memory.models import GraphPath, RecordQueryFilter
from tiered_memory.retrieval.models import FusionResult, FusionStats, QueryPlan, RetrievedItem
from tiered_memory.storage.protocols import RecordStore

logger = logging.getLogger(__name__)

DIRECT_MATCH_SCORE = 1.0


def select_seeds(
    direct: List[RetrievedItem], vector: List[RetrievedItem], config: FusionConfig
) -> List[str]:
    """Graph seeds: direct hits first, then the top vector hits, capped at max_seeds."""
    seeds: List[str] = []
    for item in direct + vector[: config.vector_seed_count]:
        if item.id not in seeds:
            seeds.append(item.id)
        if len(seeds) >= config.max_seeds:
            break
    return seeds


def fuse_results(
    direct: List[RetrievedItem],
    vector: List[RetrievedItem],
    graph: List[RetrievedItem],
    config: FusionConfig,
) -> List[RetrievedItem]:
    """
    Merge per-source hits by record id.

    Sources are folded in the order direct, vector, graph; the first source to
    report a record provides its retrieval_source and retrieval_score.

    Returns:
        Merged items sorted by combined_score descending
    """
    merged: Dict[str, RetrievedItem] = {}
    weights = {
        "direct": config.direct_weight,
        "vector": config.vector_weight,
        "graph": config.graph_weight,
    }

    for source, items in (("direct", direct), ("vector", vector), ("graph", graph)):
        for item in items:
            entry = merged.get(item.id)
            if entry is None:
                entry = RetrievedItem(
                    id=item.id,
                    name=item.name,
                    record=item.record,
                    retrieval_source=source,
                    retrieval_score=item.retrieval_score,
                )
                merged[item.id] = entry
            elif entry.record is None and item.record is not None:
                entry.record = item.record

            if source in entry.sources:
                continue

            entry.sources.append(source)
            weighted = item.retrieval_score * weights[source]
            entry.combined_score = (entry.combined_score or 0.0) + weighted
            setattr(entry, f"{source}_score", item.retrieval_score)

            if source == "graph":
                entry.relationship_path = item.relationship_path
                entry.relationship_types = item.relationship_types
                entry.graph_depth = item.graph_depth

    return sorted(
        merged.values(),
        key=lambda entry: (entry.combined_score or 0.0, len(entry.sources)),
        reverse=True,
    )


class HybridRetriever:
    """
    Three-way retrieval over one owner's records.

    Example:
        >>> retriever = HybridRetriever(record_store, embedding, FusionConfig.three_way())
        >>> result = await retriever.retrieve("user-1", QueryPlan.from_query("How is Sarah?"))
        >>> result.items[0].sources
        ['direct', 'graph']
    """

    def __init__(
        self,
        record_store: RecordStore,
        embedding: Optional[TextEmbedding] = None,
        config: Optional[FusionConfig] = None,
    ):
        """
        Initialize the hybrid retriever.

        Args:
            record_store: Store for memory records
            embedding: Embedder for vector queries (None disables vector search)
            config: Fusion weights and limits (default: graph_direct)
        """
        self.record_store = record_store
        self.embedding = embedding
        self.config = config or FusionConfig.graph_direct()

        logger.info(
            f"HybridRetriever initialized (weights direct={self.config.direct_weight}, "
            f"vector={self.config.vector_weight}, graph={self.config.graph_weight}, "
            f"vector_enabled={self.config.vector_enabled})"
        )

    async def retrieve(
        self, owner_id: str, plan: QueryPlan, config: Optional[FusionConfig] = None
    ) -> FusionResult:
        """
        Run direct, vector and graph retrieval and fuse the results.

        Args:
            owner_id: The owner ID
            plan: Query plan with entity names and vector query text
            config: Override fusion config for this call

        Returns:
            FusionResult with merged items and per-source counts
        """
        config = config or self.config

        direct, vector = await asyncio.gather(
            self._direct_lookup(owner_id, plan.entity_names, config),
            self._vector_search(owner_id, plan.vector_query, config),
        )

        seeds = select_seeds(direct, vector, config)
        graph = await self._graph_expand(owner_id, seeds, config)

        items = fuse_results(direct, vector, graph, config)
        await self._hydrate(owner_id, items)

        stats = FusionStats(
            direct_count=len(direct),
            vector_count=len(vector),
            graph_count=len(graph),
            merged_count=len(items),
            multi_source_count=sum(1 for item in items if item.is_multi_source),
        )
        logger.info(
            f"Hybrid retrieval for {owner_id}: direct={stats.direct_count}, "
            f"vector={stats.vector_count}, graph={stats.graph_count}, "
            f"merged={stats.merged_count}, multi_source={stats.multi_source_count}"
        )
        return FusionResult(items=items, stats=stats, seeds=seeds)

    async def _direct_lookup(
        self, owner_id: str, names: List[str], config: FusionConfig
    ) -> List[RetrievedItem]:
        """Case-insensitive name lookups, one per entity name, run concurrently."""
        if not names:
            return []

        batches = await asyncio.gather(
            *(
                asyncio.to_thread(
                    self.record_store.find_by_name, owner_id, name, config.direct_limit
                )
                for name in names
            )
        )

        items: Dict[str, RetrievedItem] = {}
        for records in batches:
            for record in records:
                if record.id not in items:
                    items[record.id] = RetrievedItem(
                        id=record.id,
                        name=record.name,
                        record=record,
                        retrieval_source="direct",
                        retrieval_score=DIRECT_MATCH_SCORE,
                    )
        return list(items.values())

    async def _vector_search(
        self, owner_id: str, query: str, config: FusionConfig
    ) -> List[RetrievedItem]:
        if not config.vector_enabled or self.embedding is None or not query.strip():
            return []

        query_embedding = await embed_or_zero(self.embedding, query, query=True)
        if is_zero_vector(query_embedding):
            logger.warning("Vector search skipped: query embedding unavailable")
            return []

        results = await asyncio.to_thread(
            self.record_store.find_similar,
            owner_id,
            query_embedding,
            config.vector_threshold,
            config.vector_limit,
            RecordQueryFilter(include_historical=config.include_historical),
        )
        return [
            RetrievedItem(
                id=record.id,
                name=record.name,
                record=record,
                retrieval_source="vector",
                retrieval_score=score,
            )
            for record, score in results
        ]

    async def _graph_expand(
        self, owner_id: str, seeds: List[str], config: FusionConfig
    ) -> List[RetrievedItem]:
        """Traverse from each seed concurrently; keep the strongest path per record."""
        if not seeds:
            return []

        walks: List[List[GraphPath]] = await asyncio.gather(
            *(
                asyncio.to_thread(
                    self.record_store.traverse_graph,
                    owner_id,
                    seed,
                    config.graph_depth,
                    config.graph_min_strength,
                )
                for seed in seeds
            )
        )

        best: Dict[str, GraphPath] = {}
        for paths in walks:
            for path in paths:
                current = best.get(path.record_id)
                if current is None or path.total_strength > current.total_strength:
                    best[path.record_id] = path

        return [
            RetrievedItem(
                id=path.record_id,
                name=path.name,
                record=None,
                retrieval_source="graph",
                retrieval_score=path.total_strength,
                relationship_path=path.relationship_path,
                relationship_types=path.relationship_types,
                graph_depth=path.depth,
            )
            for path in sorted(best.values(), key=lambda p: p.total_strength, reverse=True)
        ]

    async def _hydrate(self, owner_id: str, items: List[RetrievedItem]) -> None:
        """Fetch full records for graph-only hits in one batch."""
        missing = [item.id for item in items if item.record is None]
        if not missing:
            return

        records = await asyncio.to_thread(self.record_store.get_records, owner_id, missing)
        by_id = {record.id: record for record in records}
        for item in items:
            if item.record is None:
                item.record = by_id.get(item.id)
                if item.record is None:
                    logger.debug(f"Graph hit {item.id} could not be hydrated")

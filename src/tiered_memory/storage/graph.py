"""
Breadth-first traversal over entity links.

Both record store backends load the owner's active links and records and
delegate the walk to traverse_links, so traversal semantics are identical
regardless of where the graph is persisted.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Tuple

from tiered_memory.models import EntityLink, GraphPath, MemoryRecord


def build_adjacency(links: Iterable[EntityLink]) -> Dict[str, List[Tuple[str, EntityLink]]]:
    """Map record id -> [(neighbour id, link)]; undirected links are walkable both ways."""
    adjacency: Dict[str, List[Tuple[str, EntityLink]]] = defaultdict(list)
    for link in links:
        if not link.is_active:
            continue
        adjacency[link.source_id].append((link.target_id, link))
        if not link.directed:
            adjacency[link.target_id].append((link.source_id, link))
    return adjacency


def traverse_links(
    seed_id: str,
    links: Iterable[EntityLink],
    records: Mapping[str, MemoryRecord],
    max_depth: int = 2,
    min_strength: float = 0.3,
) -> List[GraphPath]:
    """
    Walk outward from a seed record.

    Hops weaker than min_strength are not followed. Each reachable record is
    reported once, at its shallowest depth; among equally shallow paths the
    strongest wins. Path strength is the product of hop strengths.

    Args:
        seed_id: Record to start from
        links: Candidate edges (inactive ones are ignored)
        records: Active records by id; links to records outside it are skipped
        max_depth: Maximum number of hops
        min_strength: Minimum strength of each hop

    Returns:
        GraphPaths ordered by depth, then strength descending
    """
    seed = records.get(seed_id)
    if seed is None:
        return []

    adjacency = build_adjacency(links)
    visited = {seed_id}
    found: List[GraphPath] = []
    frontier = [(seed_id, [seed.name], [], 1.0)]

    for depth in range(1, max_depth + 1):
        best: Dict[str, Tuple[List[str], List[str], float]] = {}

        for node_id, names, types, strength in frontier:
            for neighbour_id, link in adjacency.get(node_id, []):
                if neighbour_id in visited or link.strength < min_strength:
                    continue
                neighbour = records.get(neighbour_id)
                if neighbour is None:
                    continue

                total = strength * link.strength
                current = best.get(neighbour_id)
                if current is None or total > current[2]:
                    best[neighbour_id] = (
                        names + [neighbour.name],
                        types + [link.relationship_type],
                        total,
                    )

        if not best:
            break

        frontier = []
        level = []
        for record_id, (names, types, total) in best.items():
            visited.add(record_id)
            frontier.append((record_id, names, types, total))
            record = records[record_id]
            level.append(
                GraphPath(
                    record_id=record_id,
                    name=record.name,
                    entity_type=record.entity_type,
                    relationship_path=names,
                    relationship_types=types,
                    total_strength=total,
                    depth=depth,
                )
            )

        level.sort(key=lambda path: path.total_strength, reverse=True)
        found.extend(level)

    return found

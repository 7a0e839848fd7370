"""
Vector math shared by the storage backends and the consolidation engine.
"""

from typing import List, Optional, Sequence


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    if len(vec1) != len(vec2):
        raise ValueError("Vectors must have the same length")

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    magnitude1 = sum(a * a for a in vec1) ** 0.5
    magnitude2 = sum(b * b for b in vec2) ** 0.5

    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0

    return dot_product / (magnitude1 * magnitude2)


def is_zero_vector(vector: Optional[Sequence[float]]) -> bool:
    """True for None, empty, or all-zero vectors (the embedding failure sentinel)."""
    if not vector:
        return True
    return all(v == 0 for v in vector)


def usable_embedding(vector: Optional[List[float]]) -> Optional[List[float]]:
    """Return the vector, or None when it is the zero sentinel."""
    if is_zero_vector(vector):
        return None
    return list(vector)

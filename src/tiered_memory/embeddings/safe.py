"""
Fail-soft embedding helpers.

Embedding provider failures must not abort a lifecycle operation. They are
converted into the zero-vector sentinel, which stores treat as "no
embedding" and similarity search never matches.
"""

import logging
from typing import List

from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.errors import UpstreamEmbeddingError
from tiered_memory.storage.vectors import is_zero_vector

logger = logging.getLogger(__name__)

__all__ = ["embed_or_zero", "is_zero_vector", "zero_vector"]


def zero_vector(dimension: int) -> List[float]:
    return [0.0] * dimension


async def embed_or_zero(embedding: TextEmbedding, text: str, query: bool = False) -> List[float]:
    """
    Embed text, returning a zero vector on provider failure or empty input.

    Args:
        embedding: Embedding provider
        text: Text to embed
        query: Use the query variant instead of the document variant

    Returns:
        Embedding vector, or a zero vector of the provider's dimension
    """
    if not text or not text.strip():
        return zero_vector(embedding.dimension)

    try:
        if query:
            return await embedding.embed_query(text)
        return await embedding.embed_document(text)
    except (UpstreamEmbeddingError, ValueError) as e:
        logger.warning(f"Embedding failed, using zero vector: {e}")
        return zero_vector(embedding.dimension)

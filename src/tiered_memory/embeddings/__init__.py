"""
Text embedding abstractions for tiered-memory.

Provides the TextEmbedding protocol, the fail-soft embed_or_zero helper and
the OpenAIEmbedding adapter.
"""

from tiered_memory.embeddings.protocol import TextEmbedding
from tiered_memory.embeddings.safe import embed_or_zero, is_zero_vector, zero_vector

__all__ = [
    "TextEmbedding",
    "embed_or_zero",
    "is_zero_vector",
    "zero_vector",
]

# Optional adapters (import only if dependencies available)
try:
    from tiered_memory.embeddings.openai_embedding import OpenAIEmbedding  # noqa: F401

    __all__.append("OpenAIEmbedding")
except ImportError:
    pass

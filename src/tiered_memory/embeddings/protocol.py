"""
Text embedding protocol for tiered-memory.

Provides a unified interface for embedding record content and retrieval
queries into dense vectors for similarity search and consolidation.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return vectors of a fixed dimension
    2. Raise UpstreamEmbeddingError when the provider fails
    3. Implement async methods

    Callers that must not fail on provider errors wrap calls with
    tiered_memory.embeddings.embed_or_zero.

    Example:
        >>> embedder = OpenAIEmbedding()
        >>> vector = await embedder.embed_document("Works at Notion")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        Returns:
            Number of elements in each embedding vector
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for record content to be stored.

        Args:
            text: Document text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
            UpstreamEmbeddingError: If the provider fails
        """
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a retrieval query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
            UpstreamEmbeddingError: If the provider fails
        """
        ...

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple documents.

        Returns:
            List of embedding vectors (same order as input)
        """
        ...

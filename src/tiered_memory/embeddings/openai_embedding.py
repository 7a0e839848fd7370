"""OpenAI embedding adapter for tiered-memory."""

import asyncio
import logging
import os
from typing import List, Optional

from tiered_memory.errors import UpstreamEmbeddingError

logger = logging.getLogger(__name__)

# Inputs are cut to this many characters before embedding
MAX_INPUT_CHARS = 8000

DEFAULT_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def truncate_input(text: str, limit: int = MAX_INPUT_CHARS) -> str:
    return text[:limit]


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    Supports OpenAI's embedding models via API:
    - text-embedding-3-small (1536 dims, configurable 512-1536)
    - text-embedding-3-large (3072 dims)
    - text-embedding-ada-002 (1536 dims, legacy)

    Also compatible with OpenAI-compatible APIs (Azure, OpenRouter, etc.).
    The synchronous client runs in a worker thread so concurrent retrieval
    fan-out is not blocked.

    Example:
        >>> embedder = OpenAIEmbedding(model="text-embedding-3-small")
        >>> vector = await embedder.embed_query("who is Sarah?")
        >>> len(vector)
        1536
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI, or Azure/OpenRouter)
            dimensions: Output dimension (only for text-embedding-3 models)
            timeout: Request timeout in seconds
            max_retries: Number of retry attempts for failed requests
        """
        from openai import OpenAI

        self._model = model
        self._dimensions = dimensions
        self._client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        if dimensions is not None:
            self._dimension = dimensions
        elif model in DEFAULT_DIMENSIONS:
            self._dimension = DEFAULT_DIMENSIONS[model]
        else:
            # Unknown model - make test call to determine
            logger.warning(f"Unknown model {model}, testing dimension...")
            self._dimension = len(self._create(["test"])[0])

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the OpenAI model."""
        return self._model

    def _create(self, inputs: List[str]) -> List[List[float]]:
        kwargs = {"model": self._model, "input": [truncate_input(text) for text in inputs]}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = self._client.embeddings.create(**kwargs)
        except Exception as e:
            raise UpstreamEmbeddingError(f"OpenAI embedding request failed: {e}") from e

        # API preserves input order
        return [item.embedding for item in response.data]

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for record content.

        OpenAI models don't require document/query distinction, so this
        is identical to embed_query().

        Raises:
            ValueError: If text is empty
            UpstreamEmbeddingError: If the API request fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        vectors = await asyncio.to_thread(self._create, [text])
        return vectors[0]

    async def embed_query(self, text: str) -> List[float]:
        """Generate embedding for a retrieval query."""
        return await self.embed_document(text)

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple documents in one request.

        Raises:
            ValueError: If any text is empty
            UpstreamEmbeddingError: If the API request fails
        """
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        return await asyncio.to_thread(self._create, texts)

"""Tests for OpenAI embedding adapter."""

from unittest.mock import Mock

import pytest

from tiered_memory.embeddings.openai_embedding import MAX_INPUT_CHARS, truncate_input
from tiered_memory.errors import UpstreamEmbeddingError


@pytest.fixture
def mock_openai_env(monkeypatch):
    """Set mock OpenAI API key for testing."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key-for-testing")


def _embedder(model="text-embedding-3-small", dimensions=None):
    pytest.importorskip("openai")
    from tiered_memory.embeddings import OpenAIEmbedding

    return OpenAIEmbedding(model=model, dimensions=dimensions)


def _response(*vectors):
    return Mock(data=[Mock(embedding=list(v)) for v in vectors])


def test_truncate_input():
    assert truncate_input("a" * (MAX_INPUT_CHARS + 10)) == "a" * MAX_INPUT_CHARS
    assert truncate_input("short") == "short"


def test_openai_default_dimensions(mock_openai_env):
    """Test default dimensions for known models."""
    assert _embedder("text-embedding-3-small").dimension == 1536
    assert _embedder("text-embedding-3-large").dimension == 3072
    assert _embedder("text-embedding-ada-002").dimension == 1536


def test_openai_custom_dimensions(mock_openai_env):
    embedder = _embedder(dimensions=512)

    assert embedder.dimension == 512


@pytest.mark.asyncio
async def test_embed_document_truncates_and_passes_dimensions(mock_openai_env):
    embedder = _embedder(dimensions=3)
    embedder._client = Mock()
    embedder._client.embeddings.create = Mock(return_value=_response([0.1, 0.2, 0.3]))

    vector = await embedder.embed_document("x" * 9000)

    assert vector == [0.1, 0.2, 0.3]
    kwargs = embedder._client.embeddings.create.call_args.kwargs
    assert kwargs["model"] == "text-embedding-3-small"
    assert kwargs["dimensions"] == 3
    assert len(kwargs["input"][0]) == MAX_INPUT_CHARS


@pytest.mark.asyncio
async def test_embed_documents_preserves_order(mock_openai_env):
    embedder = _embedder()
    embedder._client = Mock()
    embedder._client.embeddings.create = Mock(return_value=_response([1.0], [2.0]))

    vectors = await embedder.embed_documents(["first", "second"])

    assert vectors == [[1.0], [2.0]]
    assert await embedder.embed_documents([]) == []


@pytest.mark.asyncio
async def test_embed_empty_text_raises(mock_openai_env):
    embedder = _embedder()

    with pytest.raises(ValueError):
        await embedder.embed_query("   ")
    with pytest.raises(ValueError):
        await embedder.embed_documents(["ok", ""])


@pytest.mark.asyncio
async def test_api_failure_raises_upstream_error(mock_openai_env):
    embedder = _embedder()
    embedder._client = Mock()
    embedder._client.embeddings.create = Mock(side_effect=RuntimeError("rate limited"))

    with pytest.raises(UpstreamEmbeddingError):
        await embedder.embed_document("Sarah works at Notion")

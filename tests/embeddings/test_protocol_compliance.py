"""Test that adapters satisfy the TextEmbedding protocol."""

import pytest

from tiered_memory.embeddings import TextEmbedding


@pytest.mark.asyncio
async def test_openai_is_protocol(monkeypatch):
    """OpenAIEmbedding implements TextEmbedding protocol."""
    pytest.importorskip("openai")

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key-for-testing")

    from tiered_memory.embeddings import OpenAIEmbedding

    embedder = OpenAIEmbedding(model="text-embedding-3-small", dimensions=768)
    assert isinstance(embedder, TextEmbedding)

    assert embedder.dimension == 768
    assert embedder.model_name == "text-embedding-3-small"


def test_mock_embedding_is_protocol(mock_embedding):
    """The shared test double satisfies the protocol too."""
    assert isinstance(mock_embedding, TextEmbedding)

"""Shared fixtures for tiered-memory tests."""

from unittest.mock import AsyncMock, Mock

import pytest

from tiered_memory.models import MemoryRecord, build_payload
from tiered_memory.storage import InMemoryAuditStore, InMemoryRecordStore, InMemorySummaryStore

OWNER = "user_123"


@pytest.fixture
def owner_id():
    return OWNER


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def summary_store():
    return InMemorySummaryStore()


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def make_record():
    """Factory for MemoryRecord objects with sensible defaults."""

    def _make(name="Sarah", summary="Sister who lives in Leeds", memory_type="fact", **kwargs):
        payload = kwargs.pop(
            "payload",
            build_payload(
                memory_type,
                entity_type=kwargs.pop("entity_type", None),
                relationship=kwargs.pop("relationship", None),
            ),
        )
        kwargs.setdefault("owner_id", OWNER)
        return MemoryRecord(name=name, summary=summary, payload=payload, **kwargs)

    return _make


@pytest.fixture
def mock_embedding():
    """Mock embedding provider with a fixed 3-dimensional vector."""
    embedding = Mock()
    embedding.dimension = 3
    embedding.model_name = "mock-embedding"
    embedding.embed_document = AsyncMock(return_value=[1.0, 0.0, 0.0])
    embedding.embed_query = AsyncMock(return_value=[1.0, 0.0, 0.0])
    return embedding

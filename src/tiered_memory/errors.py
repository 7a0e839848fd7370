"""
Error taxonomy for tiered-memory.

Leaf components (stores, providers, engines) raise these exceptions. The
composition layer (MemoryService) decides per error class whether to fail
soft (upstream provider failures) or surface the error to the caller.
"""

from typing import Optional


class TieredMemoryError(Exception):
    """Base class for all tiered-memory errors."""


class ValidationError(TieredMemoryError):
    """Malformed input (candidate facts, decisions, query plans)."""


class AuthError(TieredMemoryError):
    """Caller is not authenticated or not allowed to touch the owner's data."""


class NotFoundError(TieredMemoryError):
    """Referenced record is absent or not owned by the caller."""

    def __init__(self, record_id: str, owner_id: Optional[str] = None):
        self.record_id = record_id
        self.owner_id = owner_id
        super().__init__(f"Memory not found: {record_id}")


class UpstreamLanguageModelError(TieredMemoryError):
    """The language-model provider failed or returned an unusable answer."""


class UpstreamEmbeddingError(TieredMemoryError):
    """The embedding provider failed."""


class PersistenceError(TieredMemoryError):
    """A store write failed. The single operation is aborted."""


class VersionConflictError(PersistenceError):
    """The record changed between read and write (optimistic concurrency check)."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int):
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {record_id}: "
            f"expected {expected_version}, found {actual_version}"
        )

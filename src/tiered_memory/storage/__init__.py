"""
Storage protocols for records, category summaries and the audit log.

Provides protocol definitions for storage backends. Implementations can use
various databases (PostgreSQL, SQLite, in-memory, etc.) as long as they
satisfy the protocol interface.
"""

from tiered_memory.storage.protocols import AuditStore, RecordStore, SummaryStore
from tiered_memory.storage.records.memory import InMemoryRecordStore
from tiered_memory.storage.summaries.memory import InMemorySummaryStore
from tiered_memory.storage.audit.memory import InMemoryAuditStore

__all__ = [
    "RecordStore",
    "SummaryStore",
    "AuditStore",
    "InMemoryRecordStore",
    "InMemorySummaryStore",
    "InMemoryAuditStore",
]

# SQLAlchemy implementations
try:
    from tiered_memory.storage.records.sqlalchemy import SQLAlchemyRecordStore  # noqa: F401
    from tiered_memory.storage.summaries.sqlalchemy import SQLAlchemySummaryStore  # noqa: F401
    from tiered_memory.storage.audit.sqlalchemy import SQLAlchemyAuditStore  # noqa: F401
    from tiered_memory.storage.index.qdrant import QdrantRecordIndex  # noqa: F401

    __all__.extend(
        ["SQLAlchemyRecordStore", "SQLAlchemySummaryStore", "SQLAlchemyAuditStore", "QdrantRecordIndex"]
    )
except ImportError:
    pass

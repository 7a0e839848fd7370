"""
tiered-memory: Long-term personal memory with lifecycle decisions and tiered retrieval.

Core components:
- decisions: Decision engine (ADD / UPDATE / DELETE / NOOP) for candidate facts
- execution: Applies decisions to the record store with version checks and audit
- intelligence: Consolidation, category summary evolution, secret redaction
- retrieval: Tiered retrieval (summaries, top records, hybrid fusion)
- context: Token-budgeted context assembly
- storage: Protocol abstractions and in-memory / SQLAlchemy backends
- models: Core data models (MemoryRecord, CandidateFact, CategorySummary, etc.)
"""

__version__ = "0.1.0"

from tiered_memory.config import MemoryConfig, load_config
from tiered_memory.context.assembler import build_user_context_prompt, format_for_prompt
from tiered_memory.errors import (
    AuthError,
    NotFoundError,
    PersistenceError,
    TieredMemoryError,
    UpstreamEmbeddingError,
    UpstreamLanguageModelError,
    ValidationError,
    VersionConflictError,
)
from tiered_memory.models import (
    AuditEntry,
    CandidateFact,
    CategorySummary,
    EntityFact,
    EntityLink,
    MemoryRecord,
    RecordQueryFilter,
    StructuredFact,
)
from tiered_memory.memory_service import FactSaveResult, MemoryClients, MemoryService

__all__ = [
    "__version__",
    # Models
    "MemoryRecord",
    "CandidateFact",
    "CategorySummary",
    "AuditEntry",
    "EntityFact",
    "EntityLink",
    "StructuredFact",
    "RecordQueryFilter",
    # Config
    "MemoryConfig",
    "load_config",
    # Errors
    "TieredMemoryError",
    "ValidationError",
    "AuthError",
    "NotFoundError",
    "UpstreamLanguageModelError",
    "UpstreamEmbeddingError",
    "PersistenceError",
    "VersionConflictError",
    # Service
    "MemoryService",
    "MemoryClients",
    "FactSaveResult",
    "format_for_prompt",
    "build_user_context_prompt",
]

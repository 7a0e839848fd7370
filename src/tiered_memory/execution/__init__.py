"""
Memory operation execution.

Provides the component that applies lifecycle decisions to the record store.
"""

from tiered_memory.execution.models import MemoryOperationResult
from tiered_memory.execution.operation_executor import MemoryOperationExecutor

__all__ = [
    "MemoryOperationExecutor",
    "MemoryOperationResult",
]

"""
Models for memory operation results.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional

OperationName = Literal["ADD", "UPDATE", "DELETE", "NOOP"]


@dataclass
class MemoryOperationResult:
    """
    Result of applying one lifecycle operation.

    Attributes:
        operation: The operation that was applied
        record_id: ID of the record created, updated or deleted (the new
            record for supersede), None for NOOP without a match
        strategy: Merge strategy for UPDATE ("replace", "append", "supersede")
        old_id: Superseded record ID (supersede only)
        new_id: Successor record ID (supersede only)
        old_content / new_content: Summary before and after the change
        old_version / new_version: Version before and after the change
        hard_delete: Whether a DELETE removed the row
        reasoning: Why the operation was chosen
        existing_memory_id: Equivalent record for NOOP, when known
        error: Error message when the operation failed
        processing_time_ms: Wall time for decide plus execute
        metadata: Additional context (audit or sentiment errors, redactions)

    Examples:
        >>> # New fact stored
        >>> result = MemoryOperationResult(operation="ADD", record_id="rec_1")

        >>> # Life change recorded as a new version
        >>> result = MemoryOperationResult(
        ...     operation="UPDATE",
        ...     strategy="supersede",
        ...     old_id="rec_1",
        ...     new_id="rec_2",
        ...     record_id="rec_2",
        ... )
    """

    operation: OperationName
    record_id: Optional[str] = None
    strategy: Optional[str] = None
    old_id: Optional[str] = None
    new_id: Optional[str] = None
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    old_version: Optional[int] = None
    new_version: Optional[int] = None
    hard_delete: bool = False
    reasoning: str = ""
    existing_memory_id: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: float = 0.0
    metadata: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.error is None

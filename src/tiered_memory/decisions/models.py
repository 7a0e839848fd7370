"""
Data structures for lifecycle decisions.

- SimilarRecord: An existing record similar to the candidate fact
- MemoryDecision: The single operation chosen for a candidate fact
"""

from dataclasses import dataclass
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tiered_memory.models import MemoryRecord

Operation = Literal["ADD", "UPDATE", "DELETE", "NOOP"]
MergeStrategy = Literal["replace", "append", "supersede"]

# Tool-style operation names some models answer with
TOOL_OPERATION_NAMES = {
    "add_memory": "ADD",
    "update_memory": "UPDATE",
    "delete_memory": "DELETE",
    "no_operation": "NOOP",
    "noop": "NOOP",
}


@dataclass
class SimilarRecord:
    """
    An existing record similar to the candidate fact.

    Attributes:
        record: The stored record
        similarity_score: Cosine similarity to the candidate (0.0-1.0)
    """

    record: MemoryRecord
    similarity_score: float

    @property
    def record_id(self) -> str:
        return self.record.id


class MemoryDecision(BaseModel):
    """
    One lifecycle operation for a candidate fact.

    ADD needs content; UPDATE needs memory_id, new_content and merge_strategy;
    DELETE needs memory_id. Anything else is rejected at validation time.
    """

    operation: Operation
    reasoning: str = ""

    # ADD
    content: Optional[str] = None
    memory_type: Optional[str] = None

    # UPDATE / DELETE
    memory_id: Optional[str] = None
    new_content: Optional[str] = None
    merge_strategy: Optional[MergeStrategy] = None
    hard_delete: bool = False

    # NOOP
    existing_memory_id: Optional[str] = None

    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("operation", mode="before")
    @classmethod
    def _normalise_operation(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip()
            return TOOL_OPERATION_NAMES.get(key.lower(), key.upper())
        return value

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def _normalise_strategy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_required_fields(self) -> "MemoryDecision":
        if self.operation == "ADD" and not (self.content and self.content.strip()):
            raise ValueError("ADD requires content")
        if self.operation == "UPDATE":
            missing = [
                name
                for name in ("memory_id", "new_content", "merge_strategy")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"UPDATE requires {', '.join(missing)}")
        if self.operation == "DELETE" and not self.memory_id:
            raise ValueError("DELETE requires memory_id")
        return self

    @classmethod
    def noop(cls, reasoning: str, existing_memory_id: Optional[str] = None) -> "MemoryDecision":
        return cls(operation="NOOP", reasoning=reasoning, existing_memory_id=existing_memory_id)

import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tiered_memory.utils.date_normalizer import parse_temporal_marker, to_naive_local

MemoryType = Literal[
    "entity", "fact", "preference", "event", "goal", "procedure", "decision", "action"
]
ImportanceLevel = Literal["critical", "high", "medium", "low", "trivial"]
RecordStatus = Literal["active", "archived", "superseded"]
SensitivityLevel = Literal["normal", "sensitive", "private"]
EntityType = Literal[
    "person", "project", "place", "pet", "organization", "concept", "event", "other"
]
AuditOperation = Literal["ADD", "UPDATE", "DELETE", "NOOP", "CONSOLIDATE"]

IMPORTANCE_SCORES: Dict[str, float] = {
    "critical": 1.0,
    "high": 0.8,
    "medium": 0.5,
    "low": 0.3,
    "trivial": 0.1,
}

SENSITIVITY_RANK: Dict[str, int] = {"normal": 0, "sensitive": 1, "private": 2}


def importance_to_score(importance: Optional[str]) -> float:
    """Map an importance label to its fixed score (unknown labels score as medium)."""
    return IMPORTANCE_SCORES.get(importance or "medium", IMPORTANCE_SCORES["medium"])


class RecurrencePattern(BaseModel):
    frequency: Literal["daily", "weekly", "monthly", "yearly"]
    interval: int = Field(default=1, ge=1)
    days_of_week: List[str] = Field(default_factory=list)
    until: Optional[datetime] = None
    description: Optional[str] = None


class EntityPayload(BaseModel):
    memory_type: Literal["entity"] = "entity"
    entity_type: EntityType = "other"
    relationship: Optional[str] = Field(
        default=None, description="How the entity relates to the owner (e.g. 'sister')"
    )


class EventPayload(BaseModel):
    memory_type: Literal["event", "action"] = "event"
    recurrence_pattern: Optional[RecurrencePattern] = None


class FactPayload(BaseModel):
    memory_type: Literal["fact", "preference", "goal", "procedure", "decision"] = "fact"


RecordPayload = Annotated[
    Union[EntityPayload, EventPayload, FactPayload], Field(discriminator="memory_type")
]


def build_payload(
    memory_type: str,
    entity_type: Optional[str] = None,
    recurrence_pattern: Optional[RecurrencePattern] = None,
    relationship: Optional[str] = None,
) -> Union[EntityPayload, EventPayload, FactPayload]:
    """Build the type-specific payload for a memory type."""
    if memory_type == "entity":
        return EntityPayload(entity_type=entity_type or "other", relationship=relationship)
    if memory_type in ("event", "action"):
        return EventPayload(memory_type=memory_type, recurrence_pattern=recurrence_pattern)
    return FactPayload(memory_type=memory_type)


class MemoryRecord(BaseModel):
    """A durable, versioned unit of knowledge about the owner."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = Field(..., description="Owner this record belongs to")
    name: str = Field(..., description="Short display name (entity name or fact label)")
    summary: str = Field(default="", description="Current canonical content")
    context_notes: List[str] = Field(
        default_factory=list, description="Most recent supporting notes (bounded)"
    )
    payload: RecordPayload = Field(default_factory=FactPayload)

    importance: ImportanceLevel = "medium"
    importance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    sentiment_average: float = Field(default=0.0, ge=-1.0, le=1.0)
    mention_count: int = Field(default=1, ge=0)

    status: RecordStatus = "active"
    version: int = Field(default=1, ge=1)
    supersedes_id: Optional[str] = Field(
        default=None, description="ID of the record this one replaced in a supersede chain"
    )
    superseded_by: Optional[str] = Field(
        default=None, description="ID of the record that replaced (or absorbed) this one"
    )
    is_historical: bool = False
    effective_from: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    sensitivity_level: SensitivityLevel = "normal"
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    embedding: Optional[List[float]] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("effective_from", "expires_at", "created_at", "updated_at")
    @classmethod
    def _naive_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_local(value)

    @property
    def memory_type(self) -> str:
        return self.payload.memory_type

    @property
    def entity_type(self) -> Optional[str]:
        if isinstance(self.payload, EntityPayload):
            return self.payload.entity_type
        return None

    @property
    def recurrence_pattern(self) -> Optional[RecurrencePattern]:
        if isinstance(self.payload, EventPayload):
            return self.payload.recurrence_pattern
        return None

    @property
    def is_active(self) -> bool:
        return self.status == "active" and not self.is_historical


class CandidateFact(BaseModel):
    """A proposed piece of knowledge extracted from a note, not yet stored."""

    name: str
    memory_type: MemoryType = "fact"
    content: str
    entity_type: Optional[EntityType] = None
    relationship: Optional[str] = None
    sentiment: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    importance: ImportanceLevel = "medium"
    is_historical: bool = False
    effective_from: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    sensitivity_level: SensitivityLevel = "normal"
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    context: Optional[str] = Field(default=None, description="Surrounding note text")
    source_note_id: Optional[str] = None

    @field_validator("effective_from", "expires_at", mode="before")
    @classmethod
    def _parse_temporal(cls, value: Any) -> Optional[datetime]:
        return parse_temporal_marker(value)

    @field_validator("content", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class EntityFact(BaseModel):
    """Subject-predicate-object triple attached to a record."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    subject_id: str = Field(..., description="Record the fact is about")
    predicate: str
    object_text: str
    object_record_id: Optional[str] = Field(
        default=None, description="Record the object resolves to, when known"
    )
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    source_note_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class StructuredFact(BaseModel):
    """An extracted triple addressed by entity name, before name resolution."""

    entity_name: str
    predicate: str
    object: str
    object_is_entity: bool = False
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    @field_validator("entity_name", "predicate", "object")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    def describe(self) -> str:
        return f"{self.entity_name} {self.predicate} {self.object}"


class EntityLink(BaseModel):
    """Graph edge between two records."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    source_id: str
    target_id: str
    relationship_type: str
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    directed: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class GraphPath(BaseModel):
    """A record reached by graph traversal, with the path that reached it."""

    record_id: str
    name: str
    entity_type: Optional[str] = None
    relationship_path: List[str] = Field(default_factory=list)
    relationship_types: List[str] = Field(default_factory=list)
    total_strength: float
    depth: int = Field(..., ge=1)


class CategorySummary(BaseModel):
    """Rewritten prose summary of one life category for an owner."""

    owner_id: str
    category: str
    summary: str
    entity_count: int = 0
    last_records: List[str] = Field(
        default_factory=list, description="Names of the records that last updated the summary"
    )
    updated_at: datetime = Field(default_factory=datetime.now)


class AuditEntry(BaseModel):
    """Append-only record of one lifecycle operation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    operation: AuditOperation
    candidate_content: Optional[str] = None
    candidate_type: Optional[str] = None
    similar_records: List[Dict[str, Any]] = Field(default_factory=list)
    reasoning: Optional[str] = None
    record_id: Optional[str] = None
    merged_record_ids: List[str] = Field(default_factory=list)
    merge_strategy: Optional[str] = None
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    old_version: Optional[int] = None
    new_version: Optional[int] = None
    hard_delete: bool = False
    deleted_snapshot: Optional[Dict[str, Any]] = None
    job_id: Optional[str] = None
    source_note_id: Optional[str] = None
    processing_time_ms: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.now)


class SentimentReading(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    record_id: str
    sentiment: float = Field(..., ge=-1.0, le=1.0)
    source_note_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class RecordQueryFilter(BaseModel):
    memory_types: Optional[List[str]] = None
    include_historical: bool = False
    exclude_expired: bool = True
    hide_future: bool = Field(
        default=True, description="Hide records whose effective_from is still ahead"
    )
    min_importance: Optional[float] = None
    max_sensitivity: SensitivityLevel = "private"

    def matches(self, record: MemoryRecord, now: Optional[datetime] = None) -> bool:
        """Check whether a record passes the filter."""
        now = to_naive_local(now) or datetime.now()

        if record.status != "active":
            return False
        if record.is_historical and not self.include_historical:
            return False
        if self.memory_types and record.memory_type not in self.memory_types:
            return False
        if self.exclude_expired and record.expires_at and record.expires_at < now:
            return False
        if self.hide_future and record.effective_from and record.effective_from > now:
            return False
        if self.min_importance is not None and record.importance_score < self.min_importance:
            return False
        if SENSITIVITY_RANK[record.sensitivity_level] > SENSITIVITY_RANK[self.max_sensitivity]:
            return False
        return True

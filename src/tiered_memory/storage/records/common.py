"""
Helpers shared by the record store backends.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from tiered_memory.errors import ValidationError, VersionConflictError
from tiered_memory.models import MemoryRecord

IMMUTABLE_FIELDS = ("id", "owner_id", "created_at")


def check_version(record: MemoryRecord, expected_version: Optional[int]) -> None:
    if expected_version is not None and record.version != expected_version:
        raise VersionConflictError(record.id, expected_version, record.version)


def apply_record_updates(record: MemoryRecord, updates: Dict[str, Any]) -> MemoryRecord:
    """
    Return a validated copy of record with updates applied.

    updated_at is refreshed unless the caller sets it.

    Raises:
        ValidationError: On immutable or unknown fields, or invalid values
    """
    forbidden = [key for key in updates if key in IMMUTABLE_FIELDS]
    if forbidden:
        raise ValidationError(f"Cannot update immutable fields: {forbidden}")

    unknown = [key for key in updates if key not in MemoryRecord.model_fields]
    if unknown:
        raise ValidationError(f"Unknown record fields: {unknown}")

    data = record.model_dump()
    data.update(updates)
    if "updated_at" not in updates:
        data["updated_at"] = datetime.now()

    try:
        return MemoryRecord.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid update for record {record.id}: {e}") from e

"""
In-memory audit log implementation.

Suitable for testing and development; data is lost on restart.
"""

import logging
import threading
from typing import List, Optional

from tiered_memory.models import AuditEntry

logger = logging.getLogger(__name__)


class InMemoryAuditStore:
    """
    In-memory implementation of the AuditStore protocol.

    Entries are frozen models kept in insertion order.
    """

    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()
        logger.info("InMemoryAuditStore initialized")

    def append(self, entry: AuditEntry) -> str:
        with self._lock:
            self._entries.append(entry)

        logger.debug(f"Audit {entry.operation} for owner {entry.owner_id} (record={entry.record_id})")
        return entry.id

    def list_entries(
        self,
        owner_id: str,
        record_id: Optional[str] = None,
        operation: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        with self._lock:
            entries = [entry for entry in reversed(self._entries) if entry.owner_id == owner_id]

        if record_id:
            entries = [
                entry
                for entry in entries
                if entry.record_id == record_id or record_id in entry.merged_record_ids
            ]
        if operation:
            entries = [entry for entry in entries if entry.operation == operation]
        if limit:
            entries = entries[:limit]
        return entries

    def count(self, owner_id: str, operation: Optional[str] = None) -> int:
        return len(self.list_entries(owner_id, operation=operation))

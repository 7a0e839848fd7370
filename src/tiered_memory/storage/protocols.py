"""
Storage protocol definitions for records, category summaries and the audit log.

These protocols define the interface that storage implementations must provide.
They are implementation-agnostic and can be backed by various databases
(PostgreSQL, SQLite, in-memory, etc.). Every call is scoped by owner_id; a
record belonging to another owner behaves exactly like a missing one.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple

from tiered_memory.models import (
    AuditEntry,
    CategorySummary,
    EntityFact,
    EntityLink,
    GraphPath,
    MemoryRecord,
    RecordQueryFilter,
    SentimentReading,
)


class RecordStore(Protocol):
    """
    Protocol for versioned memory record storage.

    Besides plain CRUD, implementations provide vector similarity search,
    graph traversal over entity links, and two atomic multi-row operations
    (supersede and merge). Writes that pass expected_version must fail with
    VersionConflictError when the stored version differs.
    """

    def add_record(self, record: MemoryRecord) -> MemoryRecord:
        """
        Insert a new record.

        Args:
            record: The record to store

        Returns:
            The stored record
        """
        ...

    def get_record(self, owner_id: str, record_id: str) -> Optional[MemoryRecord]:
        """
        Retrieve a record by ID.

        Returns:
            The record if found and owned by owner_id, None otherwise
        """
        ...

    def get_records(self, owner_id: str, record_ids: List[str]) -> List[MemoryRecord]:
        """Batch fetch; missing IDs are skipped."""
        ...

    def update_record(
        self,
        owner_id: str,
        record_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> MemoryRecord:
        """
        Update fields of a record.

        Args:
            owner_id: The owner ID
            record_id: The record to update
            updates: Field values to set (MemoryRecord field names)
            expected_version: Version the caller read; None skips the check

        Returns:
            The updated record

        Raises:
            NotFoundError: If the record does not exist for this owner
            VersionConflictError: If expected_version does not match
        """
        ...

    def supersede_record(
        self,
        owner_id: str,
        record_id: str,
        expected_version: int,
        successor: MemoryRecord,
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """
        Atomically replace a record with a successor.

        The old record becomes historical and superseded, pointing at the
        successor; the successor is inserted pointing back at the old record.

        Returns:
            Tuple of (old_record, new_record) after the write
        """
        ...

    def merge_records(
        self,
        owner_id: str,
        keeper_id: str,
        keeper_version: int,
        keeper_updates: Dict[str, Any],
        merged_id: str,
        merged_version: int,
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """
        Atomically fold one record into another.

        The keeper receives keeper_updates; the merged record is archived with
        superseded_by pointing at the keeper. Both versions are checked.

        Returns:
            Tuple of (keeper, merged) after the write
        """
        ...

    def delete_record(self, owner_id: str, record_id: str) -> bool:
        """
        Permanently delete a record.

        Facts whose subject is the record, links touching it and its
        sentiment readings go with it in the same write. Facts that named it
        as their object keep their text but lose object_record_id.

        Returns:
            True if a record was deleted, False if it did not exist
        """
        ...

    def list_active_records(
        self,
        owner_id: str,
        with_embeddings_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        """List active, non-historical records ordered by created_at then id."""
        ...

    def top_records(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        """Active records ordered by importance_score then mention_count, descending."""
        ...

    def find_by_name(self, owner_id: str, name: str, limit: int = 3) -> List[MemoryRecord]:
        """Case-insensitive substring match on active record names."""
        ...

    def find_similar(
        self,
        owner_id: str,
        embedding: List[float],
        threshold: float = 0.5,
        limit: int = 5,
        query_filter: Optional[RecordQueryFilter] = None,
    ) -> List[Tuple[MemoryRecord, float]]:
        """
        Find records by cosine similarity.

        Args:
            owner_id: The owner ID
            embedding: The query embedding
            threshold: Minimum similarity (0.0-1.0)
            limit: Maximum number of results
            query_filter: Record filter (default: active, unexpired, non-historical)

        Returns:
            List of (record, similarity) tuples, most similar first
        """
        ...

    def add_link(self, link: EntityLink) -> EntityLink:
        """Store a graph edge between two records."""
        ...

    def traverse_graph(
        self,
        owner_id: str,
        seed_id: str,
        max_depth: int = 2,
        min_strength: float = 0.3,
    ) -> List[GraphPath]:
        """
        Walk active links outward from a seed record.

        Returns:
            One GraphPath per reachable active record (seed excluded)
        """
        ...

    def add_fact(self, fact: EntityFact) -> EntityFact:
        ...

    def find_fact(
        self, owner_id: str, subject_id: str, predicate: str, object_text: str
    ) -> Optional[EntityFact]:
        """Find an identical triple (predicate and object compared case-insensitively)."""
        ...

    def update_fact_confidence(self, owner_id: str, fact_id: str, confidence: float) -> EntityFact:
        ...

    def get_facts(self, owner_id: str, subject_id: str) -> List[EntityFact]:
        ...

    def add_sentiment(self, reading: SentimentReading) -> SentimentReading:
        ...

    def recent_sentiments(self, owner_id: str, record_id: str, limit: int = 20) -> List[float]:
        """Most recent sentiment values for a record, newest first."""
        ...

    def clear_owner(self, owner_id: str) -> int:
        """
        Delete all records, links, facts and sentiment for an owner.

        Returns:
            Number of records deleted
        """
        ...


class SummaryStore(Protocol):
    """
    Protocol for category summary storage.

    Holds one rewritten summary per (owner, category).
    """

    def get_summary(self, owner_id: str, category: str) -> Optional[CategorySummary]:
        ...

    def upsert_summary(self, summary: CategorySummary) -> CategorySummary:
        """Insert or replace the summary for (owner, category)."""
        ...

    def list_summaries(
        self, owner_id: str, categories: Optional[List[str]] = None
    ) -> List[CategorySummary]:
        """
        List summaries for an owner, most recently updated first.

        Args:
            owner_id: The owner ID
            categories: Restrict to these categories (None means all)
        """
        ...

    def clear_owner(self, owner_id: str) -> int:
        ...


class AuditStore(Protocol):
    """
    Protocol for the append-only operation audit log.
    """

    def append(self, entry: AuditEntry) -> str:
        """
        Append an entry.

        Returns:
            The entry ID
        """
        ...

    def list_entries(
        self,
        owner_id: str,
        record_id: Optional[str] = None,
        operation: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """
        List entries for an owner, newest first.

        Args:
            owner_id: The owner ID
            record_id: Only entries touching this record (as subject or merged id)
            operation: Only entries with this operation
            limit: Maximum number of entries
        """
        ...

    def count(self, owner_id: str, operation: Optional[str] = None) -> int:
        ...

"""
In-memory record storage implementation.

Provides a simple in-memory store for records, links, facts and sentiment
readings with cosine similarity search, suitable for testing and development.
For production, use the SQLAlchemy implementation.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from tiered_memory.errors import NotFoundError
from tiered_memory.models import (
    EntityFact,
    EntityLink,
    GraphPath,
    MemoryRecord,
    RecordQueryFilter,
    SentimentReading,
)
from tiered_memory.storage.graph import traverse_links
from tiered_memory.storage.records.common import apply_record_updates, check_version
from tiered_memory.storage.vectors import cosine_similarity

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """
    In-memory implementation of the RecordStore protocol.

    Stores copies of records in dictionaries. A single lock guards every
    operation so the multi-row operations are atomic even when called from
    worker threads. Data is lost on restart.
    """

    def __init__(self):
        self._records: Dict[str, MemoryRecord] = {}
        self._links: Dict[str, EntityLink] = {}
        self._facts: Dict[str, EntityFact] = {}
        self._sentiments: List[SentimentReading] = []
        self._lock = threading.RLock()

        logger.info("InMemoryRecordStore initialized")

    def _owned(self, owner_id: str, record_id: str) -> MemoryRecord:
        record = self._records.get(record_id)
        if record is None or record.owner_id != owner_id:
            raise NotFoundError(record_id, owner_id)
        return record

    def add_record(self, record: MemoryRecord) -> MemoryRecord:
        """Insert a new record."""
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

        logger.debug(f"Inserted record {record.id}: '{record.name}'")
        return record.model_copy(deep=True)

    def get_record(self, owner_id: str, record_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.owner_id != owner_id:
                return None
            return record.model_copy(deep=True)

    def get_records(self, owner_id: str, record_ids: List[str]) -> List[MemoryRecord]:
        with self._lock:
            return [
                self._records[record_id].model_copy(deep=True)
                for record_id in dict.fromkeys(record_ids)
                if record_id in self._records and self._records[record_id].owner_id == owner_id
            ]

    def update_record(
        self,
        owner_id: str,
        record_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> MemoryRecord:
        """Update fields of a record, checking the version when given."""
        with self._lock:
            record = self._owned(owner_id, record_id)
            check_version(record, expected_version)
            updated = apply_record_updates(record, updates)
            self._records[record_id] = updated

        logger.debug(f"Updated record {record_id}: {sorted(updates)}")
        return updated.model_copy(deep=True)

    def supersede_record(
        self,
        owner_id: str,
        record_id: str,
        expected_version: int,
        successor: MemoryRecord,
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """Atomically replace a record with a successor."""
        with self._lock:
            old = self._owned(owner_id, record_id)
            check_version(old, expected_version)

            new = successor.model_copy(
                update={
                    "owner_id": owner_id,
                    "supersedes_id": old.id,
                    "version": old.version + 1,
                    "status": "active",
                    "is_historical": False,
                },
                deep=True,
            )
            retired = apply_record_updates(
                old,
                {"is_historical": True, "status": "superseded", "superseded_by": new.id},
            )
            self._records[old.id] = retired
            self._records[new.id] = new

        logger.info(f"Superseded record {record_id} with {new.id} (version {new.version})")
        return retired.model_copy(deep=True), new.model_copy(deep=True)

    def merge_records(
        self,
        owner_id: str,
        keeper_id: str,
        keeper_version: int,
        keeper_updates: Dict[str, Any],
        merged_id: str,
        merged_version: int,
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """Atomically fold merged_id into keeper_id."""
        with self._lock:
            keeper = self._owned(owner_id, keeper_id)
            merged = self._owned(owner_id, merged_id)
            check_version(keeper, keeper_version)
            check_version(merged, merged_version)

            new_keeper = apply_record_updates(keeper, keeper_updates)
            archived = apply_record_updates(
                merged, {"status": "archived", "superseded_by": keeper_id}
            )
            self._records[keeper_id] = new_keeper
            self._records[merged_id] = archived

        logger.info(f"Merged record {merged_id} into {keeper_id}")
        return new_keeper.model_copy(deep=True), archived.model_copy(deep=True)

    def delete_record(self, owner_id: str, record_id: str) -> bool:
        """Hard-delete a record with its facts, links and sentiment readings."""
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.owner_id != owner_id:
                logger.warning(f"Cannot delete record {record_id}: not found")
                return False
            del self._records[record_id]

            self._links = {
                key: link
                for key, link in self._links.items()
                if record_id not in (link.source_id, link.target_id)
            }
            facts = {}
            for key, fact in self._facts.items():
                if fact.subject_id == record_id:
                    continue
                if fact.object_record_id == record_id:
                    fact = fact.model_copy(update={"object_record_id": None})
                facts[key] = fact
            self._facts = facts
            self._sentiments = [s for s in self._sentiments if s.record_id != record_id]

        logger.info(f"Deleted record {record_id}")
        return True

    def _active(self, owner_id: str) -> List[MemoryRecord]:
        return [
            record
            for record in self._records.values()
            if record.owner_id == owner_id and record.is_active
        ]

    def list_active_records(
        self,
        owner_id: str,
        with_embeddings_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        with self._lock:
            records = self._active(owner_id)
            if with_embeddings_only:
                records = [record for record in records if record.embedding]
            records.sort(key=lambda record: (record.created_at, record.id))
            if limit:
                records = records[:limit]
            return [record.model_copy(deep=True) for record in records]

    def top_records(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        with self._lock:
            records = self._active(owner_id)
            records.sort(
                key=lambda record: (record.importance_score, record.mention_count), reverse=True
            )
            return [record.model_copy(deep=True) for record in records[:limit]]

    def find_by_name(self, owner_id: str, name: str, limit: int = 3) -> List[MemoryRecord]:
        needle = name.strip().lower()
        if not needle:
            return []

        with self._lock:
            matches = [
                record for record in self._active(owner_id) if needle in record.name.lower()
            ]
            matches.sort(key=lambda record: record.importance_score, reverse=True)
            return [record.model_copy(deep=True) for record in matches[:limit]]

    def find_similar(
        self,
        owner_id: str,
        embedding: List[float],
        threshold: float = 0.5,
        limit: int = 5,
        query_filter: Optional[RecordQueryFilter] = None,
    ) -> List[Tuple[MemoryRecord, float]]:
        """Find records by cosine similarity."""
        query_filter = query_filter or RecordQueryFilter()
        now = datetime.now()
        results = []

        with self._lock:
            for record in self._records.values():
                if record.owner_id != owner_id or not record.embedding:
                    continue
                if len(record.embedding) != len(embedding):
                    continue
                if not query_filter.matches(record, now):
                    continue

                score = cosine_similarity(embedding, record.embedding)
                if score >= threshold:
                    results.append((record.model_copy(deep=True), score))

        # Sort by score (highest first) and limit
        results.sort(key=lambda x: x[1], reverse=True)
        results = results[:limit]

        logger.debug(
            f"Found {len(results)} similar records (threshold={threshold}, owner_id={owner_id})"
        )
        return results

    def add_link(self, link: EntityLink) -> EntityLink:
        with self._lock:
            self._owned(link.owner_id, link.source_id)
            self._owned(link.owner_id, link.target_id)
            self._links[link.id] = link.model_copy()

        logger.debug(
            f"Linked {link.source_id} -> {link.target_id} "
            f"({link.relationship_type}, strength={link.strength})"
        )
        return link

    def traverse_graph(
        self,
        owner_id: str,
        seed_id: str,
        max_depth: int = 2,
        min_strength: float = 0.3,
    ) -> List[GraphPath]:
        with self._lock:
            links = [link for link in self._links.values() if link.owner_id == owner_id]
            records = {record.id: record for record in self._active(owner_id)}

        return traverse_links(seed_id, links, records, max_depth, min_strength)

    def add_fact(self, fact: EntityFact) -> EntityFact:
        with self._lock:
            self._owned(fact.owner_id, fact.subject_id)
            self._facts[fact.id] = fact.model_copy()
        return fact

    def find_fact(
        self, owner_id: str, subject_id: str, predicate: str, object_text: str
    ) -> Optional[EntityFact]:
        with self._lock:
            for fact in self._facts.values():
                if (
                    fact.owner_id == owner_id
                    and fact.subject_id == subject_id
                    and fact.predicate.lower() == predicate.lower()
                    and fact.object_text.lower() == object_text.lower()
                ):
                    return fact.model_copy()
        return None

    def update_fact_confidence(self, owner_id: str, fact_id: str, confidence: float) -> EntityFact:
        with self._lock:
            fact = self._facts.get(fact_id)
            if fact is None or fact.owner_id != owner_id:
                raise NotFoundError(fact_id, owner_id)
            updated = fact.model_copy(
                update={"confidence": confidence, "updated_at": datetime.now()}
            )
            self._facts[fact_id] = updated
        return updated

    def get_facts(self, owner_id: str, subject_id: str) -> List[EntityFact]:
        with self._lock:
            return [
                fact.model_copy()
                for fact in self._facts.values()
                if fact.owner_id == owner_id and fact.subject_id == subject_id
            ]

    def add_sentiment(self, reading: SentimentReading) -> SentimentReading:
        with self._lock:
            self._sentiments.append(reading)
        return reading

    def recent_sentiments(self, owner_id: str, record_id: str, limit: int = 20) -> List[float]:
        with self._lock:
            readings = [
                reading
                for reading in self._sentiments
                if reading.owner_id == owner_id and reading.record_id == record_id
            ]
        # Newest first; insertion order breaks timestamp ties
        readings = sorted(
            enumerate(readings), key=lambda pair: (pair[1].created_at, pair[0]), reverse=True
        )
        return [reading.sentiment for _, reading in readings[:limit]]

    def clear_owner(self, owner_id: str) -> int:
        """Clear all data for a specific owner."""
        with self._lock:
            record_ids = [rid for rid, r in self._records.items() if r.owner_id == owner_id]
            for record_id in record_ids:
                del self._records[record_id]
            self._links = {k: v for k, v in self._links.items() if v.owner_id != owner_id}
            self._facts = {k: v for k, v in self._facts.items() if v.owner_id != owner_id}
            self._sentiments = [s for s in self._sentiments if s.owner_id != owner_id]

        logger.info(f"Cleared {len(record_ids)} records for owner_id={owner_id}")
        return len(record_ids)

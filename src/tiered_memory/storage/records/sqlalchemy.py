"""
SQLAlchemy-based record storage implementation.

Provides a storage backend that works with any SQLAlchemy-compatible
database (PostgreSQL, SQLite, MySQL, etc.). Embeddings are kept on the row as
JSON text and mirrored into a Qdrant index, which answers similarity search.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import Boolean, Column, DateTime, Engine, Float, Index, Integer, String, Text, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from tiered_memory.errors import NotFoundError, PersistenceError, VersionConflictError
from tiered_memory.models import (
    EntityFact,
    EntityLink,
    GraphPath,
    MemoryRecord,
    RecordQueryFilter,
    SentimentReading,
)
from tiered_memory.storage.graph import traverse_links
from tiered_memory.storage.index.qdrant import QdrantRecordIndex
from tiered_memory.storage.records.common import apply_record_updates, check_version

logger = logging.getLogger(__name__)

# Create SQLAlchemy Base
Base = declarative_base()


class RecordDB(Base):
    """SQLAlchemy model for memory records."""

    __tablename__ = "memory_records"

    # Primary key
    id = Column(String, primary_key=True)

    # Identity and content
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    summary = Column(Text, nullable=False, default="")
    memory_type = Column(String, nullable=False)
    payload_json = Column(Text, nullable=False, default="{}")
    context_notes_json = Column(Text, nullable=False, default="[]")

    # Scoring
    importance = Column(String, nullable=False, default="medium")
    importance_score = Column(Float, nullable=False, default=0.5)
    sentiment_average = Column(Float, nullable=False, default=0.0)
    mention_count = Column(Integer, nullable=False, default=1)
    confidence = Column(Float, nullable=False, default=0.8)
    sensitivity_level = Column(String, nullable=False, default="normal")

    # Lifecycle
    status = Column(String, nullable=False, default="active", index=True)
    version = Column(Integer, nullable=False, default=1)
    supersedes_id = Column(String, nullable=True)
    superseded_by = Column(String, nullable=True)
    is_historical = Column(Boolean, nullable=False, default=False)
    effective_from = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    # Embedding (JSON serialized)
    embedding_json = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    # Indexes
    __table_args__ = (
        Index("idx_records_owner_status", "owner_id", "status", "is_historical"),
    )

    def to_record(self) -> MemoryRecord:
        """Convert database model to MemoryRecord."""
        return MemoryRecord(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            summary=self.summary,
            context_notes=json.loads(self.context_notes_json) if self.context_notes_json else [],
            payload=json.loads(self.payload_json),
            importance=self.importance,
            importance_score=self.importance_score,
            sentiment_average=self.sentiment_average,
            mention_count=self.mention_count,
            status=self.status,
            version=self.version,
            supersedes_id=self.supersedes_id,
            superseded_by=self.superseded_by,
            is_historical=self.is_historical,
            effective_from=self.effective_from,
            expires_at=self.expires_at,
            sensitivity_level=self.sensitivity_level,
            confidence=self.confidence,
            embedding=json.loads(self.embedding_json) if self.embedding_json else None,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @staticmethod
    def columns_from_record(record: MemoryRecord) -> Dict[str, Any]:
        """Column values for a MemoryRecord."""
        return {
            "id": record.id,
            "owner_id": record.owner_id,
            "name": record.name,
            "summary": record.summary,
            "memory_type": record.memory_type,
            "payload_json": record.payload.model_dump_json(),
            "context_notes_json": json.dumps(record.context_notes),
            "importance": record.importance,
            "importance_score": record.importance_score,
            "sentiment_average": record.sentiment_average,
            "mention_count": record.mention_count,
            "confidence": record.confidence,
            "sensitivity_level": record.sensitivity_level,
            "status": record.status,
            "version": record.version,
            "supersedes_id": record.supersedes_id,
            "superseded_by": record.superseded_by,
            "is_historical": record.is_historical,
            "effective_from": record.effective_from,
            "expires_at": record.expires_at,
            "embedding_json": json.dumps(record.embedding) if record.embedding else None,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    @staticmethod
    def from_record(record: MemoryRecord) -> "RecordDB":
        """Create database model from MemoryRecord."""
        return RecordDB(**RecordDB.columns_from_record(record))


class LinkDB(Base):
    """SQLAlchemy model for graph edges."""

    __tablename__ = "entity_links"

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    source_id = Column(String, nullable=False, index=True)
    target_id = Column(String, nullable=False, index=True)
    relationship_type = Column(String, nullable=False)
    strength = Column(Float, nullable=False, default=0.5)
    directed = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_link(self) -> EntityLink:
        return EntityLink(
            id=self.id,
            owner_id=self.owner_id,
            source_id=self.source_id,
            target_id=self.target_id,
            relationship_type=self.relationship_type,
            strength=self.strength,
            directed=self.directed,
            is_active=self.is_active,
            created_at=self.created_at,
        )


class FactDB(Base):
    """SQLAlchemy model for subject-predicate-object facts."""

    __tablename__ = "entity_facts"

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    subject_id = Column(String, nullable=False, index=True)
    predicate = Column(String, nullable=False)
    object_text = Column(Text, nullable=False)
    object_record_id = Column(String, nullable=True)
    confidence = Column(Float, nullable=False, default=0.8)
    source_note_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_fact(self) -> EntityFact:
        return EntityFact(
            id=self.id,
            owner_id=self.owner_id,
            subject_id=self.subject_id,
            predicate=self.predicate,
            object_text=self.object_text,
            object_record_id=self.object_record_id,
            confidence=self.confidence,
            source_note_id=self.source_note_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class SentimentDB(Base):
    """SQLAlchemy model for per-record sentiment history."""

    __tablename__ = "sentiment_readings"

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False)
    record_id = Column(String, nullable=False, index=True)
    sentiment = Column(Float, nullable=False)
    source_note_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    seq = Column(Integer, nullable=False, default=0)


class SQLAlchemyRecordStore:
    """
    SQLAlchemy-based record storage.

    Works with any SQLAlchemy-compatible database including PostgreSQL,
    SQLite, MySQL, and more. Versioned writes are compare-and-set UPDATEs
    filtered on the current version; supersede and merge run in one
    transaction.

    Example:
        from sqlalchemy import create_engine
        engine = create_engine("sqlite:///memory.db")
        store = SQLAlchemyRecordStore(engine)
        store.create_tables()
    """

    def __init__(self, engine: Engine, vector_index: Optional[QdrantRecordIndex] = None):
        """
        Initialize the SQLAlchemy record store.

        Args:
            engine: SQLAlchemy engine for database connection
            vector_index: Embedding index for find_similar (default: local
                in-memory Qdrant, reloaded per owner on first search)
        """
        self.engine = engine
        self.vector_index = vector_index or QdrantRecordIndex()
        self._loaded_owners: Set[str] = set()
        logger.info(f"SQLAlchemyRecordStore initialized (engine={engine.url})")

    @contextmanager
    def _session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = Session(self.engine)
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Record tables created/verified")

    def _owned_row(self, session: Session, owner_id: str, record_id: str) -> RecordDB:
        row = (
            session.query(RecordDB)
            .filter(RecordDB.id == record_id, RecordDB.owner_id == owner_id)
            .first()
        )
        if row is None:
            raise NotFoundError(record_id, owner_id)
        return row

    def _compare_and_set(self, session: Session, current: MemoryRecord, updated: MemoryRecord):
        """Write updated over current only if the stored version is still current.version."""
        values = RecordDB.columns_from_record(updated)
        del values["id"]
        count = (
            session.query(RecordDB)
            .filter(RecordDB.id == current.id, RecordDB.version == current.version)
            .update(values, synchronize_session=False)
        )
        if count == 0:
            actual = session.query(RecordDB.version).filter(RecordDB.id == current.id).scalar()
            raise VersionConflictError(current.id, current.version, actual or -1)

    def _active_query(self, session: Session, owner_id: str):
        return session.query(RecordDB).filter(
            RecordDB.owner_id == owner_id,
            RecordDB.status == "active",
            RecordDB.is_historical.is_(False),
        )

    def add_record(self, record: MemoryRecord) -> MemoryRecord:
        """Insert a new record."""
        with self._session() as session:
            session.add(RecordDB.from_record(record))
        self.vector_index.upsert([record])

        logger.debug(f"Inserted record {record.id}: '{record.name}'")
        return record

    def get_record(self, owner_id: str, record_id: str) -> Optional[MemoryRecord]:
        with self._session() as session:
            row = (
                session.query(RecordDB)
                .filter(RecordDB.id == record_id, RecordDB.owner_id == owner_id)
                .first()
            )
            return row.to_record() if row else None

    def get_records(self, owner_id: str, record_ids: List[str]) -> List[MemoryRecord]:
        if not record_ids:
            return []

        with self._session() as session:
            rows = (
                session.query(RecordDB)
                .filter(RecordDB.owner_id == owner_id, RecordDB.id.in_(record_ids))
                .all()
            )
            by_id = {row.id: row.to_record() for row in rows}

        return [by_id[record_id] for record_id in dict.fromkeys(record_ids) if record_id in by_id]

    def update_record(
        self,
        owner_id: str,
        record_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> MemoryRecord:
        """Update fields of a record, checking the version when given."""
        with self._session() as session:
            current = self._owned_row(session, owner_id, record_id).to_record()
            check_version(current, expected_version)
            updated = apply_record_updates(current, updates)
            self._compare_and_set(session, current, updated)
        self.vector_index.upsert([updated])

        logger.debug(f"Updated record {record_id}: {sorted(updates)}")
        return updated

    def supersede_record(
        self,
        owner_id: str,
        record_id: str,
        expected_version: int,
        successor: MemoryRecord,
    ) -> Tuple[MemoryRecord, MemoryRecord]:
        """Atomically replace a record with a successor."""
        with self._session() as session:
            old = self._owned_row(session, owner_id, record_id).to_record()
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
            self._compare_and_set(session, old, retired)
            session.add(RecordDB.from_record(new))
        self.vector_index.upsert([retired, new])

        logger.info(f"Superseded record {record_id} with {new.id} (version {new.version})")
        return retired, new

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
        with self._session() as session:
            keeper = self._owned_row(session, owner_id, keeper_id).to_record()
            merged = self._owned_row(session, owner_id, merged_id).to_record()
            check_version(keeper, keeper_version)
            check_version(merged, merged_version)

            new_keeper = apply_record_updates(keeper, keeper_updates)
            archived = apply_record_updates(
                merged, {"status": "archived", "superseded_by": keeper_id}
            )
            self._compare_and_set(session, keeper, new_keeper)
            self._compare_and_set(session, merged, archived)
        self.vector_index.upsert([new_keeper, archived])

        logger.info(f"Merged record {merged_id} into {keeper_id}")
        return new_keeper, archived

    def delete_record(self, owner_id: str, record_id: str) -> bool:
        """
        Hard-delete a record with its facts, links and sentiment readings.

        Facts about other records that named this one keep their text but
        lose object_record_id.
        """
        with self._session() as session:
            count = (
                session.query(RecordDB)
                .filter(RecordDB.id == record_id, RecordDB.owner_id == owner_id)
                .delete()
            )
            if count:
                session.query(FactDB).filter(
                    FactDB.owner_id == owner_id, FactDB.subject_id == record_id
                ).delete(synchronize_session=False)
                session.query(FactDB).filter(
                    FactDB.owner_id == owner_id, FactDB.object_record_id == record_id
                ).update({"object_record_id": None}, synchronize_session=False)
                session.query(LinkDB).filter(
                    LinkDB.owner_id == owner_id,
                    or_(LinkDB.source_id == record_id, LinkDB.target_id == record_id),
                ).delete(synchronize_session=False)
                session.query(SentimentDB).filter(
                    SentimentDB.owner_id == owner_id, SentimentDB.record_id == record_id
                ).delete(synchronize_session=False)

        if not count:
            logger.warning(f"Cannot delete record {record_id}: not found")
            return False

        self.vector_index.delete([record_id])
        logger.info(f"Deleted record {record_id}")
        return True

    def list_active_records(
        self,
        owner_id: str,
        with_embeddings_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        with self._session() as session:
            query = self._active_query(session, owner_id)
            if with_embeddings_only:
                query = query.filter(RecordDB.embedding_json.isnot(None))
            query = query.order_by(RecordDB.created_at.asc(), RecordDB.id.asc())
            if limit:
                query = query.limit(limit)
            return [row.to_record() for row in query.all()]

    def top_records(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        with self._session() as session:
            rows = (
                self._active_query(session, owner_id)
                .order_by(RecordDB.importance_score.desc(), RecordDB.mention_count.desc())
                .limit(limit)
                .all()
            )
            return [row.to_record() for row in rows]

    def find_by_name(self, owner_id: str, name: str, limit: int = 3) -> List[MemoryRecord]:
        needle = name.strip()
        if not needle:
            return []

        with self._session() as session:
            rows = (
                self._active_query(session, owner_id)
                .filter(RecordDB.name.ilike(f"%{needle}%"))
                .order_by(RecordDB.importance_score.desc())
                .limit(limit)
                .all()
            )
            return [row.to_record() for row in rows]

    def rebuild_index(self, owner_id: str) -> int:
        """Reload an owner's embeddings from the database into the vector index."""
        with self._session() as session:
            rows = (
                session.query(RecordDB)
                .filter(RecordDB.owner_id == owner_id, RecordDB.embedding_json.isnot(None))
                .all()
            )
            records = [row.to_record() for row in rows]

        self.vector_index.upsert(records)
        self._loaded_owners.add(owner_id)
        logger.info(f"Rebuilt vector index for owner_id={owner_id} ({len(records)} records)")
        return len(records)

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

        The index narrows to the owner's live records; expiry, future dates
        and sensitivity are then checked on the hydrated rows, so the index
        is asked for more hits than the limit.
        """
        query_filter = query_filter or RecordQueryFilter()
        now = datetime.now()

        if not self.vector_index.persistent and owner_id not in self._loaded_owners:
            self.rebuild_index(owner_id)

        hits = self.vector_index.search(
            owner_id,
            embedding,
            threshold=threshold,
            limit=limit * 4 + 20,
            include_historical=query_filter.include_historical,
        )
        scores = dict(hits)
        records = self.get_records(owner_id, [record_id for record_id, _ in hits])

        results = [
            (record, scores[record.id])
            for record in records
            if query_filter.matches(record, now)
        ]
        results.sort(key=lambda x: x[1], reverse=True)
        results = results[:limit]

        logger.debug(
            f"Found {len(results)} similar records (threshold={threshold}, owner_id={owner_id})"
        )
        return results

    def add_link(self, link: EntityLink) -> EntityLink:
        with self._session() as session:
            self._owned_row(session, link.owner_id, link.source_id)
            self._owned_row(session, link.owner_id, link.target_id)
            session.add(
                LinkDB(
                    id=link.id,
                    owner_id=link.owner_id,
                    source_id=link.source_id,
                    target_id=link.target_id,
                    relationship_type=link.relationship_type,
                    strength=link.strength,
                    directed=link.directed,
                    is_active=link.is_active,
                    created_at=link.created_at,
                )
            )

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
        with self._session() as session:
            links = [
                row.to_link()
                for row in session.query(LinkDB)
                .filter(LinkDB.owner_id == owner_id, LinkDB.is_active.is_(True))
                .all()
            ]
            records = {row.id: row.to_record() for row in self._active_query(session, owner_id)}

        return traverse_links(seed_id, links, records, max_depth, min_strength)

    def add_fact(self, fact: EntityFact) -> EntityFact:
        with self._session() as session:
            self._owned_row(session, fact.owner_id, fact.subject_id)
            session.add(
                FactDB(
                    id=fact.id,
                    owner_id=fact.owner_id,
                    subject_id=fact.subject_id,
                    predicate=fact.predicate,
                    object_text=fact.object_text,
                    object_record_id=fact.object_record_id,
                    confidence=fact.confidence,
                    source_note_id=fact.source_note_id,
                    created_at=fact.created_at,
                    updated_at=fact.updated_at,
                )
            )
        return fact

    def find_fact(
        self, owner_id: str, subject_id: str, predicate: str, object_text: str
    ) -> Optional[EntityFact]:
        with self._session() as session:
            rows = (
                session.query(FactDB)
                .filter(FactDB.owner_id == owner_id, FactDB.subject_id == subject_id)
                .all()
            )
            for row in rows:
                if (
                    row.predicate.lower() == predicate.lower()
                    and row.object_text.lower() == object_text.lower()
                ):
                    return row.to_fact()
        return None

    def update_fact_confidence(self, owner_id: str, fact_id: str, confidence: float) -> EntityFact:
        with self._session() as session:
            row = (
                session.query(FactDB)
                .filter(FactDB.id == fact_id, FactDB.owner_id == owner_id)
                .first()
            )
            if row is None:
                raise NotFoundError(fact_id, owner_id)
            row.confidence = confidence
            row.updated_at = datetime.now()
            return row.to_fact()

    def get_facts(self, owner_id: str, subject_id: str) -> List[EntityFact]:
        with self._session() as session:
            rows = (
                session.query(FactDB)
                .filter(FactDB.owner_id == owner_id, FactDB.subject_id == subject_id)
                .order_by(FactDB.created_at.asc())
                .all()
            )
            return [row.to_fact() for row in rows]

    def add_sentiment(self, reading: SentimentReading) -> SentimentReading:
        with self._session() as session:
            last_seq = (
                session.query(SentimentDB.seq)
                .filter(SentimentDB.record_id == reading.record_id)
                .order_by(SentimentDB.seq.desc())
                .limit(1)
                .scalar()
            )
            session.add(
                SentimentDB(
                    id=reading.id,
                    owner_id=reading.owner_id,
                    record_id=reading.record_id,
                    sentiment=reading.sentiment,
                    source_note_id=reading.source_note_id,
                    created_at=reading.created_at,
                    seq=(last_seq or 0) + 1,
                )
            )
        return reading

    def recent_sentiments(self, owner_id: str, record_id: str, limit: int = 20) -> List[float]:
        with self._session() as session:
            rows = (
                session.query(SentimentDB.sentiment)
                .filter(SentimentDB.owner_id == owner_id, SentimentDB.record_id == record_id)
                .order_by(SentimentDB.created_at.desc(), SentimentDB.seq.desc())
                .limit(limit)
                .all()
            )
            return [row[0] for row in rows]

    def clear_owner(self, owner_id: str) -> int:
        """Clear all data for a specific owner."""
        with self._session() as session:
            count = session.query(RecordDB).filter(RecordDB.owner_id == owner_id).delete()
            session.query(LinkDB).filter(LinkDB.owner_id == owner_id).delete()
            session.query(FactDB).filter(FactDB.owner_id == owner_id).delete()
            session.query(SentimentDB).filter(SentimentDB.owner_id == owner_id).delete()

        self.vector_index.clear_owner(owner_id)
        self._loaded_owners.discard(owner_id)
        logger.info(f"Cleared {count} records for owner_id={owner_id}")
        return count

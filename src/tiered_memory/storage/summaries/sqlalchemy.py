"""
SQLAlchemy-based category summary storage implementation.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Engine, Integer, String, Text, UniqueConstraint
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from tiered_memory.errors import PersistenceError
from tiered_memory.models import CategorySummary

logger = logging.getLogger(__name__)

# Create SQLAlchemy Base
Base = declarative_base()


class SummaryDB(Base):
    """SQLAlchemy model for category summaries."""

    __tablename__ = "category_summaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    entity_count = Column(Integer, nullable=False, default=0)
    last_records_json = Column(Text, nullable=False, default="[]")
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (UniqueConstraint("owner_id", "category", name="uq_summary_owner_category"),)

    def to_summary(self) -> CategorySummary:
        """Convert database model to CategorySummary."""
        return CategorySummary(
            owner_id=self.owner_id,
            category=self.category,
            summary=self.summary,
            entity_count=self.entity_count,
            last_records=json.loads(self.last_records_json) if self.last_records_json else [],
            updated_at=self.updated_at,
        )


class SQLAlchemySummaryStore:
    """
    SQLAlchemy-based category summary storage.

    Example:
        engine = create_engine("sqlite:///memory.db")
        store = SQLAlchemySummaryStore(engine)
        store.create_tables()
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        logger.info(f"SQLAlchemySummaryStore initialized (engine={engine.url})")

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
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Summary tables created/verified")

    def get_summary(self, owner_id: str, category: str) -> Optional[CategorySummary]:
        with self._session() as session:
            row = (
                session.query(SummaryDB)
                .filter(SummaryDB.owner_id == owner_id, SummaryDB.category == category)
                .first()
            )
            return row.to_summary() if row else None

    def upsert_summary(self, summary: CategorySummary) -> CategorySummary:
        """Insert or replace the summary for (owner, category)."""
        with self._session() as session:
            row = (
                session.query(SummaryDB)
                .filter(
                    SummaryDB.owner_id == summary.owner_id,
                    SummaryDB.category == summary.category,
                )
                .first()
            )
            if row is None:
                row = SummaryDB(owner_id=summary.owner_id, category=summary.category)
                session.add(row)

            row.summary = summary.summary
            row.entity_count = summary.entity_count
            row.last_records_json = json.dumps(summary.last_records)
            row.updated_at = summary.updated_at

        logger.debug(f"Upserted summary {summary.category} for owner {summary.owner_id}")
        return summary

    def list_summaries(
        self, owner_id: str, categories: Optional[List[str]] = None
    ) -> List[CategorySummary]:
        with self._session() as session:
            query = session.query(SummaryDB).filter(SummaryDB.owner_id == owner_id)
            if categories is not None:
                query = query.filter(SummaryDB.category.in_(categories))
            rows = query.order_by(SummaryDB.updated_at.desc()).all()
            return [row.to_summary() for row in rows]

    def clear_owner(self, owner_id: str) -> int:
        with self._session() as session:
            count = session.query(SummaryDB).filter(SummaryDB.owner_id == owner_id).delete()

        logger.info(f"Cleared {count} summaries for owner_id={owner_id}")
        return count

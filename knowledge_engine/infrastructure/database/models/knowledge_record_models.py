"""SQLAlchemy ORM model for knowledge records with embeddings."""

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)

from knowledge_engine.infrastructure.database.base import Base
from knowledge_engine.infrastructure.database.types import EmbeddingType, MetadataJSON


class KnowledgeRecordModel(Base):
    """One embedded chunk of a source document.

    Rows are insert-only. ``metadata`` carries at least ``fileId`` and
    ``chunkIndex``; it is used for equality filtering, never for ranking.
    No ANN index is created: ranking is an exact scan so that the store
    agrees with the brute-force ranking, filters included.
    """

    __tablename__ = "knowledge_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    embedding = Column(EmbeddingType(), nullable=False)
    metadata_ = Column("metadata", MetadataJSON, nullable=False, default=dict)
    category = Column(String(100), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_knowledge_records_created_at", "created_at"),
        # Keeps ids strictly monotonic on SQLite even after deletes.
        {"sqlite_autoincrement": True},
    )

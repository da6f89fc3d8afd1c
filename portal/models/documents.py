"""
SQLAlchemy ORM model backing the document store.
Every document of every collection is one row, addressed by its full path.
"""
from sqlalchemy import Column, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone

from portal.db.postgres import Base


class StoredDocument(Base):
    """A single document: ``collection``/``doc_id`` with a JSONB body."""
    __tablename__ = "documents"

    path = Column(Text, primary_key=True)
    collection = Column(Text, nullable=False)
    root = Column(Text, nullable=False)
    doc_id = Column(Text, nullable=False)
    data = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
        Index("ix_documents_root", "root"),
        Index("ix_documents_data", "data", postgresql_using="gin"),
    )

"""Keyed JSON documents backing snapshots, signals, briefs, articles and watchlists"""

from sqlalchemy import JSON, Column, DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from pulse.models import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
DocumentData = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    __tablename__ = "documents"

    collection = Column(Text, primary_key=True)
    doc_id = Column(Text, primary_key=True)
    data = Column(DocumentData, nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_documents_collection", "collection"),)

"""
Knowledge Infrastructure Models
===============================

SQLAlchemy ORM models for the knowledge library.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import String, DateTime, Integer, Text, JSON, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from supportflow.infrastructure.database import Base
from supportflow.config import DocumentStatus, JobStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentModel(Base):
    """
    Database model for Document entity.

    tenant_id NULL marks a platform-wide document.
    """
    __tablename__ = "knowledge_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), index=True, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    source: Mapped[str] = mapped_column(String(500), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DocumentStatus.PENDING)
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_knowledge_documents_tenant_category", "tenant_id", "category"),
    )


class ChunkModel(Base):
    """
    Database model for Chunk entity.

    Embeddings are stored as a JSON float array of fixed dimension.
    """
    __tablename__ = "knowledge_chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    document_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("knowledge_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Denormalized from the document for scoped search
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), index=True, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[List[float]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class IngestJobModel(Base):
    """
    Database model for IngestJob entity.

    A document has at most one open (pending or processing) job.
    """
    __tablename__ = "knowledge_ingest_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    document_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("knowledge_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobStatus.PENDING, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index(
            "uq_knowledge_ingest_jobs_open_document",
            "document_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'processing')"),
            sqlite_where=text("status IN ('pending', 'processing')"),
        ),
    )

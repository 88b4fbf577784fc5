"""
Support Infrastructure Models
=============================

SQLAlchemy ORM models for the support agent.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, Integer, Float, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from supportflow.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AgentConfigModel(Base):
    """
    Database model for a tenant's agent config.

    The config column may hold any historical shape; it is migrated on read.
    """
    __tablename__ = "agent_configs"

    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class SupportEventModel(Base):
    """Database model for the append-only support event log."""
    __tablename__ = "support_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    request_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(120), nullable=False)
    intent: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    draft_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_email_masked: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_support_events_tenant_created", "tenant_id", "created_at"),
    )

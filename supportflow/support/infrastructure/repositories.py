"""
Support Infrastructure Repositories
===================================

SQLAlchemy implementations of the agent config store and the support
event sink.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportflow.support.application import IAgentConfigStore, ISupportEventSink
from supportflow.support.domain import (
    AgentConfig, SupportEvent, agent_config_to_dict, migrate_agent_config
)
from supportflow.support.infrastructure.models import AgentConfigModel, SupportEventModel


class SQLAlchemyAgentConfigStore(IAgentConfigStore):
    """Agent configs keyed by tenant; legacy shapes are migrated on read."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, tenant_id: str) -> Optional[AgentConfig]:
        async with self._session_factory() as session:
            model = await session.get(AgentConfigModel, tenant_id)
            if model is None:
                return None
            return migrate_agent_config(model.config)

    async def put(self, tenant_id: str, config: AgentConfig) -> AgentConfig:
        async with self._session_factory() as session, session.begin():
            model = await session.get(AgentConfigModel, tenant_id)
            if model is None:
                model = AgentConfigModel(tenant_id=tenant_id)
                session.add(model)
            model.config = agent_config_to_dict(config)
            model.schema_version = config.schema_version
            model.updated_at = datetime.now(timezone.utc)
        return config


class SQLAlchemySupportEventSink(ISupportEventSink):
    """Append-only support event log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, event: SupportEvent) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(SupportEventModel(
                tenant_id=event.tenant_id,
                request_id=event.request_id,
                source=event.source,
                subject=event.subject,
                intent=event.intent,
                confidence=event.confidence,
                latency_ms=event.latency_ms,
                draft_text=event.draft_text,
                outcome=event.outcome,
                customer_email_masked=event.customer_email_masked,
                error_message=event.error_message,
                created_at=event.created_at,
            ))

    async def stats(self, tenant_id: Optional[str]) -> Dict:
        by_outcome = select(SupportEventModel.outcome, func.count()).group_by(SupportEventModel.outcome)
        averages = select(
            func.avg(SupportEventModel.confidence),
            func.avg(SupportEventModel.latency_ms),
        )
        if tenant_id is not None:
            by_outcome = by_outcome.where(SupportEventModel.tenant_id == tenant_id)
            averages = averages.where(SupportEventModel.tenant_id == tenant_id)

        async with self._session_factory() as session:
            outcomes = {outcome: count for outcome, count in (await session.execute(by_outcome)).all()}
            avg_confidence, avg_latency = (await session.execute(averages)).one()

        return {
            "events_total": sum(outcomes.values()),
            "outcomes": outcomes,
            "average_confidence": round(float(avg_confidence), 4) if avg_confidence is not None else None,
            "average_latency_ms": round(float(avg_latency), 1) if avg_latency is not None else None,
        }

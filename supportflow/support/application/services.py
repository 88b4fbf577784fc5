"""
Support Application Services
============================

Application services for the support agent.

- SupportAgentService: rule match, or retrieve + draft + route; one
  Support Event per call
- AgentConfigService: per-tenant agent config read / write
- SupportStatsService: routing outcome statistics
"""

import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from supportflow.config import EventOutcome, Route, settings
from supportflow.core import ResourceNotFoundException, ValidationException
from supportflow.knowledge.application import RetrievalService
from supportflow.knowledge.domain import RetrievalResult, TenantScope
from supportflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from supportflow.shared.infrastructure.logging import get_logger, log_latency, mask_email
from supportflow.support.domain import (
    AgentConfig,
    RoutingEngine,
    RoutingPolicy,
    RuleMatch,
    RuleMatcher,
    SupportEvent,
    SupportPromptBuilder,
    SupportReply,
    Ticket,
    email_address,
    migrate_agent_config,
    parse_model_output,
    validate_draft,
)

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000
EVENT_SUBJECT_LENGTH = 120


# ========== Repository Interfaces ==========

class IAgentConfigStore(ABC):
    """Interface for per-tenant agent config storage."""

    @abstractmethod
    async def get(self, tenant_id: str) -> Optional[AgentConfig]:
        """Load and migrate the stored config, or None if the tenant has none."""

    @abstractmethod
    async def put(self, tenant_id: str, config: AgentConfig) -> AgentConfig:
        """Insert or replace the tenant's config."""


class ISupportEventSink(ABC):
    """Interface for the append-only support event log."""

    @abstractmethod
    async def append(self, event: SupportEvent) -> None:
        """Persist one event."""

    @abstractmethod
    async def stats(self, tenant_id: Optional[str]) -> Dict:
        """
        Aggregate events. tenant_id None aggregates all tenants.

        Returns a dict with events_total, outcomes, average_confidence
        and average_latency_ms.
        """


class IChatCompletionClient(ABC):
    """Interface for the chat-completion function."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[Optional[str], str]:
        """Return (raw content or None, model name)."""


# ========== Services ==========

class SupportAgentService:
    """
    Drafts and routes a reply for one ticket.

    Failures are caught only at the outermost level of generate(): an
    error event is recorded and the exception is re-raised unchanged.
    """

    def __init__(
        self,
        configs: IAgentConfigStore,
        events: ISupportEventSink,
        retrieval: RetrievalService,
        chat: IChatCompletionClient,
        policy_provider: Optional[Callable[[], RoutingPolicy]] = None,
        exporter: Optional[GrafanaOTLPExporter] = None,
        max_tokens: int = settings.llm_max_tokens
    ):
        self._configs = configs
        self._events = events
        self._retrieval = retrieval
        self._chat = chat
        self._policy_provider = policy_provider or RoutingPolicy
        self._exporter = exporter
        self._max_tokens = max_tokens

    async def generate(self, ticket: Ticket, request_id: Optional[str] = None) -> SupportReply:
        """
        Generate a routed reply.

        Args:
            ticket: Validated ticket
            request_id: Caller-assigned id; generated when omitted

        Raises:
            ResourceNotFoundException: If the tenant has no agent config
            ProviderException / ModelOutputValidationException: On model or retrieval failure
        """
        request_id = request_id or str(uuid.uuid4())
        started = time.perf_counter()
        try:
            with log_latency(logger, "generate_reply", tenant_id=ticket.tenant_id, request_id=request_id):
                reply, intent, outcome = await self._generate(ticket, request_id)
        except Exception as e:
            latency_ms = int((time.perf_counter() - started) * 1000)
            message = str(e)[:MAX_ERROR_LENGTH] or type(e).__name__
            logger.error(
                "Reply generation failed",
                extra={
                    "tenant_id": ticket.tenant_id,
                    "request_id": request_id,
                    "error_type": type(e).__name__,
                    "error_message": message,
                }
            )
            await self._record(ticket, request_id, EventOutcome.ERROR, latency_ms, error_message=message)
            await self._export(ticket.tenant_id, EventOutcome.ERROR, None, latency_ms, None)
            raise

        latency_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Ticket routed",
            extra={
                "tenant_id": ticket.tenant_id,
                "request_id": request_id,
                "routing": reply.routing,
                "confidence": round(reply.confidence, 4),
                "knowledge_used": reply.knowledge_used,
                "customer_email": mask_email(self._customer_email(ticket)),
            }
        )
        await self._record(
            ticket, request_id, outcome, latency_ms,
            intent=intent, confidence=reply.confidence, draft_text=reply.body
        )
        await self._export(ticket.tenant_id, outcome, reply.confidence, latency_ms, reply.retrieval_tier)
        return reply

    async def _generate(self, ticket: Ticket, request_id: str) -> Tuple[SupportReply, Optional[str], str]:
        config = await self._configs.get(ticket.tenant_id)
        if config is None:
            raise ResourceNotFoundException("Agent config", ticket.tenant_id)

        policy = self._policy_provider()
        sender = email_address(ticket.sender)

        match = RuleMatcher(policy.rules).match(ticket, config)
        if match is not None:
            return self._rule_reply(match, request_id, sender), match.intent, EventOutcome.AUTO_REPLY

        retrieval = await self._retrieval.retrieve(
            TenantScope.for_tenant(ticket.tenant_id),
            ticket.search_text,
            policy.high_threshold,
            policy.medium_threshold,
        )
        system_prompt = SupportPromptBuilder.build_system_prompt(
            config,
            retrieval.context if retrieval.used else "",
            policy.knowledge_heading,
        )
        user_prompt = SupportPromptBuilder.build_user_prompt(ticket, config)

        raw, model = await self._chat.complete(system_prompt, user_prompt, self._max_tokens)
        draft = validate_draft(parse_model_output(raw))

        decision = RoutingEngine(policy).decide(
            draft, config, retrieval.used, retrieval.top_similarity
        )
        if decision.double_sign_off:
            logger.warning(
                "Model draft ends with its own sign-off; signature appended anyway",
                extra={"tenant_id": ticket.tenant_id, "request_id": request_id}
            )

        reply = SupportReply(
            request_id=request_id,
            status=draft.status,
            routing=decision.route,
            confidence=decision.confidence,
            subject=draft.subject,
            body=decision.body,
            model=model,
            actions=decision.actions,
            reasons=draft.reasons,
            knowledge_used=retrieval.used,
            top_similarity=retrieval.top_similarity,
            retrieval_tier=retrieval.tier,
            knowledge_sources=self._sources(retrieval),
            sender=sender,
        )
        outcome = EventOutcome.AUTO if decision.route == Route.AUTO else EventOutcome.HUMAN_REVIEW
        return reply, None, outcome

    @staticmethod
    def _rule_reply(match: RuleMatch, request_id: str, sender: Optional[str]) -> SupportReply:
        return SupportReply(
            request_id=request_id,
            status=Route.AUTO_REPLY,
            routing=Route.AUTO_REPLY,
            confidence=match.confidence,
            subject=match.subject,
            body=match.body,
            intent=match.intent,
            sender=sender,
        )

    @staticmethod
    def _sources(retrieval: RetrievalResult) -> List[Dict[str, str]]:
        return [
            {"document_id": c.document_id, "chunk_id": c.chunk_id}
            for c in retrieval.selected
        ]

    @staticmethod
    def _customer_email(ticket: Ticket) -> Optional[str]:
        return ticket.customer.email or email_address(ticket.sender)

    async def _record(
        self,
        ticket: Ticket,
        request_id: str,
        outcome: str,
        latency_ms: int,
        intent: Optional[str] = None,
        confidence: Optional[float] = None,
        draft_text: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> None:
        event = SupportEvent(
            tenant_id=ticket.tenant_id,
            request_id=request_id,
            source=ticket.source,
            subject=ticket.subject[:EVENT_SUBJECT_LENGTH],
            outcome=outcome,
            latency_ms=latency_ms,
            intent=intent,
            confidence=confidence,
            draft_text=draft_text,
            customer_email_masked=mask_email(self._customer_email(ticket)),
            error_message=error_message,
        )
        try:
            await self._events.append(event)
        except Exception as e:
            # The routed reply (or the original error) wins over a lost event
            logger.warning(
                "Support event insert failed",
                extra={"request_id": request_id, "error_message": str(e)}
            )

    async def _export(
        self,
        tenant_id: str,
        outcome: str,
        confidence: Optional[float],
        latency_ms: int,
        retrieval_tier: Optional[str]
    ) -> None:
        if self._exporter is None or not self._exporter.is_enabled():
            return
        await self._exporter.export_routing_metrics(
            tenant_id=tenant_id,
            outcome=outcome,
            confidence=confidence,
            latency_ms=latency_ms,
            retrieval_tier=retrieval_tier,
        )


class AgentConfigService:
    """Per-tenant agent config read / write."""

    def __init__(self, store: IAgentConfigStore):
        self._store = store

    @staticmethod
    def _require_tenant(tenant_id: Optional[str]) -> str:
        if not tenant_id:
            raise ValidationException("tenant_id is required")
        return tenant_id

    async def get(self, tenant_id: Optional[str]) -> Tuple[AgentConfig, bool]:
        """Stored config, or defaults; the flag tells whether one was stored."""
        tenant_id = self._require_tenant(tenant_id)
        config = await self._store.get(tenant_id)
        if config is None:
            return AgentConfig(), False
        return config, True

    async def put(self, tenant_id: Optional[str], payload: Dict) -> AgentConfig:
        tenant_id = self._require_tenant(tenant_id)
        config = await self._store.put(tenant_id, migrate_agent_config(payload))
        logger.info(
            "Agent config saved",
            extra={"tenant_id": tenant_id, "schema_version": config.schema_version}
        )
        return config


class SupportStatsService:
    """Routing statistics over Support Events."""

    def __init__(self, events: ISupportEventSink):
        self._events = events

    async def stats(self, *, is_admin: bool, tenant_id: Optional[str]) -> Dict:
        if not is_admin and not tenant_id:
            raise ValidationException("tenant_id is required")
        return await self._events.stats(tenant_id)

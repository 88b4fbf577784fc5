"""
Support Application DTOs
========================

Pydantic models for the support agent API.

The generate request is validated strictly at the boundary: unknown
keys are rejected and only the declared optional fields are accepted.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from supportflow.support.domain import (
    AgentConfig,
    Customer,
    OrderInfo,
    SupportReply,
    Ticket,
    agent_config_to_dict,
)


class CamelModel(BaseModel):
    """Base for API models exchanged with the admin panel."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ========== Request DTOs ==========

class CustomerInput(StrictCamelModel):
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    language: Optional[Literal["nl", "en"]] = None


class OrderInput(StrictCamelModel):
    order_id: Optional[str] = Field(default=None, max_length=100)
    product_name: Optional[str] = Field(default=None, max_length=300)
    price_paid: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Literal["EUR", "USD"]] = None


class GenerateRequest(StrictCamelModel):
    """
    Request model for drafting a reply to a support ticket.

    At least one of subject and body must carry text.
    """
    tenant_id: Optional[str] = Field(default=None, description="Tenant; admins only, clients use their own")
    subject: str = Field(default="", max_length=1000)
    body: str = Field(default="", max_length=20000)
    channel: Literal["email", "chat", "ticket"] = "email"
    source: str = Field(default="api", max_length=50)
    sender: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("from", "sender"),
        serialization_alias="from",
        description="Raw From header, e.g. 'Sara <sara@example.com>'"
    )
    customer: CustomerInput = Field(default_factory=CustomerInput)
    order: OrderInput = Field(default_factory=OrderInput)

    @model_validator(mode="after")
    def check_content(self) -> "GenerateRequest":
        self.subject = self.subject.strip()
        self.body = self.body.strip()
        if not self.subject and not self.body:
            raise ValueError("Missing subject/body")
        return self

    def to_domain(self, tenant_id: str) -> Ticket:
        return Ticket(
            tenant_id=tenant_id,
            subject=self.subject,
            body=self.body,
            channel=self.channel,
            source=self.source.strip() or "api",
            sender=self.sender,
            customer=Customer(
                name=self.customer.name,
                email=self.customer.email,
                language=self.customer.language,
            ),
            order=OrderInfo(
                order_id=self.order.order_id,
                product_name=self.order.product_name,
                price_paid=self.order.price_paid,
                currency=self.order.currency,
            ),
        )


class AgentConfigInput(StrictCamelModel):
    """Agent config as edited in the admin panel."""
    company_name: str = Field(default="Company", min_length=1, max_length=200)
    tone: Literal["friendly", "formal", "direct"] = "friendly"
    empathy_enabled: bool = False
    allow_discount: bool = False
    max_discount_amount: float = Field(default=0.0, ge=0)
    signature: str = Field(default="Met vriendelijke groet,", max_length=2000)
    default_language: Literal["nl", "en"] = "nl"


# ========== Response DTOs ==========

class DraftOut(CamelModel):
    subject: str
    body: str
    sender: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("from", "sender"),
        serialization_alias="from"
    )


class KnowledgeSource(CamelModel):
    document_id: str
    chunk_id: str


class KnowledgeOut(CamelModel):
    used: bool
    top_similarity: Optional[float] = None
    sources: List[KnowledgeSource] = Field(default_factory=list)


class GenerateResponse(CamelModel):
    """Routed draft returned to the caller."""
    status: str
    confidence: float
    routing: Literal["AUTO", "HUMAN_REVIEW", "AUTO_REPLY"]
    draft: DraftOut
    knowledge: KnowledgeOut
    request_id: str
    model: Optional[str] = None
    retrieval_tier: Optional[str] = None
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, reply: SupportReply) -> "GenerateResponse":
        return cls(
            status=reply.status,
            confidence=reply.confidence,
            routing=reply.routing,
            draft=DraftOut(subject=reply.subject, body=reply.body, sender=reply.sender),
            knowledge=KnowledgeOut(
                used=reply.knowledge_used,
                top_similarity=reply.top_similarity,
                sources=[KnowledgeSource(**s) for s in reply.knowledge_sources],
            ),
            request_id=reply.request_id,
            model=reply.model,
            retrieval_tier=reply.retrieval_tier,
            actions=reply.actions,
            reasons=reply.reasons,
        )


class GenerateErrorResponse(BaseModel):
    error: str
    request_id: str


class AgentConfigResponse(CamelModel):
    """Stored (or default) agent config for a tenant."""
    ok: bool = True
    tenant_id: str
    stored: bool
    config: Dict[str, Any]

    @classmethod
    def from_domain(cls, tenant_id: str, config: AgentConfig, stored: bool) -> "AgentConfigResponse":
        return cls(tenant_id=tenant_id, stored=stored, config=agent_config_to_dict(config))


class SupportStatsResponse(CamelModel):
    """Routing outcome distribution for the dashboard."""
    events_total: int
    outcomes: Dict[str, int]
    average_confidence: Optional[float] = None
    average_latency_ms: Optional[float] = None

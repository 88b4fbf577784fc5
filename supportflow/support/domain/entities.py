"""
Support Domain Entities
=======================

Pure Python business objects for ticket drafting and routing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_SIGNATURE = "Met vriendelijke groet,"
DEFAULT_LANGUAGE = "nl"
AGENT_CONFIG_SCHEMA_VERSION = 2


@dataclass(frozen=True)
class AgentConfig:
    """
    Per-tenant behavioural policy (schema version 2).

    max_discount_amount is only meaningful when allow_discount is set.
    """
    company_name: str = "Company"
    tone: str = "friendly"  # friendly | formal | direct
    empathy_enabled: bool = False
    allow_discount: bool = False
    max_discount_amount: float = 0.0
    signature: str = DEFAULT_SIGNATURE
    default_language: str = DEFAULT_LANGUAGE
    schema_version: int = AGENT_CONFIG_SCHEMA_VERSION


@dataclass(frozen=True)
class Customer:
    name: Optional[str] = None
    email: Optional[str] = None
    language: Optional[str] = None


@dataclass(frozen=True)
class OrderInfo:
    order_id: Optional[str] = None
    product_name: Optional[str] = None
    price_paid: Optional[float] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class Ticket:
    """An inbound support ticket, already validated at the API boundary."""
    tenant_id: str
    subject: str
    body: str
    channel: str = "email"
    source: str = "api"
    sender: Optional[str] = None  # raw From header, e.g. "Sara Janssen <sara@example.com>"
    customer: Customer = field(default_factory=Customer)
    order: OrderInfo = field(default_factory=OrderInfo)

    @property
    def search_text(self) -> str:
        """Subject and body joined; used for rule matching and retrieval."""
        return f"{self.subject} {self.body}"

    def reply_language(self, config: AgentConfig) -> str:
        return self.customer.language or config.default_language or DEFAULT_LANGUAGE


@dataclass
class ModelDraft:
    """The model's structured output after validation."""
    status: str
    confidence: float
    subject: str
    body: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)


@dataclass
class SupportReply:
    """
    Final routed reply returned to the caller.

    knowledge_sources lists (document_id, chunk_id) pairs used as context.
    """
    request_id: str
    status: str
    routing: str
    confidence: float
    subject: str
    body: str
    model: Optional[str] = None
    intent: Optional[str] = None
    actions: List[Dict[str, Any]] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    knowledge_used: bool = False
    top_similarity: Optional[float] = None
    retrieval_tier: Optional[str] = None
    knowledge_sources: List[Dict[str, str]] = field(default_factory=list)
    sender: Optional[str] = None


@dataclass(frozen=True)
class SupportEvent:
    """
    Immutable audit record of one routing decision.

    confidence and draft_text are None for error outcomes; the customer
    e-mail is only ever stored masked.
    """
    tenant_id: str
    request_id: str
    source: str
    subject: str
    outcome: str
    latency_ms: int
    intent: Optional[str] = None
    confidence: Optional[float] = None
    draft_text: Optional[str] = None
    customer_email_masked: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

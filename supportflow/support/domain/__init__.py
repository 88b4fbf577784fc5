"""
Support Domain Layer
====================

Domain layer for the support agent module.

Contains:
- Entities: AgentConfig, Ticket, Customer, OrderInfo, ModelDraft, SupportReply, SupportEvent
- Value Objects: RoutingPolicy, DeterministicRule, migrate_agent_config
- Rules: RuleMatcher
- Prompts: SupportPromptBuilder
- Output: parse_model_output, validate_draft
- Routing: RoutingEngine

This layer is framework-agnostic and contains pure business logic.
"""

from supportflow.support.domain.entities import (
    AgentConfig,
    Customer,
    OrderInfo,
    Ticket,
    ModelDraft,
    SupportReply,
    SupportEvent,
)
from supportflow.support.domain.value_objects import (
    RoutingPolicy,
    DeterministicRule,
    DAMAGE_RULE,
    migrate_agent_config,
    agent_config_to_dict,
)
from supportflow.support.domain.rules import (
    RuleMatch,
    RuleMatcher,
    append_signature,
    display_name,
    email_address,
)
from supportflow.support.domain.prompts import SupportPromptBuilder
from supportflow.support.domain.output import parse_model_output, validate_draft
from supportflow.support.domain.routing import RoutingEngine, RoutingDecision, clamp01

__all__ = [
    "AgentConfig",
    "Customer",
    "OrderInfo",
    "Ticket",
    "ModelDraft",
    "SupportReply",
    "SupportEvent",
    "RoutingPolicy",
    "DeterministicRule",
    "DAMAGE_RULE",
    "migrate_agent_config",
    "agent_config_to_dict",
    "RuleMatch",
    "RuleMatcher",
    "append_signature",
    "display_name",
    "email_address",
    "SupportPromptBuilder",
    "parse_model_output",
    "validate_draft",
    "RoutingEngine",
    "RoutingDecision",
    "clamp01",
]

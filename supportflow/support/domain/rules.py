"""
Deterministic Rule Matcher
==========================

Keyword short-circuit for known-safe intents. A matched ticket gets a
templated reply and never reaches the model.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from supportflow.support.domain.entities import AgentConfig, Ticket
from supportflow.support.domain.value_objects import DeterministicRule

_DISPLAY_NAME = re.compile(r"^\s*\"?([^<@\n\"]+?)\"?\s*<")
_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


@dataclass(frozen=True)
class RuleMatch:
    intent: str
    keyword: str
    confidence: float
    subject: str
    body: str


def display_name(sender: Optional[str]) -> Optional[str]:
    """Name part of a ``Name <address>`` sender string."""
    if not sender:
        return None
    match = _DISPLAY_NAME.match(sender)
    if match:
        name = match.group(1).strip()
        return name or None
    return None


def email_address(sender: Optional[str]) -> Optional[str]:
    """Address part of a sender string; the whole string when it has no angle brackets."""
    if not sender or not sender.strip():
        return None
    match = _ANGLE_ADDRESS.search(sender)
    return (match.group(1) if match else sender).strip() or None


def append_signature(body: str, signature: Optional[str]) -> str:
    """Trimmed body, blank line, trimmed signature (body unchanged without one)."""
    body = body.strip()
    if signature and signature.strip():
        return f"{body}\n\n{signature.strip()}"
    return body


class RuleMatcher:
    """First matching rule wins; rules are evaluated in policy order."""

    def __init__(self, rules: List[DeterministicRule]):
        self._rules = rules

    def match(self, ticket: Ticket, config: AgentConfig) -> Optional[RuleMatch]:
        haystack = ticket.search_text.lower()
        for rule in self._rules:
            keyword = next((k for k in rule.keywords if k.lower() in haystack), None)
            if keyword is None:
                continue

            language = ticket.reply_language(config)
            name = (
                (ticket.customer.name or "").strip()
                or display_name(ticket.sender)
                or rule.default_name_for(language)
            )
            body = rule.template_for(language).replace("{name}", name)
            return RuleMatch(
                intent=rule.intent,
                keyword=keyword,
                confidence=rule.confidence,
                subject=f"Re: {ticket.subject}",
                body=append_signature(body, config.signature),
            )
        return None

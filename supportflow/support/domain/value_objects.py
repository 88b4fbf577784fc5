"""
Support Value Objects
=====================

Configuration-shaped value objects for the support agent:
- RoutingPolicy: tunable thresholds, weights, rules and deny-lists
  (loaded from routing_policy.yaml)
- migrate_agent_config: single entry point from any stored agent config
  shape to the current AgentConfig schema
"""

import math
import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from supportflow.core import ValidationException
from supportflow.support.domain.entities import (
    AgentConfig,
    AGENT_CONFIG_SCHEMA_VERSION,
    DEFAULT_LANGUAGE,
    DEFAULT_SIGNATURE,
)

TONES = ("friendly", "formal", "direct")
LANGUAGES = ("nl", "en")


# ========== Routing Policy ==========

DAMAGE_TEMPLATE_NL = (
    "Beste {name},\n\n"
    "Wat vervelend om te horen dat uw product beschadigd is aangekomen. "
    "Onze excuses voor het ongemak.\n\n"
    "We lossen dit direct voor u op:\n"
    "- We sturen kosteloos een vervangend exemplaar naar u op.\n"
    "- U hoeft het beschadigde product niet terug te sturen.\n"
    "- U ontvangt binnen 24 uur een bevestiging met de verzendinformatie.\n\n"
    "Mocht u nog vragen hebben, staat ons team voor u klaar."
)

DAMAGE_TEMPLATE_EN = (
    "Dear {name},\n\n"
    "We are sorry to hear that your product arrived damaged. "
    "Our apologies for the inconvenience.\n\n"
    "We will resolve this for you right away:\n"
    "- We will send you a free replacement.\n"
    "- You do not need to return the damaged product.\n"
    "- Within 24 hours you will receive a confirmation with the shipping details.\n\n"
    "If you have any further questions, our team is happy to help."
)


class DeterministicRule(BaseModel):
    """Keyword rule that answers a known-safe intent without the model."""
    intent: str
    keywords: List[str] = Field(..., min_length=1)
    confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    templates: Dict[str, str] = Field(..., description="Reply body per language; {name} is interpolated")
    default_names: Dict[str, str] = Field(default_factory=lambda: {"nl": "klant", "en": "customer"})

    def template_for(self, language: str) -> str:
        return self.templates.get(language) or self.templates.get(DEFAULT_LANGUAGE) or next(iter(self.templates.values()))

    def default_name_for(self, language: str) -> str:
        return self.default_names.get(language) or self.default_names.get(DEFAULT_LANGUAGE, "")


DAMAGE_RULE = DeterministicRule(
    intent="damage",
    keywords=["beschadigd", "kapot", "defect", "ingedeukt", "scheur", "kras", "damaged", "broken"],
    confidence=0.95,
    templates={"nl": DAMAGE_TEMPLATE_NL, "en": DAMAGE_TEMPLATE_EN},
)


class RoutingPolicy(BaseModel):
    """
    Tunable constants of the routing pipeline.

    Defaults reproduce the fixed behaviour of the service when no policy
    file is present.
    """
    high_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    medium_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    retrieval_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    model_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    auto_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    knowledge_heading: str = "Relevante interne kennis:"
    disallowed_actions_without_discount: List[str] = Field(default_factory=lambda: ["OFFER_DISCOUNT"])
    # Lines of a generated body matching any of these are dropped before the signature is appended
    signature_line_patterns: List[str] = Field(default_factory=list)
    # Detection only: a body ending in one of these gets a double sign-off warning
    closing_phrases: List[str] = Field(default_factory=lambda: [
        "met vriendelijke groet", "vriendelijke groet", "met groeten", "groeten",
        "kind regards", "best regards", "regards",
    ])
    rules: List[DeterministicRule] = Field(default_factory=lambda: [DAMAGE_RULE])

    @model_validator(mode="after")
    def check_thresholds(self) -> "RoutingPolicy":
        if self.high_threshold <= self.medium_threshold:
            raise ValueError("high_threshold must be greater than medium_threshold")
        for pattern in self.signature_line_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid signature_line_patterns entry {pattern!r}: {e}") from e
        return self


# ========== Agent Config migration ==========

def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) and amount >= 0 else 0.0


def migrate_agent_config(raw: Optional[Mapping[str, Any]]) -> AgentConfig:
    """
    Turn any stored agent config into the current schema.

    Accepts the current snake_case v2 shape, the flat camelCase v1 shape
    and the legacy shape that nested the policy toggles under ``rules``.

    Raises:
        ValidationException: If raw is not a mapping
    """
    if raw is None or not isinstance(raw, Mapping):
        raise ValidationException("Agent config must be an object")

    flat: Dict[str, Any] = dict(raw)
    nested = raw.get("rules")
    if isinstance(nested, Mapping):
        # Top-level values win over the legacy nested block
        for key, value in nested.items():
            flat.setdefault(key, value)

    tone = _pick(flat, "tone")
    language = _pick(flat, "default_language", "defaultLanguage", "language")
    signature = _pick(flat, "signature")
    company = _pick(flat, "company_name", "companyName")

    return AgentConfig(
        company_name=str(company) if company is not None else "Company",
        tone=tone if tone in TONES else "friendly",
        empathy_enabled=_as_bool(_pick(flat, "empathy_enabled", "empathyEnabled")),
        allow_discount=_as_bool(_pick(flat, "allow_discount", "allowDiscount")),
        max_discount_amount=_as_amount(_pick(flat, "max_discount_amount", "maxDiscountAmount")),
        signature=str(signature) if signature is not None else DEFAULT_SIGNATURE,
        default_language=language if language in LANGUAGES else DEFAULT_LANGUAGE,
        schema_version=AGENT_CONFIG_SCHEMA_VERSION,
    )


def agent_config_to_dict(config: AgentConfig) -> Dict[str, Any]:
    """Serialized v2 form as stored."""
    return {
        "schema_version": config.schema_version,
        "company_name": config.company_name,
        "tone": config.tone,
        "empathy_enabled": config.empathy_enabled,
        "allow_discount": config.allow_discount,
        "max_discount_amount": config.max_discount_amount,
        "signature": config.signature,
        "default_language": config.default_language,
    }

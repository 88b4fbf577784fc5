"""
Confidence & Routing Engine
===========================

Blends retrieval and model confidence, picks the route, applies the
tenant's discount policy to the proposed actions and appends the
signature to the draft body.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supportflow.config import DraftStatus, Route
from supportflow.support.domain.entities import AgentConfig, ModelDraft
from supportflow.support.domain.rules import append_signature
from supportflow.support.domain.value_objects import RoutingPolicy


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass
class RoutingDecision:
    route: str
    confidence: float
    body: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    double_sign_off: bool = False


class RoutingEngine:
    """
    Stateless routing over a RoutingPolicy snapshot.

    A new engine is built per request from the current policy, so a
    policy reload never changes a decision halfway through.
    """

    def __init__(self, policy: RoutingPolicy):
        self._policy = policy
        self._line_patterns = [re.compile(p, re.IGNORECASE) for p in policy.signature_line_patterns]

    @property
    def policy(self) -> RoutingPolicy:
        return self._policy

    def blend(
        self,
        model_confidence: float,
        knowledge_used: bool,
        top_similarity: Optional[float]
    ) -> float:
        model_confidence = clamp01(model_confidence)
        if not knowledge_used or top_similarity is None:
            return model_confidence
        return clamp01(
            top_similarity * self._policy.retrieval_weight
            + model_confidence * self._policy.model_weight
        )

    def route(self, final_confidence: float, status: str) -> str:
        needs_human = final_confidence < self._policy.auto_threshold or status == DraftStatus.NEEDS_HUMAN
        return Route.HUMAN_REVIEW if needs_human else Route.AUTO

    def filter_actions(self, actions: List[Any], config: AgentConfig) -> List[Any]:
        """Drop actions the tenant's discount policy forbids; safe to re-apply."""
        if config.allow_discount:
            return list(actions)
        blocked = set(self._policy.disallowed_actions_without_discount)
        return [
            action for action in actions
            if not (isinstance(action, dict) and action.get("type") in blocked)
        ]

    def strip_denied_lines(self, body: str) -> str:
        """Remove body lines matching the configured signature deny-list."""
        if not self._line_patterns:
            return body
        kept = [
            line for line in body.splitlines()
            if not any(p.search(line) for p in self._line_patterns)
        ]
        return "\n".join(kept)

    def ends_with_closing(self, body: str) -> bool:
        """True if the last non-empty line of body reads like a sign-off."""
        lines = [line.strip() for line in body.strip().splitlines() if line.strip()]
        if not lines:
            return False
        last = lines[-1].lower().rstrip(",.!")
        return any(last.startswith(phrase.lower()) for phrase in self._policy.closing_phrases)

    def decide(
        self,
        draft: ModelDraft,
        config: AgentConfig,
        knowledge_used: bool,
        top_similarity: Optional[float]
    ) -> RoutingDecision:
        confidence = self.blend(draft.confidence, knowledge_used, top_similarity)
        body = self.strip_denied_lines(draft.body)
        # Known defect: a model sign-off is kept and the signature is appended anyway
        double_sign_off = self.ends_with_closing(body)
        return RoutingDecision(
            route=self.route(confidence, draft.status),
            confidence=confidence,
            body=append_signature(body, config.signature),
            actions=self.filter_actions(draft.actions, config),
            double_sign_off=double_sign_off,
        )

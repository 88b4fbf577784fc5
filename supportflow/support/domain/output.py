"""
Model Output Contract
=====================

Parsing and validation of the model's JSON draft. Nothing is coerced:
a missing or mistyped field fails the request.
"""

import json
import math
import re
from typing import Any, Dict, Optional

from supportflow.config import ACTION_TYPES, DRAFT_STATUSES
from supportflow.core import (
    EmptyModelOutputException,
    MalformedModelOutputException,
    ModelOutputValidationException,
)
from supportflow.support.domain.entities import ModelDraft

_FENCE_OPEN = re.compile(r"```json", re.IGNORECASE)


def parse_model_output(raw: Optional[str]) -> Dict[str, Any]:
    """
    Extract the JSON object from raw model text.

    Code fences are stripped, then the slice from the first "{" to the
    last "}" is parsed, which tolerates prose around the object.

    Raises:
        EmptyModelOutputException: If raw is empty
        MalformedModelOutputException: If no parseable object is found
    """
    if raw is None or not raw.strip():
        raise EmptyModelOutputException()

    cleaned = _FENCE_OPEN.sub("", raw).replace("```", "").strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first == -1 or last <= first:
        raise MalformedModelOutputException("Model output contains no JSON object")

    try:
        parsed = json.loads(cleaned[first:last + 1])
    except json.JSONDecodeError as e:
        raise MalformedModelOutputException(
            f"Model output is not valid JSON: {e.msg}",
            {"position": e.pos}
        ) from e

    if not isinstance(parsed, dict):
        raise MalformedModelOutputException("Model output is not a JSON object")
    return parsed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# Optional action fields and the JSON types allowed for each; null is always allowed
_ACTION_FIELDS = {"question": str, "currency": str, "reason": str, "amount": (int, float)}


def _check_action(index: int, action: Any) -> None:
    if not isinstance(action, dict):
        raise ModelOutputValidationException(f"Invalid response: actions[{index}] must be object")
    if action.get("type") not in ACTION_TYPES:
        raise ModelOutputValidationException(f"Invalid response: actions[{index}].type incorrect")
    for key, value in action.items():
        if key == "type":
            continue
        expected = _ACTION_FIELDS.get(key)
        if expected is None:
            raise ModelOutputValidationException(f"Invalid response: actions[{index}].{key} not allowed")
        if value is None:
            continue
        if key == "amount" and not _is_number(value):
            raise ModelOutputValidationException(f"Invalid response: actions[{index}].amount must be number")
        if not isinstance(value, expected):
            raise ModelOutputValidationException(f"Invalid response: actions[{index}].{key} must be string")


def validate_draft(data: Dict[str, Any]) -> ModelDraft:
    """
    Check the parsed object against the output contract.

    Raises:
        ModelOutputValidationException: On the first violated field
    """
    if not isinstance(data, dict):
        raise ModelOutputValidationException("Invalid response: not an object")
    if data.get("status") not in DRAFT_STATUSES:
        raise ModelOutputValidationException("Invalid response: status incorrect")
    if not _is_number(data.get("confidence")):
        raise ModelOutputValidationException("Invalid response: confidence must be number")

    draft = data.get("draft")
    if not isinstance(draft, dict):
        raise ModelOutputValidationException("Invalid response: draft missing")
    if not isinstance(draft.get("subject"), str):
        raise ModelOutputValidationException("Invalid response: draft.subject missing")
    if not isinstance(draft.get("body"), str):
        raise ModelOutputValidationException("Invalid response: draft.body missing")

    if not isinstance(data.get("actions"), list):
        raise ModelOutputValidationException("Invalid response: actions must be array")
    if not isinstance(data.get("reasons"), list):
        raise ModelOutputValidationException("Invalid response: reasons must be array")

    for index, action in enumerate(data["actions"]):
        _check_action(index, action)
    if not all(isinstance(reason, str) for reason in data["reasons"]):
        raise ModelOutputValidationException("Invalid response: reasons must be strings")

    return ModelDraft(
        status=data["status"],
        confidence=float(data["confidence"]),
        subject=draft["subject"],
        body=draft["body"],
        actions=list(data["actions"]),
        reasons=list(data["reasons"]),
    )

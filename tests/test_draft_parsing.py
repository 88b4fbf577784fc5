"""Tests for model output parsing and the draft contract."""

import pytest

from supportflow.core import (
    EmptyModelOutputException,
    MalformedModelOutputException,
    ModelOutputValidationException,
)
from supportflow.support.domain import parse_model_output, validate_draft
from tests.conftest import model_output


def valid(**overrides):
    data = {
        "status": "DRAFT_OK",
        "confidence": 0.7,
        "draft": {"subject": "Re: vraag", "body": "Antwoord"},
        "actions": [],
        "reasons": [],
    }
    data.update(overrides)
    return data


class TestParseModelOutput:
    def test_plain_json(self):
        assert parse_model_output(model_output(confidence=0.8))["confidence"] == 0.8

    def test_fenced_json(self):
        raw = "```JSON\n" + model_output() + "\n```"
        assert parse_model_output(raw)["status"] == "DRAFT_OK"

    def test_prose_around_object(self):
        raw = "Here is the draft:\n" + model_output() + "\nThanks!"
        assert parse_model_output(raw)["draft"]["subject"].startswith("Re:")

    @pytest.mark.parametrize("raw", [None, "", "   \n"])
    def test_empty(self, raw):
        with pytest.raises(EmptyModelOutputException):
            parse_model_output(raw)

    @pytest.mark.parametrize("raw", ["no json here", "{\"status\": ", "} {"])
    def test_malformed(self, raw):
        with pytest.raises(MalformedModelOutputException):
            parse_model_output(raw)

    def test_invalid_json_between_braces(self):
        with pytest.raises(MalformedModelOutputException) as exc_info:
            parse_model_output("{status: DRAFT_OK}")
        assert "position" in exc_info.value.details


class TestValidateDraft:
    def test_valid_draft(self):
        draft = validate_draft(valid(actions=[{"type": "REQUEST_RETURN", "reason": None}], reasons=["r"]))

        assert draft.status == "DRAFT_OK"
        assert draft.confidence == 0.7
        assert draft.body == "Antwoord"
        assert draft.actions == [{"type": "REQUEST_RETURN", "reason": None}]

    def test_integer_confidence_allowed(self):
        assert validate_draft(valid(confidence=1)).confidence == 1.0

    @pytest.mark.parametrize("overrides,message", [
        ({"status": "OK"}, "status incorrect"),
        ({"confidence": "0.7"}, "confidence must be number"),
        ({"confidence": True}, "confidence must be number"),
        ({"confidence": float("nan")}, "confidence must be number"),
        ({"draft": None}, "draft missing"),
        ({"draft": {"body": "x"}}, "draft.subject missing"),
        ({"draft": {"subject": "x", "body": 3}}, "draft.body missing"),
        ({"actions": None}, "actions must be array"),
        ({"reasons": "none"}, "reasons must be array"),
        ({"actions": ["REQUEST_ORDER_ID"]}, "actions[0] must be object"),
        ({"actions": [{"type": "REFUND"}]}, "actions[0].type incorrect"),
        ({"actions": [{"type": "OFFER_DISCOUNT", "amount": "5"}]}, "actions[0].amount must be number"),
        ({"actions": [{"type": "ESCALATE_TO_HUMAN", "reason": 3}]}, "actions[0].reason must be string"),
        ({"actions": [{"type": "REQUEST_RETURN", "label": "x"}]}, "actions[0].label not allowed"),
        ({"reasons": [{"why": "known"}]}, "reasons must be strings"),
    ])
    def test_contract_violations(self, overrides, message):
        with pytest.raises(ModelOutputValidationException) as exc_info:
            validate_draft(valid(**overrides))
        assert message in exc_info.value.message

"""Tests for the shared tool helpers."""

from __future__ import annotations

import json
import time

import pytest

from janmasetu.domains.identity.domain_logic.errors import SequenceError, ValidationError
from janmasetu.domains.identity.domain_logic.models import AnchorType
from janmasetu.domains.identity.tools.responses import (
    audit_tool_call,
    error_response,
    parse_enum,
    parse_iso_date,
)


class TestParsing:
    def test_enum(self):
        assert parse_enum(AnchorType, "WEEK_6", "event_type") is AnchorType.WEEK_6

    def test_bad_enum_names_field(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_enum(AnchorType, "WEEK_7", "event_type")
        assert excinfo.value.fields == ["event_type"]
        assert "WEEK_14" in str(excinfo.value)

    @pytest.mark.parametrize("value", ["15/02/2026", "", "2026-02-30"])
    def test_bad_date(self, value):
        with pytest.raises(ValidationError):
            parse_iso_date(value, "birth_date")


class TestErrorResponse:
    def test_sequence_error_payload(self):
        payload = json.loads(error_response(
            SequenceError("out of order", expected="WEEK_6", received="MONTH_9")
        ))
        assert payload == {
            "status": "error",
            "error_type": "SequenceError",
            "message": "out of order",
            "expected": "WEEK_6",
            "received": "MONTH_9",
        }

    def test_validation_fields(self):
        payload = json.loads(error_response(ValidationError("bad", fields=["gender"])))
        assert payload["fields"] == ["gender"]


class TestAuditToolCall:
    def test_no_logger_is_noop(self):
        audit_tool_call(None, "get_identity", {}, time.monotonic())

    def test_failure_recorded(self, audit_logger):
        audit_tool_call(audit_logger, "get_identity", {"temp_ref": "TEMP-A"}, time.monotonic(),
                        subject_ref="TEMP-A", error=ValidationError("bad"))
        [event] = audit_logger.get_events(tool_name="get_identity")
        assert event["status"] == "failure"
        assert event["error_type"] == "ValidationError"

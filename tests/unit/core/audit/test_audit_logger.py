"""Tests for the AuditLogger and related utilities."""

from __future__ import annotations

import json

import pytest

from janmasetu.core.audit.logger import AuditEvent, AuditLogger, _hash_input
from janmasetu.core.storage.database import IdentityDatabase


# ---------------------------------------------------------------------------
# _hash_input tests
# ---------------------------------------------------------------------------

class TestHashInput:
    def test_hashes_dict(self):
        h = _hash_input({"key": "value"})
        assert isinstance(h, str)
        assert len(h) == 64

    def test_order_independent(self):
        assert _hash_input({"z": 1, "a": 2}) == _hash_input({"a": 2, "z": 1})

    def test_different_inputs_differ(self):
        assert _hash_input({"a": 1}) != _hash_input({"a": 2})

    def test_non_serializable_returns_empty(self):
        assert _hash_input(object()) == ""


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestLogEvent:
    def test_log_event_returns_uuid(self, audit_logger):
        eid = audit_logger.log_event(AuditEvent(action="identity_created"))
        assert len(eid) == 36

    def test_timestamp_from_clock(self, audit_logger, clock):
        audit_logger.log_identity_event("identity_created", subject_ref="TEMP-KA-000-000001-AAAA")
        [event] = audit_logger.get_events()
        assert event["timestamp"] == clock.now().isoformat()

    def test_identity_event_fields(self, audit_logger):
        audit_logger.log_identity_event(
            "anchor_rejected",
            subject_ref="TEMP-KA-000-000001-AAAA",
            status="failure",
            error_type="SequenceError",
            metadata={"event_type": "MONTH_9"},
        )
        [event] = audit_logger.get_events(action="anchor_rejected")
        assert event["subject_ref"] == "TEMP-KA-000-000001-AAAA"
        assert event["error_type"] == "SequenceError"
        assert json.loads(event["metadata_json"]) == {"event_type": "MONTH_9"}

    def test_tool_call_hashes_input(self, audit_logger):
        audit_logger.log_tool_call(
            "register_birth", {"child_name": "Diya Rao"}, duration_ms=4.2
        )
        [event] = audit_logger.get_events(tool_name="register_birth")
        assert event["action"] == "tool_invocation"
        assert event["input_hash"] == _hash_input({"child_name": "Diya Rao"})
        assert "Diya" not in json.dumps(event)

    def test_write_failure_is_logged_not_raised(self, clock, caplog):
        db = IdentityDatabase(":memory:")
        audit = AuditLogger(db, clock)  # never initialized
        assert audit.log_identity_event("identity_created") == ""
        assert "event lost" in caplog.text


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestQueries:
    @pytest.fixture
    def populated(self, audit_logger, clock):
        audit_logger.log_identity_event("identity_created", subject_ref="TEMP-A")
        clock.advance(days=10)
        audit_logger.log_identity_event("anchor_applied", subject_ref="TEMP-A")
        audit_logger.log_identity_event(
            "anchor_rejected", subject_ref="TEMP-B", status="failure", error_type="SequenceError"
        )
        return audit_logger

    def test_newest_first(self, populated):
        actions = [e["action"] for e in populated.get_events()]
        assert actions == ["anchor_rejected", "anchor_applied", "identity_created"]

    def test_filter_by_subject(self, populated):
        assert len(populated.get_events(subject_ref="TEMP-A")) == 2

    def test_since(self, populated, clock):
        since = clock.now().isoformat()
        assert populated.count_events(since=since) == 2
        assert populated.count_events() == 3

    def test_failures(self, populated):
        assert populated.count_failures() == 1

    def test_limit(self, populated):
        assert len(populated.get_events(limit=1)) == 1

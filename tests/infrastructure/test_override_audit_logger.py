"""Unit tests for OverrideAuditLogger."""

import json

from medrecords.infrastructure.audit import OverrideAuditLogger
from medrecords.infrastructure.audit.override_audit_logger import mask_identifier


class TestMaskIdentifier:
    """Test suite for mask_identifier."""

    def test_keeps_last_four(self):
        """Test that only the last four characters stay visible."""
        assert mask_identifier("01001011116") == "*******1116"

    def test_short_values_fully_masked(self):
        """Test that short values are masked completely."""
        assert mask_identifier("1234") == "****"

    def test_empty_values(self):
        """Test that empty values pass through."""
        assert mask_identifier(None) is None
        assert mask_identifier("") == ""


class TestOverrideAuditLogger:
    """Test suite for OverrideAuditLogger."""

    def test_init(self):
        """Test OverrideAuditLogger initialization."""
        audit = OverrideAuditLogger()
        assert audit.get_log_count() == 0
        assert audit.log_path is None

    def test_log_override(self):
        """Test logging a single override."""
        audit = OverrideAuditLogger()
        entry = audit.log_override(
            personal_id="01001011116",
            existing_reference="Patient/p1",
            created_reference="Patient/p2",
            actor="registrar-7",
            reason="Twin with copied id",
        )

        assert audit.get_log_count() == 1
        assert entry["event_type"] == "DUPLICATE_OVERRIDE"
        assert entry["personal_id"] == "*******1116"
        assert entry["existing_reference"] == "Patient/p1"
        assert entry["created_reference"] == "Patient/p2"
        assert entry["reason"] == "Twin with copied id"
        assert entry["audit_id"]
        assert entry["timestamp"]

    def test_unknown_actor(self):
        """Test that a missing actor is recorded as unknown."""
        entry = OverrideAuditLogger().log_override("01001011116", "Patient/p1", "Patient/p2")
        assert entry["actor"] == "unknown"

    def test_get_logs_returns_copy(self):
        """Test that callers cannot change the buffer through get_logs."""
        audit = OverrideAuditLogger()
        audit.log_override("01001011116", "Patient/p1", "Patient/p2")

        audit.get_logs().clear()

        assert audit.get_log_count() == 1

    def test_clear_logs(self):
        """Test clearing the buffer."""
        audit = OverrideAuditLogger()
        audit.log_override("01001011116", "Patient/p1", "Patient/p2")

        audit.clear_logs()

        assert audit.get_log_count() == 0

    def test_appends_json_lines(self, tmp_path):
        """Test that entries are appended to the log file, one JSON object per line."""
        log_path = tmp_path / "audit" / "overrides.jsonl"
        audit = OverrideAuditLogger(log_path=str(log_path))

        audit.log_override("01001011116", "Patient/p1", "Patient/p2", actor="a")
        audit.log_override("01001011117", "Patient/p3", "Patient/p4", actor="b")

        lines = log_path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["actor"] for line in lines] == ["a", "b"]
        assert "01001011116" not in lines[0]

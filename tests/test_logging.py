"""Tests for structured and audit logging."""

import logging

import pytest

from econsent.core.logging import StructuredFormatter, audit_logger
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.clock import VirtualClock


def test_structured_formatter_includes_audit_fields() -> None:
    """Test that audit extras are rendered as key=value pairs."""
    record = logging.LogRecord("audit", logging.INFO, __file__, 1, "step", None, None)
    record.session_id = "abc123"
    record.stage = "signature"
    record.action = "step_started"

    line = StructuredFormatter().format(record)

    assert "level=INFO" in line
    assert "session_id=abc123" in line
    assert "stage=signature" in line
    assert "action=step_started" in line


def test_audit_logger_event(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="audit"):
        audit_logger.log("consent_archived", "abc123", metadata={"reference_number": "ICF-1"})

    record = caplog.records[-1]
    assert record.action == "consent_archived"
    assert record.session_id == "abc123"
    assert "ICF-1" in record.getMessage()


def test_recorder_mirrors_steps_to_audit_log(
    audit: AuditRecorder,
    clock: VirtualClock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that stage entry and exit reach the audit log."""
    with caplog.at_level(logging.INFO, logger="audit"):
        audit.begin_step("document_review")
        clock.advance(30)
        audit.end_step("document_review")

    actions = [r.action for r in caplog.records if r.name == "audit"]
    assert actions == ["step_started", "step_completed"]
    assert caplog.records[-1].stage == "document_review"

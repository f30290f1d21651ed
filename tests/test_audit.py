"""Tests for the audit trail."""

from econsent.workflow.audit import AuditRecorder, begin_step, end_step, finalize
from econsent.workflow.clock import VirtualClock
from econsent.workflow.models import AuditTrail
from econsent.workflow.outcomes import Reason


class TestAuditFunctions:
    """Tests for the pure trail transformations."""

    def test_begin_and_end_step(self, clock: VirtualClock) -> None:
        trail = begin_step(AuditTrail(opened_at=clock.now()), "identity_verification", clock.now())
        clock.advance(42)

        trail, outcome = end_step(trail, "identity_verification", clock.now())

        assert outcome.allowed is True
        step = trail.steps[0]
        assert step.completed_at == clock.now()
        assert step.duration_seconds == 42
        assert step.is_open is False

    def test_end_unstarted_step(self, clock: VirtualClock) -> None:
        """Test that ending a step that never began is refused."""
        trail = AuditTrail(opened_at=clock.now())

        same, outcome = end_step(trail, "signature", clock.now())

        assert outcome.reason == Reason.STEP_NOT_STARTED
        assert same is trail

    def test_end_step_twice_is_noop(self, clock: VirtualClock) -> None:
        trail = begin_step(AuditTrail(opened_at=clock.now()), "signature", clock.now())
        clock.advance(5)
        trail, _ = end_step(trail, "signature", clock.now())
        clock.advance(5)

        again, outcome = end_step(trail, "signature", clock.now())

        assert outcome.allowed is True
        assert outcome.details["already_closed"] is True
        assert again.steps[0].duration_seconds == 5

    def test_finalize_keeps_first_stamp(self, clock: VirtualClock) -> None:
        """Test that finalizing twice does not move the completion time."""
        trail = AuditTrail(opened_at=clock.now())
        clock.advance(600)
        trail = finalize(trail, clock.now())
        clock.advance(60)

        again = finalize(trail, clock.now())

        assert again.total_duration_seconds == 600
        assert again is trail


class TestAuditRecorder:
    """Tests for the store-backed recorder."""

    def test_steps_are_append_only(self, audit: AuditRecorder, clock: VirtualClock) -> None:
        """Test that revisiting a stage appends a new step."""
        audit.begin_step("document_reading")
        clock.advance(10)
        audit.end_step("document_reading")
        audit.begin_step("document_reading")

        steps = audit.trail.steps
        assert len(steps) == 2
        assert steps[0].duration_seconds == 10
        assert steps[1].is_open is True

    def test_ensure_step_does_not_duplicate(self, audit: AuditRecorder) -> None:
        audit.ensure_step("comprehension_checklist")
        audit.ensure_step("comprehension_checklist")

        assert len(audit.trail.steps) == 1
        assert audit.is_open("comprehension_checklist") is True

    def test_start_times_are_ordered(self, audit: AuditRecorder, clock: VirtualClock) -> None:
        for name in ("identity_verification", "document_reading", "signature"):
            audit.ensure_step(name)
            clock.advance(3)
            audit.end_step(name)

        starts = [step.started_at for step in audit.trail.steps]
        assert starts == sorted(starts)

    def test_finalize(self, audit: AuditRecorder, clock: VirtualClock) -> None:
        clock.advance(125)

        trail = audit.finalize()

        assert trail.completed_at == clock.now()
        assert trail.total_duration_seconds == 125
        assert audit.trail == trail

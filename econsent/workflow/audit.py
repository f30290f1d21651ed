"""Audit Recorder.

Append-only timeline of stage entry and exit for one consent session.
The pure functions operate on an AuditTrail and return a new one; the
AuditRecorder applies them to the store and mirrors every event to the
structured audit logger.
"""

from dataclasses import replace
from datetime import datetime

from econsent.core.logging import audit_logger
from econsent.utils.time import seconds_between
from econsent.workflow.clock import Clock
from econsent.workflow.models import AuditStep, AuditTrail
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore


def find_open_step(trail: AuditTrail, name: str) -> int | None:
    """Index of the most recent open step with this name, if any."""
    for index in range(len(trail.steps) - 1, -1, -1):
        step = trail.steps[index]
        if step.name == name and step.is_open:
            return index
    return None


def begin_step(trail: AuditTrail, name: str, now: datetime) -> AuditTrail:
    """Append a new open step."""
    return replace(trail, steps=trail.steps + (AuditStep(name=name, started_at=now),))


def end_step(trail: AuditTrail, name: str, now: datetime) -> tuple[AuditTrail, Outcome]:
    """Close the most recent open step with this name.

    Ending a step that was closed already is a no-op. Ending a step that was
    never begun is refused.
    """
    index = find_open_step(trail, name)
    if index is None:
        if any(step.name == name for step in trail.steps):
            return trail, Outcome.ok("Step already closed", already_closed=True)
        return trail, Outcome.refuse(
            Reason.STEP_NOT_STARTED,
            f"Audit step '{name}' has not been started",
            step=name,
        )

    step = trail.steps[index]
    closed = replace(
        step,
        completed_at=now,
        duration_seconds=seconds_between(step.started_at, now),
    )
    steps = trail.steps[:index] + (closed,) + trail.steps[index + 1:]
    return replace(trail, steps=steps), Outcome.ok(duration_seconds=closed.duration_seconds)


def finalize(trail: AuditTrail, now: datetime) -> AuditTrail:
    """Stamp the trail as complete. Finalizing twice keeps the first stamp."""
    if trail.completed_at is not None:
        return trail
    return replace(
        trail,
        completed_at=now,
        total_duration_seconds=seconds_between(trail.opened_at, now),
    )


class AuditRecorder:
    """Records stage transitions into a session's audit trail."""

    def __init__(self, store: SessionStore, session_id: str, clock: Clock) -> None:
        self.store = store
        self.session_id = session_id
        self.clock = clock

    @property
    def trail(self) -> AuditTrail:
        return self.store.get(self.session_id).audit

    def is_open(self, name: str) -> bool:
        return find_open_step(self.trail, name) is not None

    def begin_step(self, name: str) -> Outcome:
        now = self.clock.now()
        self.store.update(self.session_id, audit=begin_step(self.trail, name, now))
        audit_logger.log(
            action="step_started",
            session_id=self.session_id,
            stage=name,
            metadata={"started_at": now.isoformat()},
        )
        return Outcome.ok()

    def ensure_step(self, name: str) -> Outcome:
        """Begin a step unless one with this name is already open."""
        if self.is_open(name):
            return Outcome.ok("Step already open")
        return self.begin_step(name)

    def end_step(self, name: str) -> Outcome:
        now = self.clock.now()
        trail, outcome = end_step(self.trail, name, now)
        if outcome.allowed and not outcome.details.get("already_closed"):
            self.store.update(self.session_id, audit=trail)
            audit_logger.log(
                action="step_completed",
                session_id=self.session_id,
                stage=name,
                metadata={"duration_seconds": outcome.details["duration_seconds"]},
            )
        return outcome

    def finalize(self) -> AuditTrail:
        trail = finalize(self.trail, self.clock.now())
        self.store.update(self.session_id, audit=trail)
        audit_logger.log(
            action="session_completed",
            session_id=self.session_id,
            metadata={"total_duration_seconds": trail.total_duration_seconds},
        )
        return trail

"""Structured results for workflow operations.

Gate refusals are not exceptions. Every engine operation returns an Outcome
that the caller uses to re-prompt the patient; nothing here ends a session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Category of a refusal."""

    VALIDATION = "validation_error"
    AUTH = "auth_error"
    GATE_UNSATISFIED = "gate_unsatisfied"
    STATE_CONFLICT = "state_conflict"


class Reason(str, Enum):
    """Specific reason an operation was refused."""

    # Identity verification
    INVALID_EMAIL = "invalid_email"
    MALFORMED_CODE = "malformed_code"
    NO_CHALLENGE = "no_challenge"
    WRONG_CODE = "wrong_code"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CODE_EXPIRED = "code_expired"
    COOLDOWN_ACTIVE = "cooldown_active"
    CHALLENGE_LIMIT_REACHED = "challenge_limit_reached"

    # Document reading
    INSUFFICIENT_DWELL = "insufficient_dwell"
    NOT_SCROLLED = "not_scrolled"
    AT_FIRST_PAGE = "at_first_page"
    DOCUMENT_COMPLETED = "document_completed"

    # Comprehension checklist
    UNKNOWN_ITEM = "unknown_item"
    AUDIO_INCOMPLETE = "audio_incomplete"
    PLAYBACK_IN_PROGRESS = "playback_in_progress"
    RECORDING_IN_PROGRESS = "recording_in_progress"
    NOT_RECORDING = "not_recording"
    NO_CLIP_HELD = "no_clip_held"
    ITEM_COMPLETED = "item_completed"

    # Signature
    INVALID_ACKNOWLEDGEMENT = "invalid_acknowledgement"
    SUBMIT_PRECONDITIONS_UNMET = "submit_preconditions_unmet"
    SUBMISSION_IN_FLIGHT = "submission_in_flight"
    ALREADY_SUBMITTED = "already_submitted"

    # Audit / sequencing
    STEP_NOT_STARTED = "step_not_started"
    STAGE_LOCKED = "stage_locked"


REASON_KINDS: dict[Reason, ErrorKind] = {
    Reason.INVALID_EMAIL: ErrorKind.VALIDATION,
    Reason.MALFORMED_CODE: ErrorKind.VALIDATION,
    Reason.UNKNOWN_ITEM: ErrorKind.VALIDATION,
    Reason.INVALID_ACKNOWLEDGEMENT: ErrorKind.VALIDATION,
    Reason.WRONG_CODE: ErrorKind.AUTH,
    Reason.ATTEMPTS_EXHAUSTED: ErrorKind.AUTH,
    Reason.CODE_EXPIRED: ErrorKind.AUTH,
    Reason.CHALLENGE_LIMIT_REACHED: ErrorKind.AUTH,
    Reason.COOLDOWN_ACTIVE: ErrorKind.GATE_UNSATISFIED,
    Reason.INSUFFICIENT_DWELL: ErrorKind.GATE_UNSATISFIED,
    Reason.NOT_SCROLLED: ErrorKind.GATE_UNSATISFIED,
    Reason.AUDIO_INCOMPLETE: ErrorKind.GATE_UNSATISFIED,
    Reason.SUBMIT_PRECONDITIONS_UNMET: ErrorKind.GATE_UNSATISFIED,
    Reason.STAGE_LOCKED: ErrorKind.GATE_UNSATISFIED,
    Reason.NO_CHALLENGE: ErrorKind.STATE_CONFLICT,
    Reason.AT_FIRST_PAGE: ErrorKind.STATE_CONFLICT,
    Reason.DOCUMENT_COMPLETED: ErrorKind.STATE_CONFLICT,
    Reason.PLAYBACK_IN_PROGRESS: ErrorKind.STATE_CONFLICT,
    Reason.RECORDING_IN_PROGRESS: ErrorKind.STATE_CONFLICT,
    Reason.NOT_RECORDING: ErrorKind.STATE_CONFLICT,
    Reason.NO_CLIP_HELD: ErrorKind.STATE_CONFLICT,
    Reason.ITEM_COMPLETED: ErrorKind.STATE_CONFLICT,
    Reason.SUBMISSION_IN_FLIGHT: ErrorKind.STATE_CONFLICT,
    Reason.ALREADY_SUBMITTED: ErrorKind.STATE_CONFLICT,
    Reason.STEP_NOT_STARTED: ErrorKind.STATE_CONFLICT,
}


@dataclass(frozen=True)
class Outcome:
    """Result of a workflow operation.

    Attributes:
        allowed: Whether the operation took effect
        reason: Why it was refused (None when allowed)
        kind: Refusal category (None when allowed)
        message: Patient-facing explanation
        details: Extra structured data (remaining seconds, missing items...)
    """

    allowed: bool
    reason: Reason | None = None
    kind: ErrorKind | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def ok(cls, message: str = "", **details: Any) -> "Outcome":
        return cls(allowed=True, message=message, details=details)

    @classmethod
    def refuse(cls, reason: Reason, message: str, **details: Any) -> "Outcome":
        return cls(
            allowed=False,
            reason=reason,
            kind=REASON_KINDS[reason],
            message=message,
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "details": self.details,
        }

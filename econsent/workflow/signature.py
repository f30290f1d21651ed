"""Signature Capture & Submission.

Freehand mark presence plus two acknowledgements gate a one-way submission.
Submission is deferred through a SubmissionBackend; while it is in flight the
record is frozen and duplicate submits are refused.
"""

import hashlib
import json
import logging
from dataclasses import replace
from enum import Enum
from typing import Iterable, Sequence

from econsent.workflow.audit import AuditRecorder
from econsent.workflow.backends import SubmissionBackend
from econsent.workflow.clock import Clock, TimerHandle
from econsent.workflow.models import SignatureArtifact, SignatureRecord
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore

logger = logging.getLogger(__name__)

AUDIT_STEP = "signature"

ARTIFACT_MEDIA_TYPE = "application/vnd.econsent.strokes+json"

Point = tuple[float, float]


class AckKind(str, Enum):
    """Acknowledgements required before signing."""

    CONSENT = "consent"
    TERMS = "terms"


def evaluate_submission(record: SignatureRecord) -> Outcome:
    """Check every submission precondition and name the missing ones."""
    if record.submitted:
        return Outcome.refuse(
            Reason.ALREADY_SUBMITTED,
            "This consent form has already been submitted.",
        )
    if record.submitting:
        return Outcome.refuse(
            Reason.SUBMISSION_IN_FLIGHT,
            "Your consent is being submitted.",
        )

    missing = []
    if not record.mark_present:
        missing.append("signature")
    if not record.consent_acknowledged:
        missing.append(AckKind.CONSENT.value)
    if not record.terms_acknowledged:
        missing.append(AckKind.TERMS.value)

    if missing:
        return Outcome.refuse(
            Reason.SUBMIT_PRECONDITIONS_UNMET,
            f"Please complete the following before signing: {', '.join(missing)}.",
            missing=missing,
        )
    return Outcome.ok()


def can_submit(record: SignatureRecord) -> bool:
    return evaluate_submission(record).allowed


def build_artifact(strokes: Sequence[Sequence[Point]]) -> SignatureArtifact:
    """Capture the mark as a JSON stroke list with its SHA-256 digest."""
    data = json.dumps(
        [[[round(x, 2), round(y, 2)] for x, y in stroke] for stroke in strokes],
        separators=(",", ":"),
    )
    return SignatureArtifact(
        media_type=ARTIFACT_MEDIA_TYPE,
        data=data,
        sha256=hashlib.sha256(data.encode("utf-8")).hexdigest(),
    )


class SignatureCapture:
    """Signature stage bound to one session."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        clock: Clock,
        audit: AuditRecorder,
        backend: SubmissionBackend,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self.audit = audit
        self.backend = backend
        self._strokes: list[tuple[Point, ...]] = []
        self._submission: TimerHandle | None = None

    @property
    def state(self) -> SignatureRecord:
        return self.store.get(self.session_id).signature

    @property
    def stroke_count(self) -> int:
        return len(self._strokes)

    def open(self) -> None:
        record = self.state
        if not record.submitted and not record.submitting:
            self.audit.ensure_step(AUDIT_STEP)

    def close(self) -> None:
        # An in-flight submission is not cancelled by navigation.
        pass

    def mark_stroke(self, points: Iterable[Point] = ()) -> Outcome:
        """Register one drawing input. Any stroke makes the mark present."""
        record = self.state
        outcome = self._check_editable(record)
        if not outcome.allowed:
            return outcome

        self._strokes.append(tuple((float(x), float(y)) for x, y in points))
        if not record.mark_present:
            self._save(replace(record, mark_present=True))
        return Outcome.ok(mark_present=True, strokes=len(self._strokes))

    def clear(self) -> Outcome:
        record = self.state
        outcome = self._check_editable(record)
        if not outcome.allowed:
            return outcome

        self._strokes.clear()
        self._save(replace(record, mark_present=False))
        return Outcome.ok(mark_present=False)

    def set_acknowledgement(self, kind: AckKind | str, value: bool) -> Outcome:
        try:
            kind = AckKind(kind)
        except ValueError:
            return Outcome.refuse(
                Reason.INVALID_ACKNOWLEDGEMENT,
                f"Unknown acknowledgement: {kind}",
                allowed_kinds=[k.value for k in AckKind],
            )

        record = self.state
        outcome = self._check_editable(record)
        if not outcome.allowed:
            return outcome

        if kind == AckKind.CONSENT:
            record = replace(record, consent_acknowledged=bool(value))
        else:
            record = replace(record, terms_acknowledged=bool(value))
        self._save(record)
        return Outcome.ok(kind=kind.value, value=bool(value))

    def submit(self) -> Outcome:
        record = self.state
        outcome = evaluate_submission(record)
        if not outcome.allowed:
            if outcome.reason == Reason.SUBMISSION_IN_FLIGHT:
                logger.debug(f"Duplicate submit ignored for session {self.session_id[:8]}...")
            return outcome

        record = replace(
            record,
            artifact=build_artifact(self._strokes),
            timestamp=self.clock.now(),
            submitting=True,
        )
        self._save(record)
        self._submission = self.backend.submit(self.session_id, record, self._on_submitted)
        logger.info(f"Signature submission started for session {self.session_id[:8]}...")
        return Outcome.ok("Submitting your consent.", submitting=True)

    def _on_submitted(self) -> None:
        self._submission = None
        record = self.state
        if record.submitted:
            return
        now = self.clock.now()
        self._save(replace(record, submitting=False, submitted=True, submitted_at=now))
        self.audit.end_step(AUDIT_STEP)
        self.audit.finalize()
        logger.info(f"Consent submitted for session {self.session_id[:8]}...")

    def _check_editable(self, record: SignatureRecord) -> Outcome:
        if record.submitted:
            return Outcome.refuse(
                Reason.ALREADY_SUBMITTED,
                "This consent form has already been submitted.",
            )
        if record.submitting:
            return Outcome.refuse(
                Reason.SUBMISSION_IN_FLIGHT,
                "Your consent is being submitted.",
            )
        return Outcome.ok()

    def _save(self, record: SignatureRecord) -> None:
        self.store.update(self.session_id, signature=record)

"""Stage sequencer.

Presents one stage at a time. Entry to each stage is gated on the previous
stage's completion; moving between stages closes the stage being left
(cancelling its timers) and opens the target.

    landing -> verify-identity -> read-document
            -> comprehension-checklist -> sign -> complete
"""

import logging
from enum import Enum
from typing import Mapping, Protocol

from econsent.core.security import ErrorReason
from econsent.workflow.models import Session
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Patient-facing stages, valued by their route slug."""

    LANDING = "landing"
    VERIFY_IDENTITY = "verify-identity"
    READ_DOCUMENT = "read-document"
    COMPREHENSION_CHECKLIST = "comprehension-checklist"
    SIGN = "sign"
    COMPLETE = "complete"
    ERROR = "error"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.LANDING,
    Stage.VERIFY_IDENTITY,
    Stage.READ_DOCUMENT,
    Stage.COMPREHENSION_CHECKLIST,
    Stage.SIGN,
    Stage.COMPLETE,
)


class StageComponent(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...


# Stage entry requirement: (predicate, message)
_ENTRY_GATES = {
    Stage.READ_DOCUMENT: (
        lambda s: s.auth.verified,
        "Please verify your identity first.",
    ),
    Stage.COMPREHENSION_CHECKLIST: (
        lambda s: s.document.completed,
        "Please read the full consent document first.",
    ),
    Stage.SIGN: (
        lambda s: s.checklist.all_completed,
        "Please complete every comprehension statement first.",
    ),
    Stage.COMPLETE: (
        lambda s: s.signature.submitted,
        "Please sign and submit the consent form first.",
    ),
}


def can_enter(session: Session, stage: Stage) -> Outcome:
    """Check whether a session may be shown the given stage.

    A submitted session may only view the completion stage.
    """
    if stage == Stage.ERROR:
        return Outcome.ok()

    if session.signature.submitted and stage != Stage.COMPLETE:
        return Outcome.refuse(
            Reason.STAGE_LOCKED,
            ErrorReason.ALREADY_COMPLETED.description,
            stage=stage.value,
            error_reason=ErrorReason.ALREADY_COMPLETED.value,
            redirect=Stage.COMPLETE.value,
        )

    gate = _ENTRY_GATES.get(stage)
    if gate is not None and not gate[0](session):
        return Outcome.refuse(
            Reason.STAGE_LOCKED,
            gate[1],
            stage=stage.value,
            redirect=furthest_stage(session).value,
        )
    return Outcome.ok(stage=stage.value)


def furthest_stage(session: Session) -> Stage:
    """Latest stage the session may currently enter."""
    if session.signature.submitted:
        return Stage.COMPLETE
    furthest = Stage.VERIFY_IDENTITY
    for stage in STAGE_ORDER[2:]:
        predicate, _ = _ENTRY_GATES[stage]
        if not predicate(session):
            break
        furthest = stage
    return furthest


class ConsentSequencer:
    """Tracks the stage a session is on and switches stage components."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        components: Mapping[Stage, StageComponent],
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.components = dict(components)
        self.current = Stage.LANDING

    def navigate(self, stage: Stage | str) -> Outcome:
        try:
            stage = Stage(stage)
        except ValueError:
            return Outcome.refuse(
                Reason.STAGE_LOCKED,
                f"Unknown stage: {stage}",
                redirect=self.current.value,
            )

        outcome = can_enter(self.store.get(self.session_id), stage)
        if not outcome.allowed:
            logger.info(
                f"Stage {stage.value} refused for session {self.session_id[:8]}...: "
                f"{outcome.message}"
            )
            return outcome

        if stage == self.current:
            return Outcome.ok(stage=stage.value)

        previous = self.components.get(self.current)
        if previous is not None:
            previous.close()
        self.current = stage

        target = self.components.get(stage)
        if target is not None:
            target.open()
        logger.debug(f"Session {self.session_id[:8]}... entered {stage.value}")
        return Outcome.ok(stage=stage.value)

    def close(self) -> None:
        """Close the current stage component."""
        component = self.components.get(self.current)
        if component is not None:
            component.close()

"""Tests for stage sequencing."""

from dataclasses import replace

import pytest

from econsent.core.security import ErrorReason
from econsent.workflow.models import Session
from econsent.workflow.outcomes import Reason
from econsent.workflow.sequencer import (
    ConsentSequencer,
    Stage,
    can_enter,
    furthest_stage,
)
from econsent.workflow.store import SessionStore


class RecordingComponent:
    """Stage component that records open/close calls."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def open(self) -> None:
        self.calls.append("open")

    def close(self) -> None:
        self.calls.append("close")


def advance_to(session: Session, stage: Stage) -> Session:
    """Mark every stage before `stage` as complete."""
    if stage in (Stage.READ_DOCUMENT, Stage.COMPREHENSION_CHECKLIST, Stage.SIGN, Stage.COMPLETE):
        session = replace(session, auth=replace(session.auth, verified=True))
    if stage in (Stage.COMPREHENSION_CHECKLIST, Stage.SIGN, Stage.COMPLETE):
        session = replace(session, document=replace(session.document, completed=True))
    if stage in (Stage.SIGN, Stage.COMPLETE):
        session = replace(session, checklist=replace(session.checklist, all_completed=True))
    if stage == Stage.COMPLETE:
        session = replace(session, signature=replace(session.signature, submitted=True))
    return session


@pytest.fixture
def session(store: SessionStore, session_id: str) -> Session:
    return store.get(session_id)


class TestCanEnter:
    """Tests for stage entry gates."""

    @pytest.mark.parametrize(
        "stage", [Stage.LANDING, Stage.VERIFY_IDENTITY, Stage.ERROR]
    )
    def test_open_stages(self, session: Session, stage: Stage) -> None:
        assert can_enter(session, stage).allowed is True

    @pytest.mark.parametrize(
        "stage",
        [Stage.READ_DOCUMENT, Stage.COMPREHENSION_CHECKLIST, Stage.SIGN, Stage.COMPLETE],
    )
    def test_gated_stages_locked_initially(self, session: Session, stage: Stage) -> None:
        """Test that a fresh session cannot skip ahead."""
        outcome = can_enter(session, stage)

        assert outcome.reason == Reason.STAGE_LOCKED
        assert outcome.details["redirect"] == Stage.VERIFY_IDENTITY.value

    @pytest.mark.parametrize(
        "stage",
        [Stage.READ_DOCUMENT, Stage.COMPREHENSION_CHECKLIST, Stage.SIGN, Stage.COMPLETE],
    )
    def test_gate_opens_after_previous_stage(self, session: Session, stage: Stage) -> None:
        assert can_enter(advance_to(session, stage), stage).allowed is True

    def test_checklist_requires_document(self, session: Session) -> None:
        verified = advance_to(session, Stage.READ_DOCUMENT)

        outcome = can_enter(verified, Stage.COMPREHENSION_CHECKLIST)

        assert outcome.allowed is False
        assert outcome.details["redirect"] == Stage.READ_DOCUMENT.value

    def test_submitted_session_only_sees_completion(self, session: Session) -> None:
        """Test that a submitted session cannot re-enter earlier stages."""
        done = advance_to(session, Stage.COMPLETE)

        outcome = can_enter(done, Stage.SIGN)

        assert outcome.reason == Reason.STAGE_LOCKED
        assert outcome.details["error_reason"] == ErrorReason.ALREADY_COMPLETED.value
        assert outcome.details["redirect"] == Stage.COMPLETE.value
        assert can_enter(done, Stage.COMPLETE).allowed is True


class TestFurthestStage:
    @pytest.mark.parametrize(
        "stage",
        [Stage.READ_DOCUMENT, Stage.COMPREHENSION_CHECKLIST, Stage.SIGN, Stage.COMPLETE],
    )
    def test_furthest_stage(self, session: Session, stage: Stage) -> None:
        assert furthest_stage(advance_to(session, stage)) == stage

    def test_fresh_session(self, session: Session) -> None:
        assert furthest_stage(session) == Stage.VERIFY_IDENTITY


class TestConsentSequencer:
    """Tests for stage switching."""

    @pytest.fixture
    def components(self) -> dict[Stage, RecordingComponent]:
        return {
            Stage.VERIFY_IDENTITY: RecordingComponent(),
            Stage.READ_DOCUMENT: RecordingComponent(),
        }

    @pytest.fixture
    def sequencer(
        self,
        store: SessionStore,
        session_id: str,
        components: dict[Stage, RecordingComponent],
    ) -> ConsentSequencer:
        return ConsentSequencer(store, session_id, components)

    def test_starts_at_landing(self, sequencer: ConsentSequencer) -> None:
        assert sequencer.current == Stage.LANDING

    def test_navigate_opens_target_and_closes_previous(
        self,
        sequencer: ConsentSequencer,
        components: dict[Stage, RecordingComponent],
        store: SessionStore,
        session_id: str,
    ) -> None:
        """Test that leaving a stage closes it before the next one opens."""
        sequencer.navigate(Stage.VERIFY_IDENTITY)
        store.update(session_id, auth=replace(store.get(session_id).auth, verified=True))

        outcome = sequencer.navigate("read-document")

        assert outcome.allowed is True
        assert sequencer.current == Stage.READ_DOCUMENT
        assert components[Stage.VERIFY_IDENTITY].calls == ["open", "close"]
        assert components[Stage.READ_DOCUMENT].calls == ["open"]

    def test_refused_navigation_keeps_stage(
        self,
        sequencer: ConsentSequencer,
        components: dict[Stage, RecordingComponent],
    ) -> None:
        sequencer.navigate(Stage.VERIFY_IDENTITY)

        outcome = sequencer.navigate(Stage.READ_DOCUMENT)

        assert outcome.allowed is False
        assert sequencer.current == Stage.VERIFY_IDENTITY
        assert components[Stage.VERIFY_IDENTITY].calls == ["open"]

    def test_navigate_to_current_stage_is_noop(
        self,
        sequencer: ConsentSequencer,
        components: dict[Stage, RecordingComponent],
    ) -> None:
        sequencer.navigate(Stage.VERIFY_IDENTITY)
        sequencer.navigate(Stage.VERIFY_IDENTITY)

        assert components[Stage.VERIFY_IDENTITY].calls == ["open"]

    def test_unknown_stage(self, sequencer: ConsentSequencer) -> None:
        outcome = sequencer.navigate("billing")

        assert outcome.reason == Reason.STAGE_LOCKED
        assert sequencer.current == Stage.LANDING

    def test_close_closes_current(
        self,
        sequencer: ConsentSequencer,
        components: dict[Stage, RecordingComponent],
    ) -> None:
        sequencer.navigate(Stage.VERIFY_IDENTITY)

        sequencer.close()

        assert components[Stage.VERIFY_IDENTITY].calls == ["open", "close"]


class TestErrorReason:
    @pytest.mark.parametrize("reason", list(ErrorReason))
    def test_every_reason_has_copy(self, reason: ErrorReason) -> None:
        assert reason.title
        assert reason.description
        assert reason.action

"""Comprehension Checklist Engine.

Each statement is attested in two phases: the patient listens to its
explanatory audio, then records a short video confirmation. Recording is
locked until the audio phase has completed, so no item can be completed
without having been listened to first.

Per item:  locked -> audio played -> recording -> clip held -> completed
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime

from econsent.core.config import Settings, settings as default_settings
from econsent.utils.time import seconds_between
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.backends import MediaPlayer
from econsent.workflow.clock import Clock, PeriodicTimer, TimerHandle
from econsent.workflow.models import ChecklistItem, ChecklistProgress
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore

logger = logging.getLogger(__name__)

AUDIT_STEP = "comprehension_checklist"


@dataclass(frozen=True)
class CandidateClip:
    """A finished recording awaiting the patient's accept or retake."""

    item_id: int
    started_at: datetime
    captured_at: datetime
    duration_seconds: int
    media_ref: str


@dataclass
class _Recording:
    item_id: int
    started_at: datetime
    timer: PeriodicTimer
    elapsed: int = 0


def replace_item(progress: ChecklistProgress, item: ChecklistItem) -> ChecklistProgress:
    """Swap one item and recompute the aggregate counts."""
    items = tuple(item if existing.id == item.id else existing for existing in progress.items)
    return ChecklistProgress.from_items(items)


def mark_audio_played(item: ChecklistItem, now: datetime) -> ChecklistItem:
    """Record audio completion. Replays keep the first completion time."""
    if item.audio_played:
        return item
    return replace(item, audio_played=True, audio_completed_at=now)


def check_can_record(item: ChecklistItem) -> Outcome:
    if item.completed:
        return Outcome.refuse(
            Reason.ITEM_COMPLETED,
            "This statement has already been confirmed.",
            item_id=item.id,
        )
    if not item.audio_played:
        return Outcome.refuse(
            Reason.AUDIO_INCOMPLETE,
            "Please listen to the audio explanation before recording.",
            item_id=item.id,
        )
    return Outcome.ok()


def accept_clip(item: ChecklistItem, clip: CandidateClip, now: datetime) -> ChecklistItem:
    """Complete an item with its accepted video confirmation."""
    return replace(
        item,
        video_recorded=True,
        video_duration_seconds=clip.duration_seconds,
        video_recorded_at=clip.captured_at,
        video_ref=clip.media_ref,
        completed=True,
        completed_at=now,
    )


class ChecklistEngine:
    """Comprehension checklist stage bound to one session."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        clock: Clock,
        audit: AuditRecorder,
        player: MediaPlayer,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self.audit = audit
        self.player = player
        self.settings = settings or default_settings
        self._playback: tuple[int, TimerHandle] | None = None
        self._recording: _Recording | None = None
        self._held: dict[int, CandidateClip] = {}

    @property
    def state(self) -> ChecklistProgress:
        return self.store.get(self.session_id).checklist

    @property
    def playing_item(self) -> int | None:
        if self._playback is not None and self._playback[1].active:
            return self._playback[0]
        return None

    @property
    def recording_item(self) -> int | None:
        return self._recording.item_id if self._recording else None

    @property
    def recording_elapsed(self) -> int:
        return self._recording.elapsed if self._recording else 0

    def held_clip(self, item_id: int) -> CandidateClip | None:
        return self._held.get(item_id)

    def open(self) -> None:
        if not self.state.all_completed:
            self.audit.ensure_step(AUDIT_STEP)

    def close(self) -> None:
        """Stop playback and discard any in-progress recording."""
        if self._playback is not None:
            self._playback[1].cancel()
            self._playback = None
        if self._recording is not None:
            self._recording.timer.cancel()
            self._recording = None

    def play_audio(self, item_id: int) -> Outcome:
        item = self.state.get(item_id)
        if item is None:
            return self._unknown_item(item_id)

        playing = self.playing_item
        if playing == item_id:
            return Outcome.ok("Audio is already playing.", item_id=item_id, playing=True)
        if playing is not None:
            return Outcome.refuse(
                Reason.PLAYBACK_IN_PROGRESS,
                "Please wait for the current audio to finish.",
                item_id=playing,
            )
        if self._recording is not None:
            return Outcome.refuse(
                Reason.RECORDING_IN_PROGRESS,
                "Please finish the current recording first.",
                item_id=self._recording.item_id,
            )

        handle = self.player.play(item, lambda: self._on_audio_complete(item_id))
        self._playback = (item_id, handle)
        return Outcome.ok(item_id=item_id, playing=True)

    def start_recording(self, item_id: int) -> Outcome:
        item = self.state.get(item_id)
        if item is None:
            return self._unknown_item(item_id)

        outcome = check_can_record(item)
        if not outcome.allowed:
            return outcome

        if self._recording is not None:
            return Outcome.refuse(
                Reason.RECORDING_IN_PROGRESS,
                "A recording is already in progress.",
                item_id=self._recording.item_id,
            )
        if self.playing_item is not None:
            return Outcome.refuse(
                Reason.PLAYBACK_IN_PROGRESS,
                "Please wait for the current audio to finish.",
                item_id=self.playing_item,
            )

        self._held.pop(item_id, None)
        timer = PeriodicTimer(
            self.clock,
            1.0,
            lambda ticks: self._on_recording_tick(item_id, ticks),
            name=f"item-{item_id}-recording",
        )
        self._recording = _Recording(item_id=item_id, started_at=self.clock.now(), timer=timer)
        timer.start()
        return Outcome.ok(
            item_id=item_id,
            max_seconds=self.settings.recording_max_seconds,
        )

    def stop_recording(self, item_id: int, media_ref: str | None = None) -> Outcome:
        recording = self._recording
        if recording is None or recording.item_id != item_id:
            return Outcome.refuse(
                Reason.NOT_RECORDING,
                "No recording is in progress for this statement.",
                item_id=item_id,
            )

        recording.timer.cancel()
        self._recording = None
        now = self.clock.now()
        clip = CandidateClip(
            item_id=item_id,
            started_at=recording.started_at,
            captured_at=now,
            duration_seconds=min(
                seconds_between(recording.started_at, now),
                self.settings.recording_max_seconds,
            ),
            media_ref=media_ref or f"clip-{item_id}-{uuid.uuid4().hex[:12]}",
        )
        self._held[item_id] = clip
        return Outcome.ok(item_id=item_id, duration_seconds=clip.duration_seconds)

    def accept_clip(self, item_id: int) -> Outcome:
        item = self.state.get(item_id)
        if item is None:
            return self._unknown_item(item_id)

        clip = self._held.get(item_id)
        if clip is None:
            return Outcome.refuse(
                Reason.NO_CLIP_HELD,
                "There is no recording to accept for this statement.",
                item_id=item_id,
            )
        if item.completed:
            self._held.pop(item_id, None)
            return Outcome.refuse(
                Reason.ITEM_COMPLETED,
                "This statement has already been confirmed.",
                item_id=item_id,
            )

        progress = replace_item(self.state, accept_clip(item, clip, self.clock.now()))
        del self._held[item_id]
        self.store.update(self.session_id, checklist=progress)

        if progress.all_completed:
            self.audit.end_step(AUDIT_STEP)
            logger.info(f"Checklist completed for session {self.session_id[:8]}...")

        return Outcome.ok(
            f"{progress.total_completed} of {len(progress.items)} items completed.",
            item_id=item_id,
            total_completed=progress.total_completed,
            all_completed=progress.all_completed,
        )

    def retake_clip(self, item_id: int) -> Outcome:
        if self._held.pop(item_id, None) is None:
            return Outcome.refuse(
                Reason.NO_CLIP_HELD,
                "There is no recording to discard for this statement.",
                item_id=item_id,
            )
        return Outcome.ok(item_id=item_id)

    def next_incomplete_item(self) -> ChecklistItem | None:
        return next((item for item in self.state.items if not item.completed), None)

    def _on_audio_complete(self, item_id: int) -> None:
        self._playback = None
        progress = self.state
        item = progress.get(item_id)
        if item is None or item.audio_played:
            return
        self.store.update(
            self.session_id,
            checklist=replace_item(progress, mark_audio_played(item, self.clock.now())),
        )

    def _on_recording_tick(self, item_id: int, ticks: int) -> None:
        recording = self._recording
        if recording is None or recording.item_id != item_id:
            return
        recording.elapsed = ticks
        if ticks >= self.settings.recording_max_seconds:
            logger.debug(f"Recording for item {item_id} reached its limit")
            self.stop_recording(item_id)

    @staticmethod
    def _unknown_item(item_id: int) -> Outcome:
        return Outcome.refuse(
            Reason.UNKNOWN_ITEM,
            f"Checklist item {item_id} does not exist.",
            item_id=item_id,
        )

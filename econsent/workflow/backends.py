"""Pluggable backends for the workflow's deferred operations.

Audio playback, signature submission and one-time-code delivery are modeled
as cancellable operations that report completion through a callback. The
simulated implementations complete after a fixed delay on the workflow
Clock; a real backend (media player, network submission, e-mail gateway)
implements the same interface without any change to the state machines.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from econsent.workflow.clock import Clock, TimerHandle
from econsent.workflow.models import ChecklistItem, SignatureRecord

logger = logging.getLogger(__name__)


class CodeDelivery(ABC):
    """Delivers one-time codes to the patient."""

    @abstractmethod
    def deliver(self, email: str, code: str) -> None:
        """Send the code to the given address."""


class LoggingCodeDelivery(CodeDelivery):
    """Development delivery: records the hand-off without sending e-mail."""

    def __init__(self, reveal_code: bool = False) -> None:
        self.reveal_code = reveal_code
        self.sent: list[tuple[str, str]] = []

    def deliver(self, email: str, code: str) -> None:
        self.sent.append((email, code))
        if self.reveal_code:
            logger.info(f"Verification code for {email}: {code}")
        else:
            logger.info(f"Verification code sent to {email}")

    @property
    def last_code(self) -> str | None:
        return self.sent[-1][1] if self.sent else None


class MediaPlayer(ABC):
    """Plays a checklist item's explanatory audio."""

    @abstractmethod
    def play(self, item: ChecklistItem, on_complete: Callable[[], None]) -> TimerHandle:
        """Start playback; on_complete runs once playback has finished."""


class SimulatedMediaPlayer(MediaPlayer):
    """Completes playback after the declared or a fixed duration."""

    def __init__(
        self,
        clock: Clock,
        mode: str = "declared",
        fixed_seconds: float = 3.0,
    ) -> None:
        self.clock = clock
        self.mode = mode
        self.fixed_seconds = fixed_seconds

    def duration_for(self, item: ChecklistItem) -> float:
        if self.mode == "fixed" or item.audio_duration_seconds <= 0:
            return self.fixed_seconds
        return float(item.audio_duration_seconds)

    def play(self, item: ChecklistItem, on_complete: Callable[[], None]) -> TimerHandle:
        duration = self.duration_for(item)
        logger.debug(f"Playing audio for item {item.id} ({duration}s)")
        return self.clock.call_later(duration, on_complete)


class SubmissionBackend(ABC):
    """Transmits a completed signature record."""

    @abstractmethod
    def submit(
        self,
        session_id: str,
        record: SignatureRecord,
        on_complete: Callable[[], None],
    ) -> TimerHandle:
        """Start submission; on_complete runs once it has been accepted."""


class SimulatedSubmission(SubmissionBackend):
    """Accepts every submission after a fixed latency."""

    def __init__(self, clock: Clock, latency_seconds: float = 2.0) -> None:
        self.clock = clock
        self.latency_seconds = latency_seconds

    def submit(
        self,
        session_id: str,
        record: SignatureRecord,
        on_complete: Callable[[], None],
    ) -> TimerHandle:
        logger.debug(f"Submitting signature for session {session_id[:8]}...")
        return self.clock.call_later(self.latency_seconds, on_complete)

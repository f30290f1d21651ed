"""Document Gate: timed, scroll-complete linear reading of the consent document.

A page may be advanced past only when the patient has stayed on it for its
minimum dwell time and scrolled to its end. Pages are never "unread": going
back re-opens a page for viewing but keeps every recorded timing.
"""

import logging
from dataclasses import replace
from datetime import datetime
from functools import partial

from econsent.core.config import Settings, settings as default_settings
from econsent.protocols.loader import ProtocolDefinition
from econsent.utils.time import seconds_between
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.clock import Clock, PeriodicTimer
from econsent.workflow.models import DocumentProgress, PageTiming
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore

logger = logging.getLogger(__name__)

AUDIT_STEP = "document_review"

# Depth recorded for a page that passed its gate
FULL_SCROLL_DEPTH = 100


def evaluate_page_gate(progress: DocumentProgress, minimum_dwell: int) -> Outcome:
    """Decide whether the current page may be advanced past.

    Dwell time is checked before scrolling, so a patient who has done
    neither is first told how long remains.
    """
    if progress.completed:
        return Outcome.refuse(
            Reason.DOCUMENT_COMPLETED,
            "The document has already been completed.",
        )

    remaining = minimum_dwell - progress.time_on_page
    if remaining > 0:
        return Outcome.refuse(
            Reason.INSUFFICIENT_DWELL,
            f"Please spend at least {remaining} more seconds on this page.",
            seconds_remaining=remaining,
            scrolled_to_bottom=progress.scrolled_to_bottom,
        )

    if not progress.scrolled_to_bottom:
        return Outcome.refuse(
            Reason.NOT_SCROLLED,
            "Please scroll to the bottom of the page before continuing.",
            seconds_remaining=0,
            scrolled_to_bottom=False,
        )

    return Outcome.ok()


def can_advance(progress: DocumentProgress, minimum_dwell: int) -> bool:
    return evaluate_page_gate(progress, minimum_dwell).allowed


def enter_page(progress: DocumentProgress, page: int, now: datetime) -> DocumentProgress:
    """Start a fresh viewing of page."""
    return replace(
        progress,
        current_page=page,
        page_entered_at=now,
        time_on_page=0,
        scrolled_to_bottom=False,
        max_scroll_depth=0.0,
    )


def record_scroll(
    progress: DocumentProgress,
    depth_percent: float,
    completion_percent: int,
) -> DocumentProgress:
    """Track the deepest scroll position reached on the current page."""
    depth = min(100.0, max(0.0, depth_percent))
    deepest = max(progress.max_scroll_depth, depth)
    return replace(
        progress,
        max_scroll_depth=deepest,
        scrolled_to_bottom=progress.scrolled_to_bottom or deepest >= completion_percent,
    )


def advance(
    progress: DocumentProgress,
    minimum_dwell: int,
    now: datetime,
) -> tuple[DocumentProgress, Outcome]:
    """Record the current page as read and move on (or complete)."""
    outcome = evaluate_page_gate(progress, minimum_dwell)
    if not outcome.allowed:
        return progress, outcome

    page = progress.current_page
    time_spent = seconds_between(progress.page_entered_at or now, now)
    timing = PageTiming(
        page=page,
        time_spent_seconds=time_spent,
        scroll_depth_percent=FULL_SCROLL_DEPTH,
        timestamp=now,
    )
    updated = replace(
        progress,
        pages_read=progress.pages_read | {page},
        page_timings=progress.page_timings + (timing,),
        total_reading_time=progress.total_reading_time + time_spent,
    )

    if progress.is_last_page:
        updated = replace(updated, completed=True, completed_at=now)
        return updated, Outcome.ok("Document complete.", completed=True, page=page)

    updated = enter_page(updated, page + 1, now)
    return updated, Outcome.ok(completed=False, page=page, current_page=page + 1)


def retreat(progress: DocumentProgress, now: datetime) -> tuple[DocumentProgress, Outcome]:
    """Go back one page without discarding any recorded timing."""
    if progress.completed:
        return progress, Outcome.refuse(
            Reason.DOCUMENT_COMPLETED,
            "The document has already been completed.",
        )
    if progress.current_page <= 1:
        return progress, Outcome.refuse(
            Reason.AT_FIRST_PAGE,
            "You are already on the first page.",
        )

    page = progress.current_page - 1
    return enter_page(progress, page, now), Outcome.ok(current_page=page)


class DocumentGate:
    """Document reading stage bound to one session."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        clock: Clock,
        audit: AuditRecorder,
        protocol: ProtocolDefinition,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self.audit = audit
        self.protocol = protocol
        self.settings = settings or default_settings
        self._dwell_timer: PeriodicTimer | None = None

    @property
    def state(self) -> DocumentProgress:
        return self.store.get(self.session_id).document

    @property
    def timer_running(self) -> bool:
        return self._dwell_timer is not None and self._dwell_timer.running

    def minimum_dwell(self, page: int) -> int:
        return self.settings.minimum_dwell_for(page, self.protocol.page(page).minimum_seconds)

    def gate(self) -> Outcome:
        """Evaluate the current page's gate without changing anything."""
        progress = self.state
        return evaluate_page_gate(progress, self.minimum_dwell(progress.current_page))

    def open(self) -> None:
        """Begin (or resume) reading at the current page."""
        progress = self.state
        if progress.completed:
            return
        self._save(enter_page(progress, progress.current_page, self.clock.now()))
        self._arm_dwell_timer(progress.current_page)
        self.audit.ensure_step(AUDIT_STEP)

    def close(self) -> None:
        """Cancel the dwell timer when leaving the stage."""
        self._cancel_dwell_timer()

    def report_scroll(self, depth_percent: float) -> Outcome:
        progress = self.state
        if progress.completed:
            return Outcome.refuse(
                Reason.DOCUMENT_COMPLETED,
                "The document has already been completed.",
            )
        updated = record_scroll(progress, depth_percent, self.settings.scroll_completion_percent)
        self._save(updated)
        return Outcome.ok(scrolled_to_bottom=updated.scrolled_to_bottom)

    def advance(self) -> Outcome:
        progress = self.state
        updated, outcome = advance(
            progress,
            self.minimum_dwell(progress.current_page),
            self.clock.now(),
        )
        if not outcome.allowed:
            return outcome

        self._cancel_dwell_timer()
        self._save(updated)

        if updated.completed:
            self.audit.end_step(AUDIT_STEP)
            logger.info(
                f"Document completed for session {self.session_id[:8]}... "
                f"({updated.total_reading_time}s reading)"
            )
        else:
            self._arm_dwell_timer(updated.current_page)
        return outcome

    def retreat(self) -> Outcome:
        updated, outcome = retreat(self.state, self.clock.now())
        if not outcome.allowed:
            return outcome

        self._cancel_dwell_timer()
        self._save(updated)
        self._arm_dwell_timer(updated.current_page)
        return outcome

    def _save(self, progress: DocumentProgress) -> None:
        self.store.update(self.session_id, document=progress)

    def _arm_dwell_timer(self, page: int) -> None:
        self._cancel_dwell_timer()
        self._dwell_timer = PeriodicTimer(
            self.clock,
            1.0,
            partial(self._on_dwell_tick, page),
            name=f"page-{page}-dwell",
        )
        self._dwell_timer.start()

    def _cancel_dwell_timer(self) -> None:
        if self._dwell_timer is not None:
            self._dwell_timer.cancel()
            self._dwell_timer = None

    def _on_dwell_tick(self, page: int, ticks: int) -> None:
        progress = self.state
        if progress.completed or progress.current_page != page:
            return
        self._save(replace(progress, time_on_page=ticks))

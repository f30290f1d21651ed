"""Consent session data model.

All records are frozen dataclasses. Components never mutate a record in
place: they build an updated copy with dataclasses.replace() and hand it to
the SessionStore, which owns the only live reference.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class PatientProfile:
    """Read-only patient reference data for a session."""

    patient_id: str
    name: str
    email: str
    language: str = "English"


@dataclass(frozen=True)
class StudyInfo:
    """Read-only study reference data for a session."""

    protocol_id: str
    protocol_name: str
    version: str
    site_code: str
    site_name: str
    investigator_name: str


class AuthStatus(str, Enum):
    """Identity verification state."""

    NO_CHALLENGE = "no_challenge"
    CHALLENGE_SENT = "challenge_sent"
    LOCKED = "locked"
    VERIFIED = "verified"


@dataclass(frozen=True)
class AuthState:
    """E-mail one-time-code challenge state."""

    email: str = ""
    challenge_sent: bool = False
    code: str = ""
    verified: bool = False
    attempts: int = 0
    expiry: datetime | None = None
    sent_at: datetime | None = None
    challenges_sent: int = 0
    verified_at: datetime | None = None
    max_attempts: int = 3

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts)

    @property
    def status(self) -> AuthStatus:
        if self.verified:
            return AuthStatus.VERIFIED
        if not self.challenge_sent:
            return AuthStatus.NO_CHALLENGE
        if self.attempts >= self.max_attempts:
            return AuthStatus.LOCKED
        return AuthStatus.CHALLENGE_SENT

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and now > self.expiry


@dataclass(frozen=True)
class PageTiming:
    """Immutable record appended each time a page is advanced past."""

    page: int
    time_spent_seconds: int
    scroll_depth_percent: int
    timestamp: datetime


@dataclass(frozen=True)
class DocumentProgress:
    """Linear reading progress through the consent document."""

    total_pages: int
    current_page: int = 1
    pages_read: frozenset[int] = frozenset()
    page_timings: tuple[PageTiming, ...] = ()
    total_reading_time: int = 0
    completed: bool = False
    completed_at: datetime | None = None
    # Per-page viewing state, reset on every page change
    page_entered_at: datetime | None = None
    time_on_page: int = 0
    scrolled_to_bottom: bool = False
    max_scroll_depth: float = 0.0

    @property
    def is_last_page(self) -> bool:
        return self.current_page == self.total_pages

    @property
    def percent_complete(self) -> float:
        if self.total_pages == 0:
            return 0.0
        return round(len(self.pages_read) / self.total_pages * 100, 1)


@dataclass(frozen=True)
class ChecklistItem:
    """One comprehension statement: listen first, then record a confirmation."""

    id: int
    statement: str
    audio_duration_seconds: int
    audio_url: str = ""
    audio_played: bool = False
    audio_completed_at: datetime | None = None
    video_recorded: bool = False
    video_duration_seconds: int = 0
    video_recorded_at: datetime | None = None
    video_ref: str = ""
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ChecklistProgress:
    """Checklist items plus aggregate completion, derived from the items."""

    items: tuple[ChecklistItem, ...]
    total_completed: int = 0
    all_completed: bool = False

    @classmethod
    def from_items(cls, items: tuple[ChecklistItem, ...]) -> "ChecklistProgress":
        total = sum(1 for item in items if item.completed)
        return cls(items=items, total_completed=total, all_completed=total == len(items))

    def get(self, item_id: int) -> ChecklistItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass(frozen=True)
class SignatureArtifact:
    """Final captured signature mark."""

    media_type: str
    data: str
    sha256: str


@dataclass(frozen=True)
class SignatureRecord:
    """Signature mark presence, acknowledgements and submission state."""

    signer_name: str = ""
    mark_present: bool = False
    consent_acknowledged: bool = False
    terms_acknowledged: bool = False
    timestamp: datetime | None = None
    submitting: bool = False
    submitted: bool = False
    submitted_at: datetime | None = None
    artifact: SignatureArtifact | None = None


@dataclass(frozen=True)
class DeviceInfo:
    """Coarse description of the patient's device."""

    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "Desktop"


@dataclass(frozen=True)
class AuditStep:
    """Entry/exit record for one workflow stage."""

    name: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: int | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None


@dataclass(frozen=True)
class AuditTrail:
    """Append-only timeline of a consent session."""

    opened_at: datetime
    steps: tuple[AuditStep, ...] = ()
    completed_at: datetime | None = None
    total_duration_seconds: int | None = None
    device_info: DeviceInfo = field(default_factory=DeviceInfo)
    ip_address: str | None = None


@dataclass(frozen=True)
class Session:
    """Complete state of one consent attempt."""

    session_id: str
    patient: PatientProfile
    study: StudyInfo
    auth: AuthState
    document: DocumentProgress
    checklist: ChecklistProgress
    signature: SignatureRecord
    audit: AuditTrail
    link_expires_at: datetime | None = None
    protocol_hash: str = ""

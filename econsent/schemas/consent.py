"""Pydantic schemas for consent session operations."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from econsent.workflow.outcomes import Outcome
from econsent.workflow.signature import AckKind


class SessionCreate(BaseModel):
    """Schema for opening a consent session for a patient."""

    patient_id: str = Field(..., min_length=1, max_length=64, examples=["P-2024-001234"])
    name: str = Field(..., min_length=1, max_length=200, examples=["Sarah Johnson"])
    email: EmailStr
    language: str = "English"


class SessionCreated(BaseModel):
    """Consent link issued for a new session."""

    token: str
    link_expires_at: datetime
    stage: str


class OutcomeResponse(BaseModel):
    """Result of a workflow operation."""

    allowed: bool
    reason: str | None = None
    kind: str | None = None
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> "OutcomeResponse":
        return cls(**outcome.to_dict())


class NavigateRequest(BaseModel):
    stage: str = Field(..., examples=["read-document"])


class EmailChallengeRequest(BaseModel):
    # Format is checked by the identity verifier so refusals share one shape
    email: str = Field(..., max_length=254, examples=["sarah.johnson@email.com"])


class CodeVerifyRequest(BaseModel):
    code: str = Field(..., max_length=32, examples=["123456"])


class ScrollReport(BaseModel):
    depth_percent: float = Field(..., ge=0, le=100)


class StrokeRequest(BaseModel):
    points: list[tuple[float, float]] = Field(default_factory=list)


class AcknowledgementRequest(BaseModel):
    kind: AckKind
    value: bool


class StudyRead(BaseModel):
    protocol_id: str
    protocol_name: str
    version: str
    site_code: str
    site_name: str
    investigator_name: str


class AuthStatusRead(BaseModel):
    status: str
    email: str
    attempts_remaining: int
    expires_in: int
    resend_cooldown: int


class DocumentStatusRead(BaseModel):
    current_page: int
    total_pages: int
    pages_read: list[int]
    percent_complete: float
    completed: bool


class ChecklistStatusRead(BaseModel):
    total_completed: int
    total_items: int
    all_completed: bool


class SignatureStatusRead(BaseModel):
    mark_present: bool
    consent_acknowledged: bool
    terms_acknowledged: bool
    submitting: bool
    submitted: bool
    submitted_at: datetime | None = None


class SessionStatus(BaseModel):
    """Overview of a consent session for the landing screen."""

    patient_name: str
    study: StudyRead
    current_stage: str
    furthest_stage: str
    identity: AuthStatusRead
    document: DocumentStatusRead
    checklist: ChecklistStatusRead
    signature: SignatureStatusRead


class DocumentPageRead(BaseModel):
    """Current document page with its gate state."""

    page: int
    total_pages: int
    title: str
    content: str
    minimum_seconds: int
    time_on_page: int
    scrolled_to_bottom: bool
    can_advance: bool
    gate: OutcomeResponse
    completed: bool


class ChecklistItemRead(BaseModel):
    id: int
    statement: str
    audio_url: str
    audio_duration_seconds: int
    audio_played: bool
    playing: bool
    recording: bool
    clip_held: bool
    video_recorded: bool
    completed: bool


class ChecklistRead(BaseModel):
    items: list[ChecklistItemRead]
    total_completed: int
    all_completed: bool
    recording_elapsed: int

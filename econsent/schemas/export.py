"""Pydantic schemas for the completion export."""

from datetime import datetime

from pydantic import BaseModel, Field


class PatientExport(BaseModel):
    """Patient identifiers carried in the export."""

    patient_id: str
    name: str
    language: str


class StudyExport(BaseModel):
    """Study and protocol identifiers."""

    protocol_id: str
    protocol_name: str
    version: str
    site_code: str
    site_name: str
    investigator_name: str
    protocol_hash: str = Field(
        ...,
        description="SHA-256 of the protocol definition the patient read",
    )


class PageTimingExport(BaseModel):
    page: int
    time_spent_seconds: int
    scroll_depth_percent: int
    timestamp: datetime


class DocumentExport(BaseModel):
    """Reading record of the consent document."""

    total_pages: int
    pages_read: list[int]
    page_timings: list[PageTimingExport]
    total_reading_time: int
    completed_at: datetime | None = None


class ChecklistItemExport(BaseModel):
    """One comprehension statement with its phase timestamps."""

    id: int
    statement: str
    audio_duration_seconds: int
    audio_played: bool
    audio_completed_at: datetime | None = None
    video_recorded: bool
    video_duration_seconds: int
    video_recorded_at: datetime | None = None
    video_ref: str
    completed: bool
    completed_at: datetime | None = None


class SignatureExport(BaseModel):
    """Signature record with the captured mark.

    `artifact_data` holds the stroke JSON needed to render the signed
    record; `artifact_sha256` is its digest.
    """

    signer_name: str
    mark_present: bool
    consent_acknowledged: bool
    terms_acknowledged: bool
    timestamp: datetime | None = None
    submitted: bool
    submitted_at: datetime | None = None
    artifact_media_type: str | None = None
    artifact_data: str | None = None
    artifact_sha256: str | None = None


class AuditStepExport(BaseModel):
    name: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: int | None = None


class DeviceInfoExport(BaseModel):
    browser: str
    os: str
    device: str


class AuditTrailExport(BaseModel):
    """Complete session timeline."""

    opened_at: datetime
    completed_at: datetime | None = None
    total_duration_seconds: int | None = None
    steps: list[AuditStepExport]
    device_info: DeviceInfoExport
    ip_address: str | None = None


class ConsentExport(BaseModel):
    """Completion export consumed by record generators and the archive.

    Contains enough to reconstruct the whole session timeline.
    """

    reference_number: str = Field(..., examples=["ICF-2024-3F9A1C2B"])
    session_id: str
    exported_at: datetime
    patient: PatientExport
    study: StudyExport
    document: DocumentExport
    checklist: list[ChecklistItemExport]
    signature: SignatureExport
    audit: AuditTrailExport
    content_hash: str = ""
    hash_algorithm: str = "sha256"

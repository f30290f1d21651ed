"""Completion export service.

Builds the tamper-evident record of a submitted consent session: patient
and study identifiers, every page timing, every checklist attestation, the
signature record and the full audit trail, sealed with a SHA-256 hash over
the canonical JSON content.
"""

import hashlib
import json
from datetime import datetime

from econsent.schemas.export import (
    AuditStepExport,
    AuditTrailExport,
    ChecklistItemExport,
    ConsentExport,
    DeviceInfoExport,
    DocumentExport,
    PageTimingExport,
    PatientExport,
    SignatureExport,
    StudyExport,
)
from econsent.utils.time import utc_now
from econsent.workflow.models import Session

HASH_ALGORITHM = "sha256"

# Fields that describe the export itself rather than the session
_UNHASHED_FIELDS = {"exported_at", "content_hash", "hash_algorithm"}


class ExportNotReadyError(Exception):
    """Raised when exporting a session whose signature is not yet submitted."""


def compute_hash(content: str) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def format_reference(session_id: str, year: int, attempt: int = 0) -> str:
    """Format a consent reference: ICF-<year>-<8 uppercase hex chars>.

    Attempts after the first salt the digest, so a session whose first
    reference is already taken gets a different one.
    """
    seed = session_id if attempt == 0 else f"{session_id}:{attempt}"
    return f"ICF-{year}-{compute_hash(seed)[:8].upper()}"


def reference_number(session: Session) -> str:
    """Patient-facing consent reference, stable for a session."""
    year = (session.signature.submitted_at or utc_now()).year
    return format_reference(session.session_id, year)


def canonical_content(export: ConsentExport) -> str:
    """Serialize the hashed portion of an export deterministically."""
    data = export.model_dump(mode="json", exclude=_UNHASHED_FIELDS)
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def verify_export(export: ConsentExport) -> bool:
    """Check that an export's content still matches its hash."""
    return export.content_hash == compute_hash(canonical_content(export))


def build_completion_export(
    session: Session,
    exported_at: datetime | None = None,
) -> ConsentExport:
    """Build the completion export for a submitted session.

    Args:
        session: Session whose signature has been submitted
        exported_at: Export timestamp (defaults to now)

    Returns:
        ConsentExport with content_hash populated

    Raises:
        ExportNotReadyError: If the signature has not been submitted
    """
    if not session.signature.submitted:
        raise ExportNotReadyError(
            f"Session {session.session_id[:8]}... has not been submitted"
        )

    document = session.document
    signature = session.signature
    audit = session.audit

    export = ConsentExport(
        reference_number=reference_number(session),
        session_id=session.session_id,
        exported_at=exported_at or utc_now(),
        patient=PatientExport(
            patient_id=session.patient.patient_id,
            name=session.patient.name,
            language=session.patient.language,
        ),
        study=StudyExport(
            protocol_id=session.study.protocol_id,
            protocol_name=session.study.protocol_name,
            version=session.study.version,
            site_code=session.study.site_code,
            site_name=session.study.site_name,
            investigator_name=session.study.investigator_name,
            protocol_hash=session.protocol_hash,
        ),
        document=DocumentExport(
            total_pages=document.total_pages,
            pages_read=sorted(document.pages_read),
            page_timings=[
                PageTimingExport(
                    page=timing.page,
                    time_spent_seconds=timing.time_spent_seconds,
                    scroll_depth_percent=timing.scroll_depth_percent,
                    timestamp=timing.timestamp,
                )
                for timing in document.page_timings
            ],
            total_reading_time=document.total_reading_time,
            completed_at=document.completed_at,
        ),
        checklist=[
            ChecklistItemExport(
                id=item.id,
                statement=item.statement,
                audio_duration_seconds=item.audio_duration_seconds,
                audio_played=item.audio_played,
                audio_completed_at=item.audio_completed_at,
                video_recorded=item.video_recorded,
                video_duration_seconds=item.video_duration_seconds,
                video_recorded_at=item.video_recorded_at,
                video_ref=item.video_ref,
                completed=item.completed,
                completed_at=item.completed_at,
            )
            for item in session.checklist.items
        ],
        signature=SignatureExport(
            signer_name=signature.signer_name,
            mark_present=signature.mark_present,
            consent_acknowledged=signature.consent_acknowledged,
            terms_acknowledged=signature.terms_acknowledged,
            timestamp=signature.timestamp,
            submitted=signature.submitted,
            submitted_at=signature.submitted_at,
            artifact_media_type=signature.artifact.media_type if signature.artifact else None,
            artifact_data=signature.artifact.data if signature.artifact else None,
            artifact_sha256=signature.artifact.sha256 if signature.artifact else None,
        ),
        audit=AuditTrailExport(
            opened_at=audit.opened_at,
            completed_at=audit.completed_at,
            total_duration_seconds=audit.total_duration_seconds,
            steps=[
                AuditStepExport(
                    name=step.name,
                    started_at=step.started_at,
                    completed_at=step.completed_at,
                    duration_seconds=step.duration_seconds,
                )
                for step in audit.steps
            ],
            device_info=DeviceInfoExport(
                browser=audit.device_info.browser,
                os=audit.device_info.os,
                device=audit.device_info.device,
            ),
            ip_address=audit.ip_address,
        ),
        hash_algorithm=HASH_ALGORITHM,
    )
    export.content_hash = compute_hash(canonical_content(export))
    return export


def reissue_reference(export: ConsentExport, attempt: int) -> ConsentExport:
    """Return a resealed copy of an export under its next reference number."""
    year = (export.signature.submitted_at or export.exported_at).year
    reissued = export.model_copy(
        update={"reference_number": format_reference(export.session_id, year, attempt)}
    )
    reissued.content_hash = compute_hash(canonical_content(reissued))
    return reissued

"""Completion export and archived record endpoints."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from econsent.api.deps import (
    CurrentStaff,
    DbSession,
    Registry,
    get_workflow,
    link_error_exception,
    raise_for_outcome,
)
from econsent.core.logging import audit_logger
from econsent.core.security import SessionLinkError, decode_session_token
from econsent.schemas.export import ConsentExport
from econsent.services.export import build_completion_export, verify_export
from econsent.services.records import ConsentRecordService
from econsent.workflow.sequencer import Stage

router = APIRouter()


class CompletionRead(BaseModel):
    """Completed consent with its archived export."""

    reference_number: str
    content_hash: str
    archived: bool
    export: ConsentExport


class RecordRead(BaseModel):
    """Archived consent record with an integrity check."""

    reference_number: str
    session_id: str
    patient_id: str
    protocol_id: str
    content_hash: str
    integrity_verified: bool
    export: ConsentExport


@router.get("/consent/{token}/completion", response_model=CompletionRead)
async def get_completion(token: str, registry: Registry, session: DbSession) -> CompletionRead:
    """Get the completion export of a submitted session.

    The first request archives the export and releases the live session;
    later requests return the archived copy so the reference number and
    hash never change.
    """
    try:
        session_id = decode_session_token(token, registry.settings)
    except SessionLinkError as exc:
        raise link_error_exception(exc) from exc

    service = ConsentRecordService(session)
    record = await service.get_by_session(session_id)
    created = False
    if record is None:
        workflow = await get_workflow(token, registry)
        raise_for_outcome(workflow.sequencer.navigate(Stage.COMPLETE))
        record, created = await service.archive(build_completion_export(workflow.session))
        registry.complete_session(session_id)

    export = ConsentExport.model_validate(record.export)
    return CompletionRead(
        reference_number=record.reference_number,
        content_hash=record.content_hash,
        archived=created,
        export=export,
    )


@router.get("/records/{reference_number}", response_model=RecordRead)
async def get_record(
    reference_number: str,
    staff: CurrentStaff,
    session: DbSession,
) -> RecordRead:
    """Get an archived consent record by its reference number.

    Requires a staff bearer token.
    """
    record = await ConsentRecordService(session).get_by_reference(reference_number)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Consent record not found",
        )

    audit_logger.log(
        action="consent_record_viewed",
        session_id=record.session_id,
        metadata={"reference_number": reference_number, "staff": staff},
    )

    export = ConsentExport.model_validate(record.export)
    return RecordRead(
        reference_number=record.reference_number,
        session_id=record.session_id,
        patient_id=record.patient_id,
        protocol_id=record.protocol_id,
        content_hash=record.content_hash,
        integrity_verified=verify_export(export),
        export=export,
    )

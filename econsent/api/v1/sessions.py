"""Consent session endpoints: link issue, status and stage navigation."""

from fastapi import APIRouter, Request, status

from econsent.api.deps import Registry, Workflow, get_client_ip, raise_for_outcome
from econsent.schemas.consent import (
    AuthStatusRead,
    ChecklistStatusRead,
    DocumentStatusRead,
    NavigateRequest,
    OutcomeResponse,
    SessionCreate,
    SessionCreated,
    SessionStatus,
    SignatureStatusRead,
    StudyRead,
)
from econsent.workflow.models import PatientProfile
from econsent.workflow.sequencer import furthest_stage

router = APIRouter(prefix="/consent")


@router.post("/sessions", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    registry: Registry,
    request: Request,
) -> SessionCreated:
    """Open a consent session and issue the patient's consent link token."""
    workflow, token = registry.open_session(
        PatientProfile(
            patient_id=body.patient_id,
            name=body.name,
            email=body.email,
            language=body.language,
        ),
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(request),
    )
    return SessionCreated(
        token=token,
        link_expires_at=workflow.session.link_expires_at,
        stage=workflow.sequencer.current.value,
    )


@router.get("/{token}", response_model=SessionStatus)
async def get_session_status(workflow: Workflow) -> SessionStatus:
    """Get an overview of the session for the landing screen."""
    session = workflow.session
    study = session.study
    return SessionStatus(
        patient_name=session.patient.name,
        study=StudyRead(
            protocol_id=study.protocol_id,
            protocol_name=study.protocol_name,
            version=study.version,
            site_code=study.site_code,
            site_name=study.site_name,
            investigator_name=study.investigator_name,
        ),
        current_stage=workflow.sequencer.current.value,
        furthest_stage=furthest_stage(session).value,
        identity=AuthStatusRead(
            status=session.auth.status.value,
            email=session.auth.email,
            attempts_remaining=session.auth.attempts_remaining,
            expires_in=workflow.identity.expires_in,
            resend_cooldown=workflow.identity.resend_cooldown,
        ),
        document=DocumentStatusRead(
            current_page=session.document.current_page,
            total_pages=session.document.total_pages,
            pages_read=sorted(session.document.pages_read),
            percent_complete=session.document.percent_complete,
            completed=session.document.completed,
        ),
        checklist=ChecklistStatusRead(
            total_completed=session.checklist.total_completed,
            total_items=len(session.checklist.items),
            all_completed=session.checklist.all_completed,
        ),
        signature=SignatureStatusRead(
            mark_present=session.signature.mark_present,
            consent_acknowledged=session.signature.consent_acknowledged,
            terms_acknowledged=session.signature.terms_acknowledged,
            submitting=session.signature.submitting,
            submitted=session.signature.submitted,
            submitted_at=session.signature.submitted_at,
        ),
    )


@router.post("/{token}/navigate", response_model=OutcomeResponse)
async def navigate(body: NavigateRequest, workflow: Workflow) -> OutcomeResponse:
    """Move the session to another stage if its entry gate allows."""
    outcome = raise_for_outcome(workflow.sequencer.navigate(body.stage))
    return OutcomeResponse.from_outcome(outcome)

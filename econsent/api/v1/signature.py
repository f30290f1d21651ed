"""Signature capture and submission endpoints."""

from fastapi import APIRouter, Depends, status

from econsent.api.deps import Workflow, enter_stage, raise_for_outcome
from econsent.schemas.consent import AcknowledgementRequest, OutcomeResponse, StrokeRequest
from econsent.workflow.sequencer import Stage

router = APIRouter(
    prefix="/consent/{token}/signature",
    dependencies=[Depends(enter_stage(Stage.SIGN))],
)


@router.post("/strokes", response_model=OutcomeResponse)
async def add_stroke(body: StrokeRequest, workflow: Workflow) -> OutcomeResponse:
    """Register a drawn stroke of the signature mark."""
    outcome = raise_for_outcome(workflow.signature.mark_stroke(body.points))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/clear", response_model=OutcomeResponse)
async def clear_signature(workflow: Workflow) -> OutcomeResponse:
    """Erase the signature mark."""
    outcome = raise_for_outcome(workflow.signature.clear())
    return OutcomeResponse.from_outcome(outcome)


@router.post("/acknowledgements", response_model=OutcomeResponse)
async def set_acknowledgement(
    body: AcknowledgementRequest,
    workflow: Workflow,
) -> OutcomeResponse:
    """Set the consent or terms acknowledgement."""
    outcome = raise_for_outcome(workflow.signature.set_acknowledgement(body.kind, body.value))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/submit", response_model=OutcomeResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit(workflow: Workflow) -> OutcomeResponse:
    """Submit the signed consent. Completion is reported on the session status."""
    outcome = raise_for_outcome(workflow.signature.submit())
    return OutcomeResponse.from_outcome(outcome)

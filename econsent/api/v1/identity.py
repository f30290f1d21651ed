"""Identity verification endpoints."""

from fastapi import APIRouter, Depends

from econsent.api.deps import Workflow, enter_stage, raise_for_outcome
from econsent.schemas.consent import CodeVerifyRequest, EmailChallengeRequest, OutcomeResponse
from econsent.workflow.sequencer import Stage

router = APIRouter(
    prefix="/consent/{token}/identity",
    dependencies=[Depends(enter_stage(Stage.VERIFY_IDENTITY))],
)


@router.post("/challenge", response_model=OutcomeResponse)
async def send_challenge(body: EmailChallengeRequest, workflow: Workflow) -> OutcomeResponse:
    """Send a one-time verification code to the patient's email."""
    outcome = raise_for_outcome(workflow.identity.send_challenge(body.email))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/resend", response_model=OutcomeResponse)
async def resend_code(workflow: Workflow) -> OutcomeResponse:
    """Send a fresh code once the resend cooldown has passed."""
    outcome = raise_for_outcome(workflow.identity.resend())
    return OutcomeResponse.from_outcome(outcome)


@router.post("/verify", response_model=OutcomeResponse)
async def verify_code(body: CodeVerifyRequest, workflow: Workflow) -> OutcomeResponse:
    """Verify the code entered by the patient."""
    outcome = raise_for_outcome(workflow.identity.verify_code(body.code))
    return OutcomeResponse.from_outcome(outcome)

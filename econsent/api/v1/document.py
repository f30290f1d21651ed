"""Consent document reading endpoints."""

from fastapi import APIRouter, Depends

from econsent.api.deps import Workflow, enter_stage, raise_for_outcome
from econsent.schemas.consent import DocumentPageRead, OutcomeResponse, ScrollReport
from econsent.workflow.sequencer import Stage

router = APIRouter(
    prefix="/consent/{token}/document",
    dependencies=[Depends(enter_stage(Stage.READ_DOCUMENT))],
)


@router.get("", response_model=DocumentPageRead)
async def get_current_page(workflow: Workflow) -> DocumentPageRead:
    """Get the current page and whether it may be advanced past."""
    gate = workflow.document
    progress = gate.state
    page = gate.protocol.page(progress.current_page)
    outcome = gate.gate()
    return DocumentPageRead(
        page=page.page,
        total_pages=progress.total_pages,
        title=page.title,
        content=page.content,
        minimum_seconds=gate.minimum_dwell(page.page),
        time_on_page=progress.time_on_page,
        scrolled_to_bottom=progress.scrolled_to_bottom,
        can_advance=outcome.allowed,
        gate=OutcomeResponse.from_outcome(outcome),
        completed=progress.completed,
    )


@router.post("/scroll", response_model=OutcomeResponse)
async def report_scroll(body: ScrollReport, workflow: Workflow) -> OutcomeResponse:
    """Report how far down the current page the patient has scrolled."""
    outcome = raise_for_outcome(workflow.document.report_scroll(body.depth_percent))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/advance", response_model=OutcomeResponse)
async def advance(workflow: Workflow) -> OutcomeResponse:
    """Advance to the next page, or complete the document on the last page."""
    outcome = raise_for_outcome(workflow.document.advance())
    return OutcomeResponse.from_outcome(outcome)


@router.post("/retreat", response_model=OutcomeResponse)
async def retreat(workflow: Workflow) -> OutcomeResponse:
    """Go back one page."""
    outcome = raise_for_outcome(workflow.document.retreat())
    return OutcomeResponse.from_outcome(outcome)

"""Comprehension checklist endpoints."""

from fastapi import APIRouter, Depends

from econsent.api.deps import Workflow, enter_stage, raise_for_outcome
from econsent.schemas.consent import ChecklistItemRead, ChecklistRead, OutcomeResponse
from econsent.workflow.sequencer import Stage

router = APIRouter(
    prefix="/consent/{token}/checklist",
    dependencies=[Depends(enter_stage(Stage.COMPREHENSION_CHECKLIST))],
)


@router.get("", response_model=ChecklistRead)
async def get_checklist(workflow: Workflow) -> ChecklistRead:
    """Get every statement with its listen/record state."""
    engine = workflow.checklist
    progress = engine.state
    return ChecklistRead(
        items=[
            ChecklistItemRead(
                id=item.id,
                statement=item.statement,
                audio_url=item.audio_url,
                audio_duration_seconds=item.audio_duration_seconds,
                audio_played=item.audio_played,
                playing=engine.playing_item == item.id,
                recording=engine.recording_item == item.id,
                clip_held=engine.held_clip(item.id) is not None,
                video_recorded=item.video_recorded,
                completed=item.completed,
            )
            for item in progress.items
        ],
        total_completed=progress.total_completed,
        all_completed=progress.all_completed,
        recording_elapsed=engine.recording_elapsed,
    )


@router.post("/{item_id}/play", response_model=OutcomeResponse)
async def play_audio(item_id: int, workflow: Workflow) -> OutcomeResponse:
    """Start the explanatory audio for a statement."""
    outcome = raise_for_outcome(workflow.checklist.play_audio(item_id))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/{item_id}/recording/start", response_model=OutcomeResponse)
async def start_recording(item_id: int, workflow: Workflow) -> OutcomeResponse:
    """Start the video confirmation once the audio has been heard."""
    outcome = raise_for_outcome(workflow.checklist.start_recording(item_id))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/{item_id}/recording/stop", response_model=OutcomeResponse)
async def stop_recording(
    item_id: int,
    workflow: Workflow,
    media_ref: str | None = None,
) -> OutcomeResponse:
    """Stop recording and hold the clip for review."""
    outcome = raise_for_outcome(workflow.checklist.stop_recording(item_id, media_ref))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/{item_id}/accept", response_model=OutcomeResponse)
async def accept_clip(item_id: int, workflow: Workflow) -> OutcomeResponse:
    """Accept the held clip and complete the statement."""
    outcome = raise_for_outcome(workflow.checklist.accept_clip(item_id))
    return OutcomeResponse.from_outcome(outcome)


@router.post("/{item_id}/retake", response_model=OutcomeResponse)
async def retake_clip(item_id: int, workflow: Workflow) -> OutcomeResponse:
    """Discard the held clip so the statement can be recorded again."""
    outcome = raise_for_outcome(workflow.checklist.retake_clip(item_id))
    return OutcomeResponse.from_outcome(outcome)

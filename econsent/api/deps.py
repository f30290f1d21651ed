"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from econsent.core.security import ErrorReason, SessionLinkError, decode_staff_token
from econsent.db.session import get_db
from econsent.services.workflow import ConsentWorkflow, WorkflowRegistry
from econsent.workflow.outcomes import ErrorKind, Outcome
from econsent.workflow.sequencer import Stage

LINK_ERROR_STATUS = {
    ErrorReason.INVALID: status.HTTP_404_NOT_FOUND,
    ErrorReason.EXPIRED: status.HTTP_410_GONE,
    ErrorReason.ALREADY_COMPLETED: status.HTTP_409_CONFLICT,
    ErrorReason.GENERIC: status.HTTP_400_BAD_REQUEST,
}

OUTCOME_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.AUTH: status.HTTP_403_FORBIDDEN,
    ErrorKind.GATE_UNSATISFIED: status.HTTP_409_CONFLICT,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
}


def get_registry(request: Request) -> WorkflowRegistry:
    """Return the application's workflow registry."""
    return request.app.state.registry


Registry = Annotated[WorkflowRegistry, Depends(get_registry)]

# Security scheme for staff endpoints
security = HTTPBearer(auto_error=False)


async def get_current_staff(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    registry: Registry,
) -> str:
    """Get the staff member behind a bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    staff_id = None
    if credentials:
        staff_id = decode_staff_token(credentials.credentials, registry.settings)

    if not staff_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return staff_id


CurrentStaff = Annotated[str, Depends(get_current_staff)]


def link_error_exception(exc: SessionLinkError) -> HTTPException:
    """Map a consent link failure to the error route."""
    return HTTPException(
        status_code=LINK_ERROR_STATUS[exc.reason],
        detail={
            "error_reason": exc.reason.value,
            "title": exc.reason.title,
            "description": exc.reason.description,
            "action": exc.reason.action,
            "redirect": Stage.ERROR.value,
        },
    )


async def get_workflow(token: str, registry: Registry) -> ConsentWorkflow:
    """Resolve the consent link token in the path.

    Raises:
        HTTPException: 404 for invalid links, 410 for expired links
    """
    try:
        return registry.resolve(token)
    except SessionLinkError as exc:
        raise link_error_exception(exc) from exc


Workflow = Annotated[ConsentWorkflow, Depends(get_workflow)]


def raise_for_outcome(outcome: Outcome) -> Outcome:
    """Raise an HTTPException for a refused outcome, return it otherwise."""
    if outcome.allowed:
        return outcome
    if outcome.details.get("error_reason") == ErrorReason.ALREADY_COMPLETED.value:
        raise link_error_exception(SessionLinkError(ErrorReason.ALREADY_COMPLETED))
    raise HTTPException(
        status_code=OUTCOME_STATUS[outcome.kind],
        detail=outcome.to_dict(),
    )


def enter_stage(stage: Stage):
    """Create a dependency that moves the session to a stage before acting.

    Usage:
        @router.post("/advance", dependencies=[Depends(enter_stage(Stage.READ_DOCUMENT))])
    """

    async def stage_entry(workflow: Workflow) -> ConsentWorkflow:
        raise_for_outcome(workflow.sequencer.navigate(stage))
        return workflow

    return stage_entry


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request.

    Args:
        request: FastAPI request

    Returns:
        Client IP address or None
    """
    # Check for forwarded header (when behind proxy)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


DbSession = Annotated[AsyncSession, Depends(get_db)]

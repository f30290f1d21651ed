"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from econsent.api.v1 import checklist, completion, document, health, identity, sessions, signature

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Archived records and completion export
api_router.include_router(
    completion.router,
    tags=["completion"],
)

# Consent sessions
api_router.include_router(
    sessions.router,
    tags=["consent"],
)

# Stages
api_router.include_router(
    identity.router,
    tags=["identity"],
)

api_router.include_router(
    document.router,
    tags=["document"],
)

api_router.include_router(
    checklist.router,
    tags=["checklist"],
)

api_router.include_router(
    signature.router,
    tags=["signature"],
)

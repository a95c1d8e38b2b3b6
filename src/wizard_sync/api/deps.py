"""FastAPI dependencies for authentication and app-scoped services.

Services are built once in the application lifespan and stored on
``app.state``; these helpers fetch them and answer 503 while they are
missing (startup not finished, or a test app without a lifespan).
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.wizard_sync.core.security import verify_token
from src.wizard_sync.onboarding.repository import SyncRunRepository, WizardRepository
from src.wizard_sync.sync.queue import SyncQueue


async def get_current_user_id(request: Request) -> str:
    """Return the org user id (JWT ``sub``) of the authenticated caller.

    Raises:
        HTTPException(401): Missing or invalid bearer token.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[7:])
        return str(payload["sub"])

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _from_state(request: Request, name: str, label: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return value


def get_sync_queue(request: Request) -> SyncQueue:
    """Retrieve the SyncQueue from app.state, 503 if not available."""
    return _from_state(request, "sync_queue", "Sync queue")


def get_wizard_repository(request: Request) -> WizardRepository:
    return _from_state(request, "wizard_repository", "Wizard repository")


def get_sync_run_repository(request: Request) -> SyncRunRepository:
    return _from_state(request, "sync_run_repository", "Sync run repository")

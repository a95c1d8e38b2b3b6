"""Wizard submission, manual re-sync and sync status endpoints.

``POST /onboard/submit`` is public: the customer holds only the wizard's
public token. Every other route requires a dashboard JWT and is scoped to
wizards owned by its subject.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.wizard_sync.api.deps import (
    get_current_user_id,
    get_sync_queue,
    get_sync_run_repository,
    get_wizard_repository,
)
from src.wizard_sync.onboarding.repository import SyncRunRepository, WizardRepository
from src.wizard_sync.onboarding.schemas import SyncRunRead, WizardSummary
from src.wizard_sync.sync.errors import WizardNotFoundError
from src.wizard_sync.sync.queue import SyncQueue

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["wizards"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class SubmitWizardRequest(BaseModel):
    token: str = Field(min_length=1)


class SubmitWizardResponse(BaseModel):
    ok: bool = True
    submitted_at: str
    queued: bool


class QueueSyncResponse(BaseModel):
    queued: bool


class SyncStatusResponse(BaseModel):
    """Latest sync run of a wizard."""

    status: str
    diff: dict[str, Any] | None = None
    error: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class WizardListItem(BaseModel):
    id: str
    status: str
    location_id: str
    template_name: str = ""
    submitted_at: str | None = None
    public_token: str | None = None


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _run_to_response(run: SyncRunRead) -> SyncStatusResponse:
    return SyncStatusResponse(
        status=run.status.value,
        diff=run.diff,
        error=run.error,
        started_at=run.started_at.isoformat() if run.started_at else None,
        finished_at=run.finished_at.isoformat() if run.finished_at else None,
    )


def _summary_to_item(summary: WizardSummary) -> WizardListItem:
    return WizardListItem(
        id=summary.id,
        status=summary.status.value,
        location_id=summary.location_id,
        template_name=summary.template_name,
        submitted_at=summary.submitted_at.isoformat() if summary.submitted_at else None,
        public_token=summary.public_token,
    )


async def _ensure_owned(wizards: WizardRepository, wizard_id: str, user_id: str) -> None:
    if not await wizards.is_owned_by(wizard_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(WizardNotFoundError(wizard_id)))


# ── Public Submission ────────────────────────────────────────────────────────


@router.post("/onboard/submit", response_model=SubmitWizardResponse)
async def submit_wizard(
    body: SubmitWizardRequest,
    wizards: WizardRepository = Depends(get_wizard_repository),
    queue: SyncQueue = Depends(get_sync_queue),
) -> SubmitWizardResponse:
    """Mark a wizard submitted (by public token) and queue its CRM sync."""
    wizard_id = await wizards.get_wizard_id_by_token(body.token)
    if wizard_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wizard not found")

    submitted_at = await wizards.mark_submitted(wizard_id)
    queued = await queue.enqueue(wizard_id)
    logger.info("wizard.submitted", wizard_id=wizard_id, queued=queued)

    return SubmitWizardResponse(submitted_at=submitted_at.isoformat(), queued=queued)


# ── Dashboard ────────────────────────────────────────────────────────────────


@router.get("/wizards", response_model=list[WizardListItem])
async def list_wizards(
    user_id: str = Depends(get_current_user_id),
    wizards: WizardRepository = Depends(get_wizard_repository),
) -> list[WizardListItem]:
    """List the caller's wizards, newest first."""
    summaries = await wizards.list_wizards(user_id)
    return [_summary_to_item(summary) for summary in summaries]


@router.post(
    "/wizards/{wizard_id}/sync",
    response_model=QueueSyncResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_wizard_sync(
    wizard_id: str,
    user_id: str = Depends(get_current_user_id),
    wizards: WizardRepository = Depends(get_wizard_repository),
    queue: SyncQueue = Depends(get_sync_queue),
) -> QueueSyncResponse:
    """Queue a manual re-sync of a wizard the caller owns."""
    await _ensure_owned(wizards, wizard_id, user_id)
    queued = await queue.enqueue(wizard_id)
    logger.info("wizard.resync_requested", wizard_id=wizard_id, user_id=user_id, queued=queued)
    return QueueSyncResponse(queued=queued)


@router.get("/wizards/{wizard_id}/diff", response_model=SyncStatusResponse)
async def get_wizard_diff(
    wizard_id: str,
    user_id: str = Depends(get_current_user_id),
    wizards: WizardRepository = Depends(get_wizard_repository),
    runs: SyncRunRepository = Depends(get_sync_run_repository),
) -> SyncStatusResponse:
    """Return the latest sync run for a wizard the caller owns."""
    await _ensure_owned(wizards, wizard_id, user_id)
    run = await runs.get_latest_run(wizard_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No sync runs yet")
    return _run_to_response(run)

"""Onboarding repositories -- async data access for wizards, connections and sync runs.

All repositories use the session_factory callable pattern: the factory is an
async generator yielding AsyncSession instances (core.database.get_session in
production, an in-memory double in tests). Rows are converted to pydantic
read schemas at the boundary so callers never hold ORM objects.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.wizard_sync.onboarding.models import (
    OnboardingStepModel,
    OnboardingTemplateModel,
    OnboardingWizardModel,
    SavedLocationModel,
    SyncRunModel,
)
from src.wizard_sync.onboarding.schemas import (
    SyncRunRead,
    SyncRunStatus,
    WizardRead,
    WizardStatus,
    WizardStep,
    WizardSummary,
    WizardTemplate,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_step(model: OnboardingStepModel) -> WizardStep:
    payload = model.payload or {}
    return WizardStep(
        step_key=model.step_key,
        idx=model.idx or 0,
        blocks=payload.get("blocks") or {},
        completed_at=model.completed_at,
    )


def _model_to_sync_run(model: SyncRunModel) -> SyncRunRead:
    return SyncRunRead(
        id=str(model.id),
        wizard_id=str(model.wizard_id),
        status=SyncRunStatus(model.status),
        started_at=model.started_at,
        finished_at=model.finished_at,
        diff=model.diff,
        error=model.error,
    )


# ── Wizards ─────────────────────────────────────────────────────────────────


class WizardRepository:
    """Load wizards with their template and answers; update wizard status.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_wizard(self, wizard_id: str) -> WizardRead | None:
        """Load a wizard with its template definition and per-page steps.

        Returns:
            WizardRead if found, None otherwise.
        """
        wizard_uuid = _as_uuid(wizard_id)
        if wizard_uuid is None:
            return None

        async for session in self._session_factory():
            wizard = await session.get(OnboardingWizardModel, wizard_uuid)
            if wizard is None:
                return None

            template = None
            if wizard.template_id is not None:
                template_model = await session.get(OnboardingTemplateModel, wizard.template_id)
                if template_model is not None:
                    template = WizardTemplate.from_definition(
                        template_model.definition,
                        template_id=str(template_model.id),
                        name=template_model.name,
                    )

            result = await session.execute(
                select(OnboardingStepModel)
                .where(OnboardingStepModel.wizard_id == wizard_uuid)
                .order_by(OnboardingStepModel.idx)
            )
            steps = [_model_to_step(step) for step in result.scalars().all()]

            return WizardRead(
                id=str(wizard.id),
                org_user_id=wizard.org_user_id,
                location_id=wizard.location_id,
                status=WizardStatus(wizard.status),
                public_token=wizard.public_token,
                submitted_at=wizard.submitted_at,
                template=template,
                steps=steps,
            )

    async def get_wizard_id_by_token(self, public_token: str) -> str | None:
        """Resolve a customer-facing public token to a wizard id."""
        async for session in self._session_factory():
            result = await session.execute(
                select(OnboardingWizardModel.id).where(
                    OnboardingWizardModel.public_token == public_token
                )
            )
            wizard_id = result.scalar_one_or_none()
            return str(wizard_id) if wizard_id is not None else None

    async def is_owned_by(self, wizard_id: str, org_user_id: str) -> bool:
        wizard_uuid = _as_uuid(wizard_id)
        if wizard_uuid is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(
                select(OnboardingWizardModel.id).where(
                    OnboardingWizardModel.id == wizard_uuid,
                    OnboardingWizardModel.org_user_id == org_user_id,
                )
            )
            return result.scalar_one_or_none() is not None

    async def list_wizards(self, org_user_id: str) -> list[WizardSummary]:
        """List an owner's wizards, newest first, with template names."""
        async for session in self._session_factory():
            result = await session.execute(
                select(OnboardingWizardModel, OnboardingTemplateModel.name)
                .outerjoin(
                    OnboardingTemplateModel,
                    OnboardingTemplateModel.id == OnboardingWizardModel.template_id,
                )
                .where(OnboardingWizardModel.org_user_id == org_user_id)
                .order_by(OnboardingWizardModel.created_at.desc())
            )
            return [
                WizardSummary(
                    id=str(wizard.id),
                    status=WizardStatus(wizard.status),
                    location_id=wizard.location_id,
                    template_name=template_name or "",
                    submitted_at=wizard.submitted_at,
                    public_token=wizard.public_token,
                )
                for wizard, template_name in result.all()
            ]

    async def update_status(self, wizard_id: str, status: WizardStatus) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(OnboardingWizardModel)
                .where(OnboardingWizardModel.id == uuid.UUID(wizard_id))
                .values(status=status.value)
            )
            await session.commit()

    async def mark_submitted(self, wizard_id: str) -> datetime:
        """Set status ``submitted`` and stamp ``submitted_at``."""
        submitted_at = datetime.now(timezone.utc)
        async for session in self._session_factory():
            await session.execute(
                update(OnboardingWizardModel)
                .where(OnboardingWizardModel.id == uuid.UUID(wizard_id))
                .values(status=WizardStatus.SUBMITTED.value, submitted_at=submitted_at)
            )
            await session.commit()
        return submitted_at


# ── Saved Connections ───────────────────────────────────────────────────────


class ConnectionRepository:
    """Read and update the encoded credential of a saved CRM location."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_token(self, user_id: str, location_id: str) -> str | None:
        """Return the raw token column, or None if the connection does not exist."""
        async for session in self._session_factory():
            result = await session.execute(
                select(SavedLocationModel.token).where(
                    SavedLocationModel.user_id == user_id,
                    SavedLocationModel.location_id == location_id,
                )
            )
            return result.scalar_one_or_none()

    async def update_token(
        self, user_id: str, location_id: str, token: str, last_used: datetime | None = None
    ) -> None:
        """Persist a re-encoded credential. Last write wins; no row locking."""
        async for session in self._session_factory():
            await session.execute(
                update(SavedLocationModel)
                .where(
                    SavedLocationModel.user_id == user_id,
                    SavedLocationModel.location_id == location_id,
                )
                .values(token=token, last_used=last_used or datetime.now(timezone.utc))
            )
            await session.commit()


# ── Sync Runs ───────────────────────────────────────────────────────────────


class SyncRunRepository:
    """Append-only persistence for sync run audit rows."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_run(self, wizard_id: str) -> str:
        """Insert a pending run and return its id."""
        async for session in self._session_factory():
            model = SyncRunModel(
                wizard_id=uuid.UUID(wizard_id),
                status=SyncRunStatus.PENDING.value,
                started_at=datetime.now(timezone.utc),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return str(model.id)

    async def complete_run(
        self,
        run_id: str,
        status: SyncRunStatus,
        diff: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        """Finalise a pending run. Returns False if it was already finalised."""
        async for session in self._session_factory():
            result = await session.execute(
                update(SyncRunModel)
                .where(
                    SyncRunModel.id == uuid.UUID(run_id),
                    SyncRunModel.status == SyncRunStatus.PENDING.value,
                )
                .values(
                    status=status.value,
                    finished_at=datetime.now(timezone.utc),
                    diff=diff,
                    error=error,
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def get_latest_run(self, wizard_id: str) -> SyncRunRead | None:
        wizard_uuid = _as_uuid(wizard_id)
        if wizard_uuid is None:
            return None
        async for session in self._session_factory():
            result = await session.execute(
                select(SyncRunModel)
                .where(SyncRunModel.wizard_id == wizard_uuid)
                .order_by(SyncRunModel.started_at.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return _model_to_sync_run(model) if model is not None else None

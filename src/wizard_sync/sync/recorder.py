"""Sync run audit trail: one pending row per run, finalised exactly once."""

from __future__ import annotations

import structlog

from src.wizard_sync.onboarding.repository import SyncRunRepository, WizardRepository
from src.wizard_sync.onboarding.schemas import SyncRunStatus, WizardStatus
from src.wizard_sync.sync.errors import RunStartError
from src.wizard_sync.sync.schemas import SyncDiff

logger = structlog.get_logger(__name__)


class RunRecorder:
    """Persist run start, success and failure along with the wizard's status.

    Args:
        runs: Sync run repository.
        wizards: Wizard repository (terminal status updates).
    """

    def __init__(self, runs: SyncRunRepository, wizards: WizardRepository) -> None:
        self._runs = runs
        self._wizards = wizards

    async def start(self, wizard_id: str) -> str:
        """Insert a pending run row and return its id.

        Raises:
            RunStartError: The row could not be inserted.
        """
        try:
            run_id = await self._runs.create_run(wizard_id)
        except Exception as exc:
            logger.error("sync.run_start_failed", wizard_id=wizard_id, error=str(exc))
            raise RunStartError(f"Could not record sync run start for wizard {wizard_id}") from exc

        logger.info("sync.run_started", wizard_id=wizard_id, run_id=run_id)
        return run_id

    async def finish_success(self, run_id: str, wizard_id: str, diff: SyncDiff) -> None:
        """Mark the run ``success`` with its diff and the wizard ``synced``."""
        updated = await self._runs.complete_run(
            run_id, SyncRunStatus.SUCCESS, diff=diff.to_record()
        )
        if not updated:
            logger.warning("sync.run_already_finished", run_id=run_id, wizard_id=wizard_id)
            return
        await self._wizards.update_status(wizard_id, WizardStatus.SYNCED)
        logger.info("sync.run_succeeded", wizard_id=wizard_id, run_id=run_id)

    async def finish_failure(self, run_id: str, wizard_id: str, error: str) -> None:
        """Mark the run ``failed`` with the error message and the wizard ``error``."""
        updated = await self._runs.complete_run(run_id, SyncRunStatus.FAILED, error=error)
        if not updated:
            logger.warning("sync.run_already_finished", run_id=run_id, wizard_id=wizard_id)
            return
        await self._wizards.update_status(wizard_id, WizardStatus.ERROR)
        logger.error("sync.run_failed", wizard_id=wizard_id, run_id=run_id, error=error)

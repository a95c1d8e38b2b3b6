"""Wizard-to-CRM synchronisation engine.

Exports:
    SyncQueue: Sequential in-process queue of wizard ids.
    WizardSyncService: Full per-wizard workflow (token, payload, execute, record).
    SyncExecutor: Applies an operation payload to the CRM and builds the diff.
    RunRecorder: Sync run audit persistence.
    build_payload: Pure template + answers -> operations projection.
    run_with_backoff: Exponential-delay retry wrapper.
"""

from src.wizard_sync.sync.backoff import run_with_backoff
from src.wizard_sync.sync.errors import (
    ConnectionNotFoundError,
    RunStartError,
    WizardNotFoundError,
    WizardSyncError,
)
from src.wizard_sync.sync.executor import SyncExecutor
from src.wizard_sync.sync.payload import build_payload
from src.wizard_sync.sync.queue import SyncQueue
from src.wizard_sync.sync.recorder import RunRecorder
from src.wizard_sync.sync.schemas import SyncDiff, SyncOperationPayload
from src.wizard_sync.sync.service import WizardSyncService

__all__ = [
    "ConnectionNotFoundError",
    "RunRecorder",
    "RunStartError",
    "SyncDiff",
    "SyncExecutor",
    "SyncOperationPayload",
    "SyncQueue",
    "WizardNotFoundError",
    "WizardSyncError",
    "WizardSyncService",
    "build_payload",
    "run_with_backoff",
]

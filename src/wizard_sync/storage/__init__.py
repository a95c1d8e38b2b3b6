"""Wizard upload storage access."""

from src.wizard_sync.storage.client import (
    FileStorage,
    StorageNotConfiguredError,
    SupabaseStorageClient,
)

__all__ = ["FileStorage", "StorageNotConfiguredError", "SupabaseStorageClient"]

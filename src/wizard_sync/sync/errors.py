"""Sync workflow exceptions.

Fatal errors (wizard or connection missing, run row not insertable) abort a
sync before any CRM call is made. CRM-side failures are plain
``httpx.HTTPError`` instances and are retried by the backoff executor.
"""

from __future__ import annotations


class WizardSyncError(Exception):
    """Base class for sync workflow failures."""


class WizardNotFoundError(WizardSyncError):
    def __init__(self, wizard_id: str) -> None:
        super().__init__(f"Wizard not found: {wizard_id}")
        self.wizard_id = wizard_id


class ConnectionNotFoundError(WizardSyncError):
    """No saved connection (and therefore no credential) for the wizard's location."""

    def __init__(self, user_id: str, location_id: str) -> None:
        super().__init__(f"Location token not found for location {location_id}")
        self.user_id = user_id
        self.location_id = location_id


class RunStartError(WizardSyncError):
    """The pending sync run row could not be inserted."""

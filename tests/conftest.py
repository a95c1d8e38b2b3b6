"""Shared fixtures for the sync engine tests.

No database or network is used anywhere in the suite: repositories are
in-memory doubles and HTTP goes through httpx.MockTransport.
"""

from __future__ import annotations

import pytest

from helpers import (
    InMemoryConnectionRepository,
    InMemorySyncRunRepository,
    InMemoryWizardRepository,
    RecordingSleep,
)


@pytest.fixture
def wizard_repo() -> InMemoryWizardRepository:
    return InMemoryWizardRepository()


@pytest.fixture
def connection_repo() -> InMemoryConnectionRepository:
    return InMemoryConnectionRepository()


@pytest.fixture
def run_repo() -> InMemorySyncRunRepository:
    return InMemorySyncRunRepository()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()

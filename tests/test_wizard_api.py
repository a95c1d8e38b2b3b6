"""Integration tests for wizard submission, re-sync and sync status endpoints.

Uses the in-memory repositories and a recording queue on app.state, with
httpx AsyncClient over ASGITransport. Auth is overridden except in the
tests that exercise real JWT verification.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from helpers import (
    ORG_USER_ID,
    InMemorySyncRunRepository,
    InMemoryWizardRepository,
    make_wizard,
)

from src.wizard_sync.config import get_settings
from src.wizard_sync.onboarding.schemas import SyncRunStatus, WizardStatus


class RecordingQueue:
    """SyncQueue stand-in that records every enqueued id."""

    def __init__(self) -> None:
        self.enqueued: list[str] = []

    @property
    def pending(self) -> list[str]:
        return list(self.enqueued)

    @property
    def is_busy(self) -> bool:
        return False

    async def enqueue(self, wizard_id: str) -> bool:
        self.enqueued.append(wizard_id)
        return True


def _make_app():
    """Create a minimal FastAPI app with the v1 and health routers."""
    from fastapi import FastAPI

    from src.wizard_sync.api.v1 import health
    from src.wizard_sync.api.v1.router import router as v1_router

    app = FastAPI()
    app.include_router(health.router)
    app.include_router(v1_router)
    return app


def _mock_current_user_id() -> str:
    return ORG_USER_ID


@pytest_asyncio.fixture
async def api():
    """Client plus the wizard repo, run repo and queue behind it."""
    from src.wizard_sync.api.deps import get_current_user_id

    app = _make_app()
    wizards = InMemoryWizardRepository()
    runs = InMemorySyncRunRepository()
    queue = RecordingQueue()

    app.dependency_overrides[get_current_user_id] = _mock_current_user_id
    app.state.wizard_repository = wizards
    app.state.sync_run_repository = runs
    app.state.sync_queue = queue

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, wizards, runs, queue


# ── Public Submission ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_submit_marks_submitted_and_queues(api):
    """POST /api/v1/onboard/submit -> wizard submitted and sync queued."""
    client, wizards, _, queue = api
    wizard = wizards.add(make_wizard([], public_token="public-abc"))

    response = await client.post("/api/v1/onboard/submit", json={"token": "public-abc"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["queued"] is True
    assert data["submitted_at"]
    assert queue.enqueued == [wizard.id]
    assert wizards.wizards[wizard.id].status == WizardStatus.SUBMITTED
    assert wizards.wizards[wizard.id].submitted_at is not None


@pytest.mark.asyncio
async def test_submit_twice_queues_two_runs(api):
    client, wizards, _, queue = api
    wizard = wizards.add(make_wizard([], public_token="public-abc"))

    await client.post("/api/v1/onboard/submit", json={"token": "public-abc"})
    response = await client.post("/api/v1/onboard/submit", json={"token": "public-abc"})

    assert response.status_code == 200
    assert response.json()["queued"] is True
    assert queue.enqueued == [wizard.id, wizard.id]


@pytest.mark.asyncio
async def test_submit_unknown_token_404(api):
    client, _, _, queue = api

    response = await client.post("/api/v1/onboard/submit", json={"token": "nope"})

    assert response.status_code == 404
    assert queue.enqueued == []


@pytest.mark.asyncio
async def test_submit_requires_token(api):
    client, _, _, _ = api

    response = await client.post("/api/v1/onboard/submit", json={"token": ""})

    assert response.status_code == 422


# ── Dashboard ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_only_own_wizards(api):
    """GET /api/v1/wizards -> only wizards owned by the caller."""
    client, wizards, _, _ = api
    mine = wizards.add(make_wizard([]))
    wizards.add(make_wizard([], org_user_id="someone-else"))

    response = await client.get("/api/v1/wizards")

    assert response.status_code == 200
    data = response.json()
    assert [item["id"] for item in data] == [mine.id]
    assert data[0]["status"] == "submitted"
    assert data[0]["template_name"] == "Onboarding"


@pytest.mark.asyncio
async def test_manual_sync_accepted(api):
    """POST /api/v1/wizards/{id}/sync -> 202 and queued."""
    client, wizards, _, queue = api
    wizard = wizards.add(make_wizard([]))

    response = await client.post(f"/api/v1/wizards/{wizard.id}/sync")

    assert response.status_code == 202
    assert response.json() == {"queued": True}
    assert queue.enqueued == [wizard.id]


@pytest.mark.asyncio
async def test_manual_sync_not_owner_404(api):
    client, wizards, _, queue = api
    wizard = wizards.add(make_wizard([], org_user_id="someone-else"))

    response = await client.post(f"/api/v1/wizards/{wizard.id}/sync")

    assert response.status_code == 404
    assert queue.enqueued == []


@pytest.mark.asyncio
async def test_diff_returns_latest_run(api):
    """GET /api/v1/wizards/{id}/diff -> most recent run with its diff."""
    client, wizards, runs, _ = api
    wizard = wizards.add(make_wizard([]))

    first = await runs.create_run(wizard.id)
    await runs.complete_run(first, SyncRunStatus.FAILED, error="Server error '500'")
    second = await runs.create_run(wizard.id)
    runs.runs[second] = runs.runs[second].model_copy(
        update={"started_at": datetime.now(timezone.utc) + timedelta(seconds=5)}
    )
    await runs.complete_run(second, SyncRunStatus.SUCCESS, diff={"tags": [{"blockId": "t1"}]})

    response = await client.get(f"/api/v1/wizards/{wizard.id}/diff")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["diff"] == {"tags": [{"blockId": "t1"}]}
    assert data["error"] is None
    assert data["finished_at"] is not None


@pytest.mark.asyncio
async def test_diff_without_runs_404(api):
    client, wizards, _, _ = api
    wizard = wizards.add(make_wizard([]))

    response = await client.get(f"/api/v1/wizards/{wizard.id}/diff")

    assert response.status_code == 404
    assert response.json()["detail"] == "No sync runs yet"


@pytest.mark.asyncio
async def test_diff_not_owner_404(api):
    client, wizards, runs, _ = api
    wizard = wizards.add(make_wizard([], org_user_id="someone-else"))
    await runs.create_run(wizard.id)

    response = await client.get(f"/api/v1/wizards/{wizard.id}/diff")

    assert response.status_code == 404


# ── Auth ─────────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def unauthenticated_api():
    """Client without auth overrides so real JWT verification runs."""
    app = _make_app()
    wizards = InMemoryWizardRepository()
    app.state.wizard_repository = wizards
    app.state.sync_run_repository = InMemorySyncRunRepository()
    app.state.sync_queue = RecordingQueue()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, wizards


def _jwt(claims: dict) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.mark.asyncio
async def test_missing_token_401(unauthenticated_api):
    client, _ = unauthenticated_api

    response = await client.get("/api/v1/wizards")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_401(unauthenticated_api):
    client, _ = unauthenticated_api

    response = await client.get(
        "/api/v1/wizards", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_type_rejected(unauthenticated_api):
    client, _ = unauthenticated_api
    token = _jwt({"sub": ORG_USER_ID, "type": "refresh"})

    response = await client.get("/api/v1/wizards", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_valid_token_scopes_to_subject(unauthenticated_api):
    client, wizards = unauthenticated_api
    mine = wizards.add(make_wizard([]))
    wizards.add(make_wizard([], org_user_id="someone-else"))
    token = _jwt({"sub": ORG_USER_ID, "type": "access"})

    response = await client.get("/api/v1/wizards", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [mine.id]


@pytest.mark.asyncio
async def test_submit_is_public(unauthenticated_api):
    client, wizards = unauthenticated_api
    wizards.add(make_wizard([], public_token="public-abc"))

    response = await client.post("/api/v1/onboard/submit", json={"token": "public-abc"})

    assert response.status_code == 200


# ── 503 / Health ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_wizard_api_503_when_not_initialized():
    """app.state.sync_queue = None -> 503."""
    from src.wizard_sync.api.deps import get_current_user_id

    app = _make_app()
    app.dependency_overrides[get_current_user_id] = _mock_current_user_id
    wizards = InMemoryWizardRepository()
    wizard = wizards.add(make_wizard([]))
    app.state.wizard_repository = wizards
    app.state.sync_queue = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(f"/api/v1/wizards/{wizard.id}/sync")
        assert response.status_code == 503
        assert "not initialized" in response.json()["detail"]


@pytest.mark.asyncio
async def test_health_liveness(api):
    client, _, _, _ = api

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"

"""Test doubles and builders shared across the sync engine tests.

Provides:
- In-memory WizardRepository, ConnectionRepository and SyncRunRepository
- make_wizard(): WizardRead builder from a page list and per-page answers
- RecordingSleep: injectable sleep capturing requested delays
- crm_transport(): httpx.MockTransport routing (method, path) to handlers
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from src.wizard_sync.onboarding.schemas import (
    SyncRunRead,
    SyncRunStatus,
    WizardRead,
    WizardStatus,
    WizardStep,
    WizardSummary,
    WizardTemplate,
)

ORG_USER_ID = "user-123"
LOCATION_ID = "loc-abc"


# ── In-Memory Repositories ───────────────────────────────────────────────────


class InMemoryWizardRepository:
    """In-memory WizardRepository for testing without database."""

    def __init__(self) -> None:
        self.wizards: dict[str, WizardRead] = {}
        self.status_updates: list[tuple[str, WizardStatus]] = []

    def add(self, wizard: WizardRead) -> WizardRead:
        self.wizards[wizard.id] = wizard
        return wizard

    async def get_wizard(self, wizard_id: str) -> WizardRead | None:
        return self.wizards.get(wizard_id)

    async def get_wizard_id_by_token(self, public_token: str) -> str | None:
        for wizard in self.wizards.values():
            if wizard.public_token == public_token:
                return wizard.id
        return None

    async def is_owned_by(self, wizard_id: str, org_user_id: str) -> bool:
        wizard = self.wizards.get(wizard_id)
        return wizard is not None and wizard.org_user_id == org_user_id

    async def list_wizards(self, org_user_id: str) -> list[WizardSummary]:
        return [
            WizardSummary(
                id=w.id,
                status=w.status,
                location_id=w.location_id,
                template_name=w.template.name if w.template else "",
                submitted_at=w.submitted_at,
                public_token=w.public_token,
            )
            for w in self.wizards.values()
            if w.org_user_id == org_user_id
        ]

    async def update_status(self, wizard_id: str, status: WizardStatus) -> None:
        self.status_updates.append((wizard_id, status))
        wizard = self.wizards.get(wizard_id)
        if wizard is not None:
            self.wizards[wizard_id] = wizard.model_copy(update={"status": status})

    async def mark_submitted(self, wizard_id: str) -> datetime:
        submitted_at = datetime.now(timezone.utc)
        wizard = self.wizards[wizard_id]
        self.wizards[wizard_id] = wizard.model_copy(
            update={"status": WizardStatus.SUBMITTED, "submitted_at": submitted_at}
        )
        return submitted_at


class InMemoryConnectionRepository:
    """In-memory ConnectionRepository keyed by (user_id, location_id)."""

    def __init__(self) -> None:
        self.tokens: dict[tuple[str, str], str] = {}
        self.updates: list[tuple[str, str, str]] = []

    async def get_token(self, user_id: str, location_id: str) -> str | None:
        return self.tokens.get((user_id, location_id))

    async def update_token(
        self, user_id: str, location_id: str, token: str, last_used: datetime | None = None
    ) -> None:
        self.updates.append((user_id, location_id, token))
        self.tokens[(user_id, location_id)] = token


class InMemorySyncRunRepository:
    """In-memory SyncRunRepository; finalising only touches pending runs."""

    def __init__(self, fail_create: bool = False) -> None:
        self.runs: dict[str, SyncRunRead] = {}
        self.fail_create = fail_create

    async def create_run(self, wizard_id: str) -> str:
        if self.fail_create:
            raise RuntimeError("database unavailable")
        run_id = str(uuid.uuid4())
        self.runs[run_id] = SyncRunRead(
            id=run_id,
            wizard_id=wizard_id,
            status=SyncRunStatus.PENDING,
            started_at=datetime.now(timezone.utc),
        )
        return run_id

    async def complete_run(
        self,
        run_id: str,
        status: SyncRunStatus,
        diff: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        run = self.runs.get(run_id)
        if run is None or run.status != SyncRunStatus.PENDING:
            return False
        self.runs[run_id] = run.model_copy(
            update={
                "status": status,
                "diff": diff,
                "error": error,
                "finished_at": datetime.now(timezone.utc),
            }
        )
        return True

    async def get_latest_run(self, wizard_id: str) -> SyncRunRead | None:
        runs = [r for r in self.runs.values() if r.wizard_id == wizard_id]
        if not runs:
            return None
        return max(runs, key=lambda r: r.started_at)


# ── Builders ─────────────────────────────────────────────────────────────────


def make_wizard(
    pages: list[dict[str, Any]],
    answers: dict[str, dict[str, Any]] | None = None,
    wizard_id: str | None = None,
    org_user_id: str = ORG_USER_ID,
    location_id: str = LOCATION_ID,
    public_token: str | None = None,
) -> WizardRead:
    """Build a WizardRead from template pages and ``{page_id: {block_id: answer}}``."""
    answers = answers or {}
    return WizardRead(
        id=wizard_id or str(uuid.uuid4()),
        org_user_id=org_user_id,
        location_id=location_id,
        status=WizardStatus.SUBMITTED,
        public_token=public_token or uuid.uuid4().hex,
        template=WizardTemplate.from_definition({"pages": pages}, name="Onboarding"),
        steps=[
            WizardStep(step_key=page_id, idx=idx, blocks=blocks)
            for idx, (page_id, blocks) in enumerate(answers.items())
        ],
    )


class RecordingSleep:
    """Awaitable sleep replacement that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


Handler = Callable[[httpx.Request], httpx.Response]


def crm_transport(
    routes: dict[tuple[str, str], Handler | list[Handler]],
    calls: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """MockTransport dispatching on (METHOD, path).

    A list of handlers is consumed one per call (last one repeats). Unrouted
    requests answer 500 so stray calls fail loudly.
    """
    counters: dict[tuple[str, str], int] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        key = (request.method, request.url.path)
        route = routes.get(key)
        if route is None:
            return httpx.Response(500, json={"message": f"unrouted {key}"})
        if isinstance(route, list):
            index = counters.get(key, 0)
            counters[key] = index + 1
            return route[min(index, len(route) - 1)](request)
        return route(request)

    return httpx.MockTransport(handler)


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content.decode() or "null")


def respond(status_code: int = 200, body: Any = None) -> Handler:
    return lambda request: httpx.Response(status_code, json=body if body is not None else {})

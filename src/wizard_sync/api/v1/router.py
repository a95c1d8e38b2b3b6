"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.wizard_sync.api.v1 import wizards

router = APIRouter(prefix="/api/v1")

router.include_router(wizards.router)

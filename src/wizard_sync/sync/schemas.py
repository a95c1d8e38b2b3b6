"""Sync operation payload and diff schemas.

The payload is derived and ephemeral: five typed operation lists built from
a wizard's template and answers. The diff is the persisted audit trail of
what the executor actually did, serialised with camelCase keys
(``blockId``, ``triggerLinks``) so the stored JSON matches what the
dashboard renders.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Operations ──────────────────────────────────────────────────────────────


class CustomFieldConfig(BaseModel):
    """Creation config for a custom field (from the block's newEntity)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    data_type: str = "TEXT"
    placeholder: str = ""
    options: list[Any] = Field(default_factory=list)


class CustomFieldOperation(BaseModel):
    block_id: str
    mode: str = "existing"
    reference_id: str | None = None
    config: CustomFieldConfig
    label: str | None = None
    value: Any = None


class CustomValueOperation(BaseModel):
    block_id: str
    mode: str = "existing"
    reference_id: str | None = None
    name: str
    value: str


class TriggerLinkOperation(BaseModel):
    block_id: str
    mode: str = "existing"
    reference_id: str | None = None
    name: str
    redirect_to: str


class TagOperation(BaseModel):
    block_id: str
    mode: str = "existing"
    reference_id: str | None = None
    names: list[str] = Field(default_factory=list)


class MediaOperation(BaseModel):
    block_id: str
    storage_key: str
    name: str
    mime: str


class SyncOperationPayload(BaseModel):
    """All CRM operations for one wizard, in template page/block order."""

    location_id: str
    custom_fields: list[CustomFieldOperation] = Field(default_factory=list)
    custom_values: list[CustomValueOperation] = Field(default_factory=list)
    trigger_links: list[TriggerLinkOperation] = Field(default_factory=list)
    tags: list[TagOperation] = Field(default_factory=list)
    media: list[MediaOperation] = Field(default_factory=list)


# ── Diff ────────────────────────────────────────────────────────────────────


class SyncDiff(BaseModel):
    """Per-category record of requests, responses, errors and fallbacks.

    Entries are plain dicts: ``{blockId, request, response}`` plus
    ``fallback: True`` for 404 create fallbacks, ``error`` for isolated tag
    failures, and ``skipped`` / ``reason`` for field updates.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fields: list[dict[str, Any]] = Field(default_factory=list)
    values: list[dict[str, Any]] = Field(default_factory=list)
    trigger_links: list[dict[str, Any]] = Field(default_factory=list)
    media: list[dict[str, Any]] = Field(default_factory=list)
    tags: list[dict[str, Any]] = Field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict for the ``onboarding_sync_runs.diff`` column."""
        return self.model_dump(mode="json", by_alias=True)

"""Pydantic schemas for wizard templates, customer answers and sync runs.

Template and answer documents are stored as camelCase JSON (written by the
builder and form renderer), so models parse with camelCase aliases and
ignore keys they do not consume.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ── Enums ───────────────────────────────────────────────────────────────────


class WizardStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    SYNCED = "synced"
    ERROR = "error"


class SyncRunStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class BlockType(str, Enum):
    """Block types the sync engine acts on. Other types (text, ...) are ignored."""

    CUSTOM_FIELD = "custom_field"
    CUSTOM_VALUE = "custom_value"
    TRIGGER_LINK = "trigger_link"
    TAG = "tag"
    MEDIA = "media"
    TEXT = "text"


class BlockMode(str, Enum):
    EXISTING = "existing"
    CREATE = "create"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _id_str(value: Any) -> Any:
    return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


def _with_ids(items: Any) -> list[Any]:
    # Entries without an id cannot be matched to answers; drop them.
    if not isinstance(items, list):
        return []
    return [
        item
        for item in items
        if isinstance(item, BaseModel)
        or (isinstance(item, dict) and item.get("id") not in (None, ""))
    ]


# ── Template ────────────────────────────────────────────────────────────────


class TemplateBlock(_CamelModel):
    """A single field of a wizard page."""

    id: str
    type: str = BlockType.TEXT.value
    mode: str | None = None
    reference_id: str | None = None
    title: str | None = None
    new_entity: dict[str, Any] = Field(default_factory=dict)

    @field_validator("new_entity", mode="before")
    @classmethod
    def _entity_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("id", "reference_id", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _id_str(value)


class TemplatePage(_CamelModel):
    id: str
    title: str | None = None
    blocks: list[TemplateBlock] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _page_id(cls, value: Any) -> Any:
        return _id_str(value)

    @field_validator("blocks", mode="before")
    @classmethod
    def _blocks(cls, value: Any) -> list[Any]:
        return _with_ids(value)


class WizardTemplate(_CamelModel):
    id: str | None = None
    name: str = ""
    pages: list[TemplatePage] = Field(default_factory=list)

    @field_validator("pages", mode="before")
    @classmethod
    def _pages(cls, value: Any) -> list[Any]:
        return _with_ids(value)

    @classmethod
    def from_definition(
        cls, definition: Any, template_id: str | None = None, name: str = ""
    ) -> WizardTemplate:
        """Parse a stored definition: ``{"pages": [...]}`` or a bare page list."""
        if isinstance(definition, dict) and isinstance(definition.get("pages"), list):
            pages = definition["pages"]
        elif isinstance(definition, list):
            pages = definition
        else:
            pages = []
        return cls(id=template_id, name=name, pages=pages)


# ── Answers ─────────────────────────────────────────────────────────────────


class UploadedFile(_CamelModel):
    storage_key: str
    name: str = "upload"
    mime: str = "application/octet-stream"
    size: int | None = None


class BlockAnswer(_CamelModel):
    value: Any = None
    uploads: list[UploadedFile] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("uploads", mode="before")
    @classmethod
    def _uploads_list(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict) and item.get("storageKey")]

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class WizardStep(BaseModel):
    """Answers for one page, keyed by block id."""

    step_key: str
    idx: int = 0
    blocks: dict[str, BlockAnswer] = Field(default_factory=dict)
    completed_at: datetime | None = None

    @field_validator("step_key", mode="before")
    @classmethod
    def _step_key(cls, value: Any) -> Any:
        return _id_str(value)

    @field_validator("blocks", mode="before")
    @classmethod
    def _blocks_dict(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return {key: (answer if isinstance(answer, dict) else {}) for key, answer in value.items()}


# ── Wizard ──────────────────────────────────────────────────────────────────


class WizardRead(BaseModel):
    """A wizard with its template and answers, as consumed by the sync engine."""

    id: str
    org_user_id: str
    location_id: str
    status: WizardStatus = WizardStatus.DRAFT
    public_token: str | None = None
    submitted_at: datetime | None = None
    template: WizardTemplate | None = None
    steps: list[WizardStep] = Field(default_factory=list)


class WizardSummary(BaseModel):
    """Dashboard listing row."""

    id: str
    status: WizardStatus
    location_id: str
    template_name: str = ""
    submitted_at: datetime | None = None
    public_token: str | None = None


# ── Sync Runs ───────────────────────────────────────────────────────────────


class SyncRunRead(BaseModel):
    id: str
    wizard_id: str
    status: SyncRunStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    diff: dict[str, Any] | None = None
    error: str | None = None

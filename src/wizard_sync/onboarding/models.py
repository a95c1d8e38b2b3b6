"""Onboarding persistence models.

Five SQLAlchemy models:
- SavedLocationModel: A user's connection to a CRM location (holds the encoded credential)
- OnboardingTemplateModel: Page/block definition authored in the builder
- OnboardingWizardModel: A template published to one customer for one location
- OnboardingStepModel: Per-page customer answers
- SyncRunModel: Append-only audit record of each CRM synchronisation

Referential integrity between wizards, steps and runs is application-level
(repository), consistent with the rest of the schema.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.wizard_sync.core.database import Base


class SavedLocationModel(Base):
    """CRM location saved by a dashboard user.

    ``token`` holds the encoded credential (bare private token or OAuth JSON).
    One row per (user_id, location_id).
    """

    __tablename__ = "saved_locations"
    __table_args__ = (
        UniqueConstraint("user_id", "location_id", name="uq_saved_location_user_location"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    token: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class OnboardingTemplateModel(Base):
    """Wizard template: ordered pages of blocks stored as a JSON document."""

    __tablename__ = "onboarding_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    org_user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    definition: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class OnboardingWizardModel(Base):
    """A template instance published to an end customer for one CRM location."""

    __tablename__ = "onboarding_wizards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    org_user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)
    template_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), default="draft", server_default=text("'draft'")
    )
    public_token: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class OnboardingStepModel(Base):
    """Customer answers for one wizard page, keyed by the page id (step_key)."""

    __tablename__ = "onboarding_steps"
    __table_args__ = (
        UniqueConstraint("wizard_id", "step_key", name="uq_onboarding_step_wizard_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    wizard_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    step_key: Mapped[str] = mapped_column(String(100), nullable=False)
    idx: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    payload: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    uploaded_files: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SyncRunModel(Base):
    """One synchronisation attempt of a wizard into the CRM.

    Created ``pending`` at job start and finalised exactly once to
    ``success`` (with diff) or ``failed`` (with error).
    """

    __tablename__ = "onboarding_sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    wizard_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'")
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    diff: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

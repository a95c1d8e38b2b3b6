"""Create onboarding wizard and CRM sync tables.

Revision ID: 001_onboarding_sync
Revises:
Create Date: 2026-10-16

Creates five tables:
- saved_locations: CRM location connections holding the encoded credential
- onboarding_templates: Builder page/block definitions (JSON)
- onboarding_wizards: Templates published to one customer/location
- onboarding_steps: Per-page customer answers (JSON)
- onboarding_sync_runs: Append-only sync audit rows with diff/error

No foreign key constraints (application-level referential integrity via
repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "001_onboarding_sync"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── saved_locations ──────────────────────────────────────────────────

    op.create_table(
        "saved_locations",
        _id_column(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("location_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(300), nullable=True),
        sa.Column("token", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "location_id", name="uq_saved_location_user_location"),
    )
    op.create_index("ix_saved_locations_user_id", "saved_locations", ["user_id"])

    # ── onboarding_templates ─────────────────────────────────────────────

    op.create_table(
        "onboarding_templates",
        _id_column(),
        sa.Column("org_user_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("definition", JSON(), server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_onboarding_templates_org_user_id", "onboarding_templates", ["org_user_id"])

    # ── onboarding_wizards ───────────────────────────────────────────────

    op.create_table(
        "onboarding_wizards",
        _id_column(),
        sa.Column("org_user_id", sa.String(100), nullable=False),
        sa.Column("location_id", sa.String(100), nullable=False),
        sa.Column("template_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(30), server_default=sa.text("'draft'")),
        sa.Column("public_token", sa.String(100), nullable=False, unique=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_onboarding_wizards_org_user_id", "onboarding_wizards", ["org_user_id"])

    # ── onboarding_steps ─────────────────────────────────────────────────

    op.create_table(
        "onboarding_steps",
        _id_column(),
        sa.Column("wizard_id", UUID(as_uuid=True), nullable=False),
        sa.Column("step_key", sa.String(100), nullable=False),
        sa.Column("idx", sa.Integer(), server_default=sa.text("0")),
        sa.Column("payload", JSON(), server_default=sa.text("'{}'::json")),
        sa.Column("uploaded_files", JSON(), server_default=sa.text("'[]'::json")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("wizard_id", "step_key", name="uq_onboarding_step_wizard_key"),
    )
    op.create_index("ix_onboarding_steps_wizard_id", "onboarding_steps", ["wizard_id"])

    # ── onboarding_sync_runs ─────────────────────────────────────────────

    op.create_table(
        "onboarding_sync_runs",
        _id_column(),
        sa.Column("wizard_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'")),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("diff", JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("ix_onboarding_sync_runs_wizard_id", "onboarding_sync_runs", ["wizard_id"])


def downgrade() -> None:
    op.drop_index("ix_onboarding_sync_runs_wizard_id", table_name="onboarding_sync_runs")
    op.drop_table("onboarding_sync_runs")
    op.drop_index("ix_onboarding_steps_wizard_id", table_name="onboarding_steps")
    op.drop_table("onboarding_steps")
    op.drop_index("ix_onboarding_wizards_org_user_id", table_name="onboarding_wizards")
    op.drop_table("onboarding_wizards")
    op.drop_index("ix_onboarding_templates_org_user_id", table_name="onboarding_templates")
    op.drop_table("onboarding_templates")
    op.drop_index("ix_saved_locations_user_id", table_name="saved_locations")
    op.drop_table("saved_locations")

"""Initial schema for Buildplan.

Creates the projects and phases tables. Phases and tasks share the phases
table; tasks reference their parent phase through parent_phase_id.

Revision ID: 001
Revises: None
Create Date: 2025-01-20
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PROJECT_STATUSES = ("planning", "active", "on_hold", "completed", "cancelled")
PHASE_STATUSES = ("not_started", "in_progress", "completed", "delayed", "blocked")
DURATION_MODES = ("auto", "override")


def upgrade() -> None:
    project_status = sa.Enum(*PROJECT_STATUSES, name="project_status")
    project_status.create(op.get_bind(), checkfirst=True)

    phase_status = sa.Enum(*PHASE_STATUSES, name="phase_status")
    phase_status.create(op.get_bind(), checkfirst=True)

    duration_mode = sa.Enum(*DURATION_MODES, name="duration_mode")
    duration_mode.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*PROJECT_STATUSES, name="project_status", create_type=False),
            nullable=False,
            server_default="planning",
        ),
        sa.Column("baseline_start_date", sa.Date(), nullable=True),
        sa.Column("baseline_duration_days", sa.Integer(), nullable=True),
        sa.Column("baseline_set_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_projects_organization", "projects", ["organization_id"])
    op.create_index(
        "uq_projects_organization_slug",
        "projects",
        ["organization_id", "slug"],
        unique=True,
        postgresql_where=sa.text("slug IS NOT NULL"),
    )

    op.create_table(
        "phases",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sequence_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("planned_start_date", sa.Date(), nullable=False),
        sa.Column("planned_duration_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("planned_end_date", sa.Date(), nullable=True),
        sa.Column("actual_start_date", sa.Date(), nullable=True),
        sa.Column("actual_end_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*PHASE_STATUSES, name="phase_status", create_type=False),
            nullable=False,
            server_default="not_started",
        ),
        sa.Column(
            "predecessor_phase_id",
            sa.Uuid(),
            sa.ForeignKey("phases.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "parent_phase_id",
            sa.Uuid(),
            sa.ForeignKey("phases.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_task", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("color", sa.Text(), nullable=False, server_default="gray"),
        sa.Column(
            "duration_mode",
            sa.Enum(*DURATION_MODES, name="duration_mode", create_type=False),
            nullable=False,
            server_default="auto",
        ),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("calculated_duration_days", sa.Integer(), nullable=True),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("planned_duration_days >= 0", name="ck_phases_duration_non_negative"),
        sa.CheckConstraint("buffer_days >= 0", name="ck_phases_buffer_non_negative"),
        sa.CheckConstraint(
            "(is_task AND parent_phase_id IS NOT NULL) OR (NOT is_task AND parent_phase_id IS NULL)",
            name="ck_phases_hierarchy",
        ),
    )
    op.create_index("idx_phases_project_sequence", "phases", ["project_id", "sequence_order"])
    op.create_index("idx_phases_parent", "phases", ["parent_phase_id"])


def downgrade() -> None:
    op.drop_index("idx_phases_parent", table_name="phases")
    op.drop_index("idx_phases_project_sequence", table_name="phases")
    op.drop_table("phases")
    op.drop_index("uq_projects_organization_slug", table_name="projects")
    op.drop_index("idx_projects_organization", table_name="projects")
    op.drop_table("projects")

    sa.Enum(name="duration_mode").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="phase_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="project_status").drop(op.get_bind(), checkfirst=True)

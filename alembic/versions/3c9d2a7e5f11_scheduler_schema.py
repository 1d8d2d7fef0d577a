"""scheduler schema

Revision ID: 3c9d2a7e5f11
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c9d2a7e5f11"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB()


def _now() -> sa.TextClause:
    return sa.text("now()")


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_launched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("participant_config", JSONB, nullable=False, server_default="{}"),
        sa.Column("auto_launch_settings", JSONB, nullable=False, server_default="{}"),
        sa.Column("launched_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "course_schedule",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "course_id",
            UUID,
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("meeting_start_time", sa.Time(), nullable=True),
        sa.Column("meeting_end_time", sa.Time(), nullable=True),
        sa.Column("tasks_released", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("course_id", "day_number", name="uq_course_schedule_day"),
    )

    op.create_table(
        "course_task_templates",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "course_id",
            UUID,
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("level_number", sa.Integer(), nullable=False),
        sa.Column("task_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("frequency", sa.String(length=16), nullable=False, server_default="daily"),
        sa.Column("due_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="100"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "course_id",
            UUID,
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_to", UUID, nullable=False),
        sa.Column("task_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("schedule_id", UUID, sa.ForeignKey("course_schedule.id"), nullable=True),
        sa.Column(
            "template_id", UUID, sa.ForeignKey("course_task_templates.id"), nullable=True
        ),
        sa.Column("level_number", sa.Integer(), nullable=True),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "template_id", "schedule_id", "assigned_to", name="uq_tasks_template_day_user"
        ),
    )
    op.create_index("ix_tasks_active_due", "tasks", ["is_active", "status", "due_date"])
    op.create_index("ix_tasks_schedule", "tasks", ["schedule_id"])

    op.create_table(
        "task_submissions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column(
            "submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
    )

    op.create_table(
        "task_penalties",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("course_id", UUID, nullable=False),
        sa.Column("penalty_percentage", sa.Integer(), nullable=False),
        sa.Column("penalty_reason", sa.Text(), nullable=False),
        sa.Column(
            "applied_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_penalties_task_user"),
    )

    op.create_table(
        "enrollments",
        sa.Column("user_id", UUID, primary_key=True),
        sa.Column(
            "course_id",
            UUID,
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("level_number", sa.Integer(), nullable=False, server_default="3"),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default="waiting_start"
        ),
        sa.Column("grade", JSONB, nullable=False, server_default="{}"),
    )

    op.create_table(
        "performance_evaluations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("course_id", UUID, nullable=False),
        sa.Column("evaluation_date", sa.Date(), nullable=False),
        sa.Column("level_number", sa.Integer(), nullable=False),
        sa.Column("task_completion_score", sa.Float(), nullable=False),
        sa.Column("quality_score", sa.Float(), nullable=False),
        sa.Column("timeliness_score", sa.Float(), nullable=False),
        sa.Column("overall_score", sa.Float(), nullable=False),
        sa.Column("performance_data", JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
        sa.UniqueConstraint(
            "user_id",
            "course_id",
            "evaluation_date",
            name="uq_performance_evaluations_user_course_date",
        ),
    )

    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_id", UUID, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
    )
    op.create_index("ix_notifications_user_type", "notifications", ["user_id", "type"])

    op.create_table(
        "course_auto_launch_log",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "course_id",
            UUID,
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("launch_reason", sa.String(length=64), nullable=False),
        sa.Column("participants_count", sa.Integer(), nullable=False),
        sa.Column(
            "launched_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()
        ),
    )


def downgrade() -> None:
    op.drop_table("course_auto_launch_log")
    op.drop_index("ix_notifications_user_type", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("performance_evaluations")
    op.drop_table("enrollments")
    op.drop_table("task_penalties")
    op.drop_table("task_submissions")
    op.drop_index("ix_tasks_schedule", table_name="tasks")
    op.drop_index("ix_tasks_active_due", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("course_task_templates")
    op.drop_table("course_schedule")
    op.drop_table("courses")

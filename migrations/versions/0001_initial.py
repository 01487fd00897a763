"""Initial scheduling schema"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    ]


def upgrade() -> None:
    op.create_table(
        "teacher",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255)),
        *_timestamps(),
    )

    op.create_table(
        "room",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("capacity", sa.Integer()),
        *_timestamps(),
    )

    op.create_table(
        "school_class",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("level_tag", sa.String(length=50)),
        sa.Column("phase_number", sa.Integer()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("room.id", ondelete="SET NULL")),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("end_date_note", sa.Text()),
        sa.Column("max_students", sa.Integer()),
        sa.Column("phase_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sessions_per_phase", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("session_duration_minutes", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("phase_count >= 1", name="chk_class_phase_count_positive"),
        sa.CheckConstraint("sessions_per_phase >= 1", name="chk_class_sessions_per_phase_positive"),
        sa.CheckConstraint(
            "session_duration_minutes IS NULL OR session_duration_minutes > 0",
            name="chk_class_session_duration_positive",
        ),
    )

    op.create_table(
        "class_teacher",
        sa.Column(
            "class_id", sa.Integer(), sa.ForeignKey("school_class.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teacher.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "class_schedule_slot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "class_id", sa.Integer(), sa.ForeignKey("school_class.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.CheckConstraint("weekday BETWEEN 0 AND 6", name="chk_slot_weekday"),
        sa.CheckConstraint("end_time > start_time", name="chk_slot_time_order"),
        sa.UniqueConstraint("class_id", "weekday", name="uq_slot_class_weekday"),
    )

    op.create_table(
        "suspension",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("class_id", sa.Integer(), nullable=False, index=True),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("makeup_strategy", sa.String(length=20), nullable=False),
        sa.Column("affected_session_ids", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("created_makeup_session_ids", sa.Text(), nullable=False, server_default="[]"),
        *_timestamps(),
        sa.CheckConstraint(
            "makeup_strategy IN ('AddToLastPhase','Manual')", name="chk_suspension_strategy_valid"
        ),
    )

    op.create_table(
        "class_session",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "class_id",
            sa.Integer(),
            sa.ForeignKey("school_class.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("phase_number", sa.Integer(), nullable=False),
        sa.Column("phase_session_number", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_start_time", sa.Time(), nullable=False),
        sa.Column("scheduled_end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Scheduled"),
        sa.Column("assigned_teacher_id", sa.Integer(), sa.ForeignKey("teacher.id", ondelete="SET NULL")),
        sa.Column("substitute_teacher_id", sa.Integer(), sa.ForeignKey("teacher.id", ondelete="SET NULL")),
        sa.Column("actual_date", sa.Date()),
        sa.Column("suspension_id", sa.Integer(), sa.ForeignKey("suspension.id")),
        sa.Column("makeup_for_session_id", sa.Integer()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("scheduled_end_time > scheduled_start_time", name="chk_session_time_order"),
        sa.CheckConstraint(
            "status IN ('Scheduled','Completed','Cancelled','Rescheduled')",
            name="chk_session_status_valid",
        ),
        sa.UniqueConstraint("class_id", "phase_number", "phase_session_number", name="uq_session_identity"),
    )

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "class_id",
            sa.Integer(),
            sa.ForeignKey("school_class.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("phase_number", sa.Integer()),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "holiday",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255)),
    )

    op.create_table(
        "merge_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("merged_class_id", sa.Integer(), nullable=False, index=True),
        sa.Column("original_class_ids", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("snapshot", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_undone", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("undone_at", sa.DateTime()),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("merge_history")
    op.drop_table("holiday")
    op.drop_table("enrollment")
    op.drop_table("class_session")
    op.drop_table("suspension")
    op.drop_table("class_schedule_slot")
    op.drop_table("class_teacher")
    op.drop_table("school_class")
    op.drop_table("room")
    op.drop_table("teacher")

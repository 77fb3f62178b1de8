"""Create scheduling tables

Revision ID: 001
Revises: None
Create Date: 2025-01-20 00:00:00.000000+00:00

What:  Creates `profiles`, `tutor_classes` and `bookings`.
How:   Status columns are VARCHAR with CHECK constraints (portable across
       PostgreSQL and SQLite). Seat invariants are enforced by CHECK
       constraints on tutor_classes.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _in(column: str, values: Sequence[str]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


CLASS_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")
BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed", "no_show")
BOOKING_TYPES = ("class", "session", "consultation")
RECURRENCE_PATTERNS = ("daily", "weekly", "biweekly", "monthly")
USER_ROLES = ("student", "tutor", "admin")


def upgrade() -> None:
    # ── profiles (identity collaborator read model) ───────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(_in("role", USER_ROLES), name="user_role"),
    )

    # ── tutor_classes ─────────────────────────────────────────────────────
    op.create_table(
        "tutor_classes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tutor_id", sa.Uuid(), nullable=False, comment="Owning tutor (profiles.id)"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject_id", sa.Uuid(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("occupied", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("is_full", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("recurrence_pattern", sa.String(20), nullable=True),
        sa.Column("recurrence_end_date", sa.Date(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("capacity >= 1", name="ck_tutor_classes_capacity_positive"),
        sa.CheckConstraint("occupied >= 0", name="ck_tutor_classes_occupied_non_negative"),
        sa.CheckConstraint("occupied <= capacity", name="ck_tutor_classes_occupied_le_capacity"),
        sa.CheckConstraint("start_time < end_time", name="ck_tutor_classes_window"),
        sa.CheckConstraint(_in("status", CLASS_STATUSES), name="class_status"),
        sa.CheckConstraint(
            _in("recurrence_pattern", RECURRENCE_PATTERNS), name="recurrence_pattern"
        ),
    )
    op.create_index(
        "idx_tutor_classes_tutor_date_status",
        "tutor_classes",
        ["tutor_id", "scheduled_date", "status"],
    )
    op.create_index(
        "idx_tutor_classes_date_start",
        "tutor_classes",
        ["scheduled_date", "start_time"],
    )

    # ── bookings ──────────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("tutor_id", sa.Uuid(), nullable=True),
        sa.Column("class_id", sa.Uuid(), nullable=True),
        sa.Column("booking_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "payment_status",
            sa.String(50),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["class_id"], ["tutor_classes.id"], ondelete="SET NULL"),
        sa.CheckConstraint("start_time < end_time", name="ck_bookings_window"),
        sa.CheckConstraint(_in("status", BOOKING_STATUSES), name="booking_status"),
        sa.CheckConstraint(_in("booking_type", BOOKING_TYPES), name="booking_type"),
    )
    # Conflict detection: tutor + date + status range scan
    op.create_index(
        "idx_bookings_tutor_date_status",
        "bookings",
        ["tutor_id", "scheduled_date", "status"],
    )
    op.create_index("idx_bookings_student", "bookings", ["student_id", "scheduled_date"])
    op.create_index("idx_bookings_class_status", "bookings", ["class_id", "status"])
    # One active booking per student per class
    op.create_index(
        "uq_bookings_active_class_student",
        "bookings",
        ["class_id", "student_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
        sqlite_where=sa.text("status IN ('pending', 'confirmed')"),
    )


def downgrade() -> None:
    """Drops every scheduling table. All booking history is lost."""
    op.drop_index("uq_bookings_active_class_student", table_name="bookings")
    op.drop_index("idx_bookings_class_status", table_name="bookings")
    op.drop_index("idx_bookings_student", table_name="bookings")
    op.drop_index("idx_bookings_tutor_date_status", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("idx_tutor_classes_date_start", table_name="tutor_classes")
    op.drop_index("idx_tutor_classes_tutor_date_status", table_name="tutor_classes")
    op.drop_table("tutor_classes")
    op.drop_table("profiles")

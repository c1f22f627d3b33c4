"""create users, habits and progress tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=30), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("password", sa.String(length=120), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "habits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("frequency", sa.String(length=10), nullable=False),
        sa.Column("target_value", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("reminder_enabled", sa.Boolean(), nullable=False),
        sa.Column("reminder_start_time", sa.String(length=5), nullable=False),
        sa.Column("reminder_end_time", sa.String(length=5), nullable=False),
        sa.Column("reminder_frequency", sa.String(length=20), nullable=False),
        sa.Column("reminder_message", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_habits_user_created", "habits", ["user_id", "created_at"])
    op.create_index("ix_habits_user_category", "habits", ["user_id", "category"])
    op.create_index("ix_habits_user_active", "habits", ["user_id", "is_active"])

    op.create_table(
        "progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("habit_id", sa.Integer(), sa.ForeignKey("habits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "habit_id", "date", name="uq_progress_user_habit_date"),
    )
    op.create_index("ix_progress_user_date", "progress", ["user_id", "date"])
    op.create_index("ix_progress_user_habit", "progress", ["user_id", "habit_id"])
    op.create_index("ix_progress_user_completed", "progress", ["user_id", "completed"])


def downgrade():
    op.drop_index("ix_progress_user_completed", table_name="progress")
    op.drop_index("ix_progress_user_habit", table_name="progress")
    op.drop_index("ix_progress_user_date", table_name="progress")
    op.drop_table("progress")
    op.drop_index("ix_habits_user_active", table_name="habits")
    op.drop_index("ix_habits_user_category", table_name="habits")
    op.drop_index("ix_habits_user_created", table_name="habits")
    op.drop_table("habits")
    op.drop_table("users")

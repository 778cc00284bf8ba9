"""initial schema

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


def upgrade() -> None:
    op.create_table(
        "week_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("employees", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "registrations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("week_key", sa.String(10), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("shifts", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved", sa.Boolean(), nullable=False),
        sa.Column("allocated", sa.Boolean(), nullable=False),
        sa.Column("allocated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_registrations_week_key", "registrations", ["week_key"], unique=False)
    op.create_index("ix_registrations_timestamp", "registrations", ["timestamp"], unique=False)
    op.create_table(
        "finalized_schedules",
        sa.Column("week_key", sa.String(10), primary_key=True),
        sa.Column("shifts", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "allocation_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fairness_enabled", sa.Boolean(), nullable=False),
        sa.Column("max_shifts_per_employee", sa.Integer(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("allocation_config")
    op.drop_table("finalized_schedules")
    op.drop_index("ix_registrations_timestamp", table_name="registrations")
    op.drop_index("ix_registrations_week_key", table_name="registrations")
    op.drop_table("registrations")
    op.drop_table("week_settings")

"""
Initial schema: raw bucket table and daily/weekly/monthly rollup tables.

Creates raw_usage (one row per device per local day), daily_usage,
weekly_usage and monthly_usage. Composite primary keys carry the
uniqueness invariants so that first-of-day bucket creation can use
INSERT ... ON CONFLICT DO NOTHING.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _rollup_columns() -> list[sa.Column]:
    """Aggregate columns shared by the three rollup tables."""
    names = (
        "total_voltage", "total_current", "total_power", "total_energy",
        "peak_voltage", "peak_current", "peak_power",
        "average_voltage", "average_current", "average_power",
    )
    columns = [
        sa.Column(name, sa.Double(), nullable=False, server_default="0")
        for name in names
    ]
    columns.append(sa.Column("created_at", sa.DateTime(timezone=True), nullable=False))
    columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    """Create the raw bucket table and the three rollup tables."""
    op.create_table(
        "raw_usage",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("voltage", sa.Double(), nullable=False, server_default="0"),
        sa.Column("current", sa.Double(), nullable=False, server_default="0"),
        sa.Column("power", sa.Double(), nullable=False, server_default="0"),
        sa.Column("energy_accumulated", sa.Double(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("device_id", "usage_date"),
    )

    op.create_table(
        "daily_usage",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False, server_default="0"),
        *_rollup_columns(),
        sa.PrimaryKeyConstraint("device_id", "usage_date"),
    )

    op.create_table(
        "weekly_usage",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("week_end_date", sa.Date(), nullable=False),
        sa.Column("days_count", sa.Integer(), nullable=False, server_default="0"),
        *_rollup_columns(),
        sa.PrimaryKeyConstraint("device_id", "year", "week_number"),
    )
    op.create_index(
        "ix_weekly_usage_week_start_date", "weekly_usage", ["week_start_date"],
    )

    op.create_table(
        "monthly_usage",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("month_name", sa.Text(), nullable=False),
        sa.Column("weeks_count", sa.Integer(), nullable=False, server_default="0"),
        *_rollup_columns(),
        sa.PrimaryKeyConstraint("device_id", "year", "month"),
    )


def downgrade() -> None:
    """Drop all usage tables."""
    op.drop_table("monthly_usage")
    op.drop_index("ix_weekly_usage_week_start_date", table_name="weekly_usage")
    op.drop_table("weekly_usage")
    op.drop_table("daily_usage")
    op.drop_table("raw_usage")

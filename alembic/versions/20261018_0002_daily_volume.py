"""Add daily pool and token volume tables.

Revision ID: 002_daily_volume
Revises: 001_swap_events
Create Date: 2026-10-18 00:01:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002_daily_volume"
down_revision: Union[str, None] = "001_swap_events"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pool_volume_data",
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("pool_addr", sa.String(44), nullable=False),
        sa.Column("volume0", sa.Numeric(40, 0), nullable=False),
        sa.Column("volume1", sa.Numeric(40, 0), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("date", "pool_addr"),
    )
    op.create_table(
        "token_volume_data",
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("token_addr", sa.String(44), nullable=False),
        sa.Column("volume", sa.Numeric(40, 0), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("date", "token_addr"),
    )


def downgrade() -> None:
    op.drop_table("token_volume_data")
    op.drop_table("pool_volume_data")

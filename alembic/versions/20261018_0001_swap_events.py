"""Create swap_events table.

Revision ID: 001_swap_events
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_swap_events"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "swap_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("txn_hash", sa.String(88), nullable=False),
        sa.Column("txn_blocktime", sa.BigInteger(), nullable=False),
        sa.Column("pool_addr", sa.String(44), nullable=False),
        sa.Column("sender", sa.String(44), nullable=False),
        sa.Column("amount0", sa.Numeric(40, 0), nullable=False),
        sa.Column("amount1", sa.Numeric(40, 0), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "txn_hash",
            "pool_addr",
            "sender",
            "amount0",
            "amount1",
            name="uq_swap_events_event",
        ),
    )
    op.create_index("idx_swap_events_txn_blocktime", "swap_events", ["txn_blocktime"])
    op.create_index("idx_swap_events_pool_addr", "swap_events", ["pool_addr"])


def downgrade() -> None:
    op.drop_index("idx_swap_events_pool_addr", table_name="swap_events")
    op.drop_index("idx_swap_events_txn_blocktime", table_name="swap_events")
    op.drop_table("swap_events")

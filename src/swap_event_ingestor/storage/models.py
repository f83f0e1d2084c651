"""SQLAlchemy models for persistent storage.

This module defines the database schema for decoded swap events and the
daily volume rollups derived from them.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SwapEventModel(Base):
    """One swap emitted by the program, keyed by its content."""

    __tablename__ = "swap_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    txn_hash: Mapped[str] = mapped_column(String(88), nullable=False)
    txn_blocktime: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pool_addr: Mapped[str] = mapped_column(String(44), nullable=False)
    sender: Mapped[str] = mapped_column(String(44), nullable=False)

    # Signed raw token units (i64 in the program log).
    amount0: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    amount1: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint(
            "txn_hash", "pool_addr", "sender", "amount0", "amount1", name="uq_swap_events_event"
        ),
        Index("idx_swap_events_txn_blocktime", "txn_blocktime"),
        Index("idx_swap_events_pool_addr", "pool_addr"),
    )


class PoolVolumeModel(Base):
    """Per-pool traded volume for one UTC day."""

    __tablename__ = "pool_volume_data"

    date: Mapped[date] = mapped_column(Date, primary_key=True, nullable=False)
    pool_addr: Mapped[str] = mapped_column(String(44), primary_key=True, nullable=False)

    volume0: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    volume1: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )


class TokenVolumeModel(Base):
    """Per-token traded volume for one UTC day, summed across pools."""

    __tablename__ = "token_volume_data"

    date: Mapped[date] = mapped_column(Date, primary_key=True, nullable=False)
    token_addr: Mapped[str] = mapped_column(String(44), primary_key=True, nullable=False)

    volume: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

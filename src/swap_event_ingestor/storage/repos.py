"""Repository pattern implementations for data access.

This module provides data access for swap events and the daily volume
rollup tables.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from swap_event_ingestor.storage.models import PoolVolumeModel, SwapEventModel, TokenVolumeModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swap_event_ingestor.ingestor.models import SwapEvent

logger = logging.getLogger(__name__)

SWAP_EVENT_KEY = ["txn_hash", "pool_addr", "sender", "amount0", "amount1"]

# Bound on bind parameters per statement
INSERT_CHUNK_SIZE = 1000


def _insert_for(session: AsyncSession, model: type) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@dataclass
class SwapEventDTO:
    """Data transfer object for swap events."""

    txn_hash: str
    txn_blocktime: int
    pool_addr: str
    sender: str
    amount0: int
    amount1: int

    @classmethod
    def from_event(cls, event: SwapEvent) -> SwapEventDTO:
        return cls(
            txn_hash=event.txn_hash,
            txn_blocktime=event.block_time,
            pool_addr=event.pool_addr,
            sender=event.sender,
            amount0=event.amount0,
            amount1=event.amount1,
        )

    @classmethod
    def from_model(cls, model: SwapEventModel) -> SwapEventDTO:
        return cls(
            txn_hash=model.txn_hash,
            txn_blocktime=int(model.txn_blocktime),
            pool_addr=model.pool_addr,
            sender=model.sender,
            amount0=int(model.amount0),
            amount1=int(model.amount1),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "txn_hash": self.txn_hash,
            "txn_blocktime": self.txn_blocktime,
            "pool_addr": self.pool_addr,
            "sender": self.sender,
            "amount0": Decimal(self.amount0),
            "amount1": Decimal(self.amount1),
        }


class SwapEventRepository:
    """Repository for decoded swap events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, events: Sequence[SwapEventDTO]) -> int:
        """Bulk insert, ignoring rows that already exist.

        Returns:
            Number of rows actually inserted.
        """
        if not events:
            return 0
        rows = [event.to_row() for event in events]
        inserted = 0
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            stmt = _insert_for(self.session, SwapEventModel).values(rows[start : start + INSERT_CHUNK_SIZE])
            stmt = stmt.on_conflict_do_nothing(index_elements=SWAP_EVENT_KEY)
            result = await self.session.execute(stmt)
            inserted += max(result.rowcount or 0, 0)
        await self.session.flush()
        logger.debug("Inserted %d of %d swap events", inserted, len(rows))
        return inserted

    async def list_between(self, start_ts: int, end_ts: int) -> list[SwapEventDTO]:
        """Events with `start_ts <= txn_blocktime < end_ts`, oldest first."""
        result = await self.session.execute(
            select(SwapEventModel)
            .where(
                (SwapEventModel.txn_blocktime >= start_ts) & (SwapEventModel.txn_blocktime < end_ts)
            )
            .order_by(SwapEventModel.txn_blocktime.asc(), SwapEventModel.id.asc())
        )
        return [SwapEventDTO.from_model(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(SwapEventModel))
        return int(result.scalar_one())


@dataclass
class PoolVolumeDTO:
    """Data transfer object for daily pool volume."""

    date: date
    pool_addr: str
    volume0: int
    volume1: int

    @classmethod
    def from_model(cls, model: PoolVolumeModel) -> PoolVolumeDTO:
        return cls(
            date=model.date,
            pool_addr=model.pool_addr,
            volume0=int(model.volume0),
            volume1=int(model.volume1),
        )


@dataclass
class TokenVolumeDTO:
    """Data transfer object for daily token volume."""

    date: date
    token_addr: str
    volume: int

    @classmethod
    def from_model(cls, model: TokenVolumeModel) -> TokenVolumeDTO:
        return cls(date=model.date, token_addr=model.token_addr, volume=int(model.volume))


class VolumeRepository:
    """Repository for the daily volume rollup tables.

    Rows are write-once: re-running a day keeps the first computed values.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_pool_volumes(self, rows: Sequence[PoolVolumeDTO]) -> int:
        if not rows:
            return 0
        values = [
            {
                "date": row.date,
                "pool_addr": row.pool_addr,
                "volume0": Decimal(row.volume0),
                "volume1": Decimal(row.volume1),
            }
            for row in rows
        ]
        stmt = _insert_for(self.session, PoolVolumeModel).values(values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["date", "pool_addr"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return max(result.rowcount or 0, 0)

    async def insert_token_volumes(self, rows: Sequence[TokenVolumeDTO]) -> int:
        if not rows:
            return 0
        values = [
            {"date": row.date, "token_addr": row.token_addr, "volume": Decimal(row.volume)}
            for row in rows
        ]
        stmt = _insert_for(self.session, TokenVolumeModel).values(values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["date", "token_addr"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return max(result.rowcount or 0, 0)

    async def get_pool_volumes(self, day: date) -> list[PoolVolumeDTO]:
        result = await self.session.execute(
            select(PoolVolumeModel)
            .where(PoolVolumeModel.date == day)
            .order_by(PoolVolumeModel.pool_addr.asc())
        )
        return [PoolVolumeDTO.from_model(m) for m in result.scalars().all()]

    async def get_token_volumes(self, day: date) -> list[TokenVolumeDTO]:
        result = await self.session.execute(
            select(TokenVolumeModel)
            .where(TokenVolumeModel.date == day)
            .order_by(TokenVolumeModel.token_addr.asc())
        )
        return [TokenVolumeDTO.from_model(m) for m in result.scalars().all()]

"""Daily pool and token volume rollup over persisted swap events.

Each UTC day is summarized into `pool_volume_data` (absolute amounts per pool)
and `token_volume_data` (pool volumes attributed to the pool's two mints).
Rows are insert-or-ignore, so re-running a range never overwrites a day.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any, Protocol

from swap_event_ingestor.storage.repos import (
    PoolVolumeDTO,
    SwapEventDTO,
    SwapEventRepository,
    TokenVolumeDTO,
    VolumeRepository,
)

if TYPE_CHECKING:
    from anchorpy import Program
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

POOL_STATE_ACCOUNT = "PoolState"


@dataclass(frozen=True)
class PoolTokens:
    """The two mints a pool trades."""

    token0: str
    token1: str


@dataclass
class PoolVolume:
    volume0: int = 0
    volume1: int = 0


@dataclass
class RollupResult:
    """Outcome of a rollup run."""

    days_processed: int = 0
    days_skipped: int = 0
    pool_rows_inserted: int = 0
    token_rows_inserted: int = 0
    unmapped_pools: set[str] = field(default_factory=set)


class PoolTokenResolver(Protocol):
    async def resolve(self) -> dict[str, PoolTokens]: ...


def aggregate_pool_volumes(rows: Iterable[SwapEventDTO]) -> dict[str, PoolVolume]:
    """Sum absolute amounts per pool."""
    volumes: dict[str, PoolVolume] = {}
    for row in rows:
        volume = volumes.setdefault(row.pool_addr, PoolVolume())
        volume.volume0 += abs(row.amount0)
        volume.volume1 += abs(row.amount1)
    return volumes


def aggregate_token_volumes(
    pool_volumes: Mapping[str, PoolVolume],
    pool_tokens: Mapping[str, PoolTokens],
    *,
    unmapped: set[str] | None = None,
) -> dict[str, int]:
    """Attribute each pool's volume0/volume1 to its token0/token1.

    Pools missing from `pool_tokens` are skipped and added to `unmapped`.
    """
    volumes: dict[str, int] = {}
    for pool_addr, volume in pool_volumes.items():
        tokens = pool_tokens.get(pool_addr)
        if tokens is None:
            logger.warning("No token mapping for pool %s, skipping its token volume", pool_addr)
            if unmapped is not None:
                unmapped.add(pool_addr)
            continue
        volumes[tokens.token0] = volumes.get(tokens.token0, 0) + volume.volume0
        volumes[tokens.token1] = volumes.get(tokens.token1, 0) + volume.volume1
    return volumes


def day_bounds(day: date) -> tuple[int, int]:
    """Unix-second bounds `[start, end)` of a UTC day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    end = start + timedelta(days=1)
    return int(start.timestamp()), int(end.timestamp())


def days_descending(start: date, end: date) -> list[date]:
    """Days from `end - 1` back to `start`, inclusive."""
    days: list[date] = []
    day = end - timedelta(days=1)
    while day >= start:
        days.append(day)
        day -= timedelta(days=1)
    return days


def _account_field(account: Any, *names: str) -> Any:
    for name in names:
        if hasattr(account, name):
            return getattr(account, name)
    raise AttributeError(f"PoolState account has none of {names}")


class AnchorPoolTokenResolver:
    """Reads every PoolState account of the program through anchorpy."""

    def __init__(self, program: Program) -> None:
        self._program = program

    async def resolve(self) -> dict[str, PoolTokens]:
        accounts = await self._program.account[POOL_STATE_ACCOUNT].all()
        mapping = {
            str(item.public_key): PoolTokens(
                token0=str(_account_field(item.account, "token0", "token_0")),
                token1=str(_account_field(item.account, "token1", "token_1")),
            )
            for item in accounts
        }
        logger.info("Loaded token mints for %d pools", len(mapping))
        return mapping


class DailyVolumeRollup:
    """Writes per-day pool and token volumes for a date range."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]],
        resolver: PoolTokenResolver,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver

    async def run(self, start: date, end: date) -> RollupResult:
        """Roll up days in `[start, end)`, newest first."""
        if end <= start:
            raise ValueError("end must be after start")
        logger.info("Populating daily volume tables between %s and %s", start, end)
        pool_tokens = await self._resolver.resolve()
        result = RollupResult()

        for day in days_descending(start, end):
            day_start, day_end = day_bounds(day)
            async with self._session_factory() as session:
                rows = await SwapEventRepository(session).list_between(day_start, day_end)
                pool_volumes = aggregate_pool_volumes(rows)
                if not pool_volumes:
                    logger.info("No data found for %s", day)
                    result.days_skipped += 1
                    continue

                token_volumes = aggregate_token_volumes(
                    pool_volumes, pool_tokens, unmapped=result.unmapped_pools
                )
                repo = VolumeRepository(session)
                pools_inserted = await repo.insert_pool_volumes(
                    [
                        PoolVolumeDTO(
                            date=day, pool_addr=addr, volume0=v.volume0, volume1=v.volume1
                        )
                        for addr, v in sorted(pool_volumes.items())
                    ]
                )
                tokens_inserted = await repo.insert_token_volumes(
                    [
                        TokenVolumeDTO(date=day, token_addr=addr, volume=volume)
                        for addr, volume in sorted(token_volumes.items())
                    ]
                )
                await session.commit()

            result.days_processed += 1
            result.pool_rows_inserted += pools_inserted
            result.token_rows_inserted += tokens_inserted
            logger.info(
                "%s: %d rows for pools and %d for tokens inserted",
                day,
                pools_inserted,
                tokens_inserted,
            )
        return result

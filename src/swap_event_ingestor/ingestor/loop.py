"""Reconciliation loop: page, dedup, fetch, extract, persist, advance.

One cycle walks the states below in order. Any failure ends the cycle early
and the next cycle starts from an anchor chosen by the failure kind.

    FETCH_PAGE -> FILTER_DEDUP -> FETCH_TX -> EXTRACT -> PERSIST -> ADVANCE_CURSOR
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from swap_event_ingestor.exceptions import (
    DecodeError,
    MissingBlockTimeError,
    PersistenceError,
    TransactionFetchError,
)

from .cursor import CursorTracker
from .dedup import DedupCache
from .extractor import EventExtractor
from .fetcher import FetchBatch, TransactionFetcher
from .models import Cursor, Direction, LoopStats, Page, SwapEvent
from .paginator import SignaturePaginator

logger = logging.getLogger(__name__)

DEFAULT_IDLE_DELAY_SECONDS = 5.0
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_MAX_RETRY_DELAY_SECONDS = 60.0
DEFAULT_EXHAUSTED_AFTER_EMPTY_PAGES = 3

# Failed decodes kept in LoopStats
MAX_RECORDED_DECODE_FAILURES = 100

Sleep = Callable[[float], Awaitable[None]]


class EventPersister(Protocol):
    async def persist(self, events: Sequence[SwapEvent]) -> int: ...


class CycleStage(str, Enum):
    """Stage of the cycle currently executing."""

    IDLE = "idle"
    FETCH_PAGE = "fetch_page"
    FILTER_DEDUP = "filter_dedup"
    FETCH_TX = "fetch_tx"
    EXTRACT = "extract"
    PERSIST = "persist"
    ADVANCE_CURSOR = "advance_cursor"


class CycleOutcome(str, Enum):
    """How a cycle ended."""

    PERSISTED = "persisted"
    IDLE = "idle"
    FETCH_FAILED = "fetch_failed"
    DECODE_FAILED = "decode_failed"
    PERSIST_FAILED = "persist_failed"


@dataclass(frozen=True)
class CycleResult:
    """Summary of one cycle. `anchor` is where the next cycle pages from."""

    outcome: CycleOutcome
    anchor: Cursor | None
    offered: int = 0
    events: int = 0
    inserted: int = 0
    error: str | None = None


@dataclass
class IngestionState:
    """Mutable state owned by a single loop instance."""

    direction: Direction
    cursor: Cursor | None
    dedup: DedupCache
    empty_pages: int = 0
    exhaustion_reported: bool = False

    @classmethod
    def initial(
        cls,
        direction: Direction,
        *,
        start_signature: str | None = None,
        dedup: DedupCache | None = None,
    ) -> IngestionState:
        """Forward starts from the ledger head, backward from `start_signature`."""
        if direction is Direction.BACKWARD and not start_signature:
            raise ValueError("Backward ingestion requires a start signature")
        cursor = Cursor(signature=start_signature, block_time=0) if start_signature else None
        return cls(
            direction=direction,
            cursor=cursor,
            dedup=dedup if dedup is not None else DedupCache(),
        )


class ReconciliationLoop:
    """Drives ingestion cycles until stopped.

    Cycles are strictly sequential. Retryable failures back off exponentially
    between `retry_delay_seconds` and `max_retry_delay_seconds`; an idle cycle
    waits `idle_delay_seconds`. `stop()` lets the in-flight cycle finish and
    cuts any pending sleep short.

    Example:
        ```python
        loop = ReconciliationLoop(
            state=IngestionState.initial(Direction.FORWARD),
            paginator=paginator,
            fetcher=fetcher,
            extractor=extractor,
            persister=persister,
        )
        await loop.run()
        ```
    """

    def __init__(
        self,
        *,
        state: IngestionState,
        paginator: SignaturePaginator,
        fetcher: TransactionFetcher,
        extractor: EventExtractor,
        persister: EventPersister,
        idle_delay_seconds: float = DEFAULT_IDLE_DELAY_SECONDS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_retry_delay_seconds: float = DEFAULT_MAX_RETRY_DELAY_SECONDS,
        exhausted_after_empty_pages: int = DEFAULT_EXHAUSTED_AFTER_EMPTY_PAGES,
        sleep: Sleep | None = None,
    ) -> None:
        self._state = state
        self._paginator = paginator
        self._fetcher = fetcher
        self._extractor = extractor
        self._persister = persister
        self._idle_delay = idle_delay_seconds
        self._retry_delay = retry_delay_seconds
        self._max_retry_delay = max_retry_delay_seconds
        self._exhausted_after = exhausted_after_empty_pages
        self._sleep = sleep or self._wait_or_stop

        self._stage = CycleStage.IDLE
        self._stats = LoopStats()
        self._stop_event = asyncio.Event()
        self._consecutive_failures = 0

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def stage(self) -> CycleStage:
        return self._stage

    @property
    def stats(self) -> LoopStats:
        return self._stats

    @property
    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request shutdown after the in-flight cycle."""
        logger.info("Stop requested")
        self._stop_event.set()

    async def run(self) -> None:
        """Run cycles until `stop()` is called."""
        logger.info(
            "Starting %s ingestion from %s",
            self._state.direction.value,
            self._state.cursor.signature if self._state.cursor else "ledger head",
        )
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
            except Exception as e:
                logger.exception("Unexpected error in ingestion cycle")
                self._stats.last_error = str(e)
                result = CycleResult(
                    outcome=CycleOutcome.FETCH_FAILED, anchor=self._state.cursor, error=str(e)
                )
            if self._stop_event.is_set():
                break
            delay = self._delay_after(result)
            if delay > 0:
                await self._sleep(delay)
        self._stage = CycleStage.IDLE
        logger.info("Ingestion stopped: %s", self._stats)

    def _delay_after(self, result: CycleResult) -> float:
        if result.outcome in (CycleOutcome.FETCH_FAILED, CycleOutcome.PERSIST_FAILED):
            self._consecutive_failures += 1
            delay = self._retry_delay * (2 ** (self._consecutive_failures - 1))
            delay = min(delay, self._max_retry_delay)
            logger.info("Retrying in %.1fs (attempt %d)", delay, self._consecutive_failures)
            return delay
        self._consecutive_failures = 0
        if result.outcome is CycleOutcome.IDLE:
            return self._idle_delay
        return 0.0

    async def _wait_or_stop(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass

    async def run_once(self) -> CycleResult:
        """Execute a single cycle."""
        state = self._state
        previous = state.cursor
        self._stats.cycles += 1
        state.dedup.maybe_reset()

        self._stage = CycleStage.FETCH_PAGE
        try:
            page = await self._paginator.fetch_page(previous, state.direction)
        except Exception as e:
            logger.warning("Failed to fetch signature page: %s", e)
            return self._fetch_failed(previous, e)
        observed = self._extremal_cursor(page)

        self._stage = CycleStage.FILTER_DEDUP
        fresh = state.dedup.filter_new(page.candidates)
        if not fresh:
            return await self._idle(page, observed)
        state.empty_pages = 0

        result = await self._process(fresh, previous)
        if result.outcome is not CycleOutcome.PERSISTED:
            return result

        self._stage = CycleStage.ADVANCE_CURSOR
        self._commit(observed)
        self._stage = CycleStage.IDLE
        return replace(result, anchor=state.cursor)

    async def _process(self, fresh: list[str], previous: Cursor | None) -> CycleResult:
        """FETCH_TX, EXTRACT and PERSIST for freshly paged plus pending signatures."""
        self._stage = CycleStage.FETCH_TX
        try:
            batch = await self._fetcher.fetch_with_backfill(fresh)
        except TransactionFetchError as e:
            logger.warning("Failed to fetch transactions: %s", e)
            self._state.dedup.discard(fresh)
            return self._fetch_failed(previous, e)

        self._stage = CycleStage.EXTRACT
        events: list[SwapEvent] = []
        deferred: list[str] = []
        for record in batch.resolved:
            try:
                events.extend(self._extractor.extract(record))
            except MissingBlockTimeError as e:
                deferred.append(e.signature)
            except DecodeError as e:
                return self._decode_failed(e, batch, fresh, previous)
        if deferred:
            logger.warning(
                "%d transactions have no block time yet, queued for refetch", len(deferred)
            )
            self._fetcher.requeue(deferred)
        self._stats.events_extracted += len(events)

        self._stage = CycleStage.PERSIST
        try:
            inserted = await self._persister.persist(events)
        except PersistenceError as e:
            self._stats.persist_failures += 1
            self._stats.last_error = str(e)
            self._fetcher.requeue(_resolved_signatures(batch))
            self._stage = CycleStage.IDLE
            logger.warning(
                "Persist failed, %d signatures queued for refetch: %s",
                len(self._fetcher.pending),
                e,
            )
            return CycleResult(
                outcome=CycleOutcome.PERSIST_FAILED,
                anchor=previous,
                offered=len(batch.signatures),
                events=len(events),
                error=str(e),
            )
        self._stats.rows_inserted += inserted
        return CycleResult(
            outcome=CycleOutcome.PERSISTED,
            anchor=previous,
            offered=len(batch.signatures),
            events=len(events),
            inserted=inserted,
        )

    async def _idle(self, page: Page, observed: Cursor | None) -> CycleResult:
        state = self._state
        self._stats.idle_cycles += 1
        self._commit(observed)

        if page.is_empty:
            state.empty_pages += 1
            if (
                state.direction is Direction.BACKWARD
                and state.empty_pages >= self._exhausted_after
                and not state.exhaustion_reported
            ):
                state.exhaustion_reported = True
                logger.warning(
                    "History exhausted before %s after %d empty pages",
                    state.cursor.signature if state.cursor else "ledger head",
                    state.empty_pages,
                )
        else:
            state.empty_pages = 0

        if state.cursor is not None:
            logger.info(
                "Ran out of signatures. The %s blocktime is %d with hash %s",
                "largest" if state.direction is Direction.FORWARD else "smallest",
                state.cursor.block_time,
                state.cursor.signature,
            )
        else:
            logger.info("Ran out of signatures")

        result = CycleResult(outcome=CycleOutcome.IDLE, anchor=state.cursor)
        if self._fetcher.pending:
            backfill = await self._process([], state.cursor)
            if backfill.outcome is not CycleOutcome.PERSISTED:
                return backfill
            result = replace(backfill, outcome=CycleOutcome.IDLE, anchor=state.cursor)
        self._stage = CycleStage.IDLE
        return result

    def _decode_failed(
        self,
        error: DecodeError,
        batch: FetchBatch,
        fresh: list[str],
        previous: Cursor | None,
    ) -> CycleResult:
        state = self._state
        failing = error.signature
        self._stats.decode_failures += 1
        self._stats.last_error = str(error)
        if len(self._stats.failed_decodes) < MAX_RECORDED_DECODE_FAILURES:
            self._stats.failed_decodes.append(failing)

        self._fetcher.requeue(s for s in _resolved_signatures(batch) if s != failing)
        self._fetcher.drop(failing)

        if failing in fresh:
            record = next((r for r in batch.resolved if r.signature == failing), None)
            block_time = record.block_time if record is not None else None
            state.cursor = Cursor(signature=failing, block_time=block_time or 0)
        else:
            logger.warning("Dropping pending signature %s after decode failure", failing)
            state.cursor = previous

        self._stage = CycleStage.IDLE
        logger.error("Aborted batch at %s, resuming from it", failing)
        return CycleResult(
            outcome=CycleOutcome.DECODE_FAILED,
            anchor=state.cursor,
            offered=len(batch.signatures),
            error=str(error),
        )

    def _fetch_failed(self, previous: Cursor | None, error: Exception) -> CycleResult:
        self._stats.fetch_failures += 1
        self._stats.last_error = str(error)
        self._state.cursor = previous
        self._stage = CycleStage.IDLE
        return CycleResult(outcome=CycleOutcome.FETCH_FAILED, anchor=previous, error=str(error))

    def _extremal_cursor(self, page: Page) -> Cursor | None:
        tracker = CursorTracker(self._state.direction)
        for info in page.observed:
            tracker.observe(info.signature, info.block_time)
        return tracker.current()

    def _commit(self, candidate: Cursor | None) -> None:
        state = self._state
        if candidate is None:
            return
        current = state.cursor
        if (
            state.direction is Direction.FORWARD
            and current is not None
            and candidate.block_time < current.block_time
        ):
            logger.warning(
                "Not moving cursor back from %s (%d) to %s (%d)",
                current.signature,
                current.block_time,
                candidate.signature,
                candidate.block_time,
            )
            return
        state.cursor = candidate
        logger.debug("Cursor at %s (%d)", candidate.signature, candidate.block_time)


def _resolved_signatures(batch: FetchBatch) -> list[str]:
    return [r.signature for r in batch.resolved]

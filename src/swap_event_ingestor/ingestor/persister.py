"""Idempotent persistence of swap events."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING

from swap_event_ingestor.exceptions import PersistenceError
from swap_event_ingestor.storage.repos import SwapEventDTO, SwapEventRepository

from .models import SwapEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager["AsyncSession"]]


class SwapEventPersister:
    """Writes swap events with insert-or-ignore semantics.

    Args:
        session_factory: Callable returning an async context manager that
            yields a session, e.g. `DatabaseManager.get_async_session`.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def persist(self, events: Sequence[SwapEvent]) -> int:
        """Insert events, ignoring ones already stored.

        Returns:
            Number of rows newly inserted.

        Raises:
            PersistenceError: If the write fails. Nothing from the batch is
                committed in that case.
        """
        if not events:
            return 0
        try:
            async with self._session_factory() as session:
                inserted = await SwapEventRepository(session).insert_many(
                    [SwapEventDTO.from_event(event) for event in events]
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to persist %d events: %s", len(events), e)
            raise PersistenceError(f"Failed to persist {len(events)} events: {e}") from e

        logger.info(
            "%d rows inserted (%d events, %d duplicates)",
            inserted,
            len(events),
            len(events) - inserted,
        )
        return inserted

"""Extremal-signature tracking for pagination anchors."""

from __future__ import annotations

from .models import Cursor, Direction


class CursorTracker:
    """Tracks the most extreme signature observed in the current batch.

    Forward ingestion keeps the newest block time, backward ingestion keeps
    the oldest. The first observation of a batch is adopted unconditionally
    and ties keep the first-seen signature.
    """

    def __init__(self, direction: Direction) -> None:
        self._direction = direction
        self._cursor: Cursor | None = None

    @property
    def direction(self) -> Direction:
        return self._direction

    def observe(self, signature: str, block_time: int | None) -> None:
        if self._cursor is None:
            self._cursor = Cursor(signature=signature, block_time=block_time or 0)
            return
        if block_time is None:
            return
        if is_more_extreme(block_time, self._cursor.block_time, self._direction):
            self._cursor = Cursor(signature=signature, block_time=block_time)

    def current(self) -> Cursor | None:
        return self._cursor


def is_more_extreme(candidate: int, current: int, direction: Direction) -> bool:
    """Strict comparison along the pagination direction."""
    if direction is Direction.FORWARD:
        return candidate > current
    return candidate < current

"""Bounded membership cache of already-offered signatures."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterable
from typing import Literal

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_CAPACITY = 1000

EvictionPolicy = Literal["clear", "oldest"]


class DedupCache:
    """Set of signatures already handed to the fetch/extract/persist pipeline.

    Guarantees at-most-once offering of a signature within a non-reset window.
    Global exactly-once is left to the idempotent persistence layer.

    With the default ``clear`` policy the whole set is dropped once it grows
    past capacity. The ``oldest`` policy evicts oldest-first down to capacity,
    which avoids a burst of re-offered signatures right after a reset.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_DEDUP_CAPACITY,
        *,
        eviction: EvictionPolicy = "clear",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._eviction = eviction
        self._seen: OrderedDict[str, None] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, signature: object) -> bool:
        return signature in self._seen

    def seen_before(self, signature: str) -> bool:
        return signature in self._seen

    def mark_seen(self, signature: str) -> None:
        if signature in self._seen:
            return
        if len(self._seen) >= self._capacity:
            self._evict(room_for=1)
        self._seen[signature] = None

    def discard(self, signatures: Iterable[str]) -> None:
        """Forget signatures so a later page can offer them again."""
        for signature in signatures:
            self._seen.pop(signature, None)

    def maybe_reset(self) -> None:
        """Enforce capacity. Called once per cycle before the cache is used."""
        if len(self._seen) >= self._capacity:
            self._evict()

    def _evict(self, *, room_for: int = 0) -> None:
        if self._eviction == "oldest":
            while self._seen and len(self._seen) + room_for > self._capacity:
                self._seen.popitem(last=False)
            return
        logger.debug("Dedup cache reached %d entries, clearing", len(self._seen))
        self._seen.clear()

    def filter_new(self, signatures: Iterable[str]) -> list[str]:
        """Return unseen signatures in order, marking each as seen."""
        fresh: list[str] = []
        for signature in signatures:
            if self.seen_before(signature):
                continue
            self.mark_seen(signature)
            fresh.append(signature)
        return fresh

"""Signature resolution with backfill of previously unresolved signatures."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from swap_event_ingestor.exceptions import TransactionFetchError

from .models import TransactionRecord
from .paginator import LedgerClient

logger = logging.getLogger(__name__)

DEFAULT_FETCH_BATCH_SIZE = 100
DEFAULT_MAX_PENDING = 1000


@dataclass(frozen=True)
class FetchBatch:
    """Signatures offered in one cycle and their index-aligned records."""

    signatures: tuple[str, ...]
    records: tuple[TransactionRecord | None, ...]
    from_pending: frozenset[str]

    @property
    def resolved(self) -> list[TransactionRecord]:
        return [r for r in self.records if r is not None]


class TransactionFetcher:
    """Resolves signatures to transaction records.

    Owns the pending-refetch set: signatures that failed to resolve are
    re-offered at the front of the next batch and dropped from the set as soon
    as they resolve. The set holds at most `max_pending` signatures and drops
    the longest-pending ones past that.
    """

    def __init__(
        self,
        client: LedgerClient,
        *,
        batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self._client = client
        self._batch_size = batch_size
        self._max_pending = max_pending
        # dict keeps insertion order
        self._pending: dict[str, None] = {}

    @property
    def pending(self) -> tuple[str, ...]:
        """PendingRefetchSet contents, oldest first."""
        return tuple(self._pending)

    def requeue(self, signatures: Iterable[str]) -> None:
        """Add signatures to the pending set."""
        for signature in signatures:
            self._pending[signature] = None
        self._trim_pending()

    def drop(self, signature: str) -> None:
        self._pending.pop(signature, None)

    def merge_pending(self, new_signatures: Sequence[str]) -> list[str]:
        """Prepend the pending set to freshly paged signatures, without repeats."""
        merged = list(self._pending)
        seen = set(merged)
        for signature in new_signatures:
            if signature not in seen:
                seen.add(signature)
                merged.append(signature)
        return merged

    async def resolve(self, signatures: Sequence[str]) -> list[TransactionRecord | None]:
        """Resolve signatures, index-aligned with the input.

        Pending-set accounting is applied only after every chunk resolved.

        Raises:
            TransactionFetchError: If any chunk call fails or returns a result
                that is not aligned with its input.
        """
        records: list[TransactionRecord | None] = []
        for start in range(0, len(signatures), self._batch_size):
            chunk = list(signatures[start : start + self._batch_size])
            try:
                resolved = await self._client.get_transactions(chunk)
            except Exception as e:
                raise TransactionFetchError(
                    f"Failed to fetch transactions for {len(chunk)} signatures: {e}"
                ) from e
            if resolved is None or len(resolved) != len(chunk):
                got = "None" if resolved is None else str(len(resolved))
                raise TransactionFetchError(
                    f"Transaction batch returned {got} results for {len(chunk)} signatures"
                )
            records.extend(resolved)

        unresolved = 0
        for signature, record in zip(signatures, records, strict=True):
            if record is None:
                self._pending[signature] = None
                unresolved += 1
            elif signature in self._pending:
                del self._pending[signature]
                logger.debug("Backfilled %s", signature)
        if unresolved:
            logger.info(
                "Could not resolve %d of %d signatures, %d pending refetch",
                unresolved,
                len(signatures),
                len(self._pending),
            )
        self._trim_pending()
        return records

    async def fetch_with_backfill(self, new_signatures: Sequence[str]) -> FetchBatch:
        from_pending = frozenset(self._pending)
        signatures = self.merge_pending(new_signatures)
        logger.info(
            "Fetching %d signatures and %d unfetched ones from previous runs",
            len(signatures) - len(from_pending),
            len(from_pending),
        )
        records = await self.resolve(signatures)
        return FetchBatch(
            signatures=tuple(signatures),
            records=tuple(records),
            from_pending=from_pending,
        )

    def _trim_pending(self) -> None:
        excess = len(self._pending) - self._max_pending
        if excess <= 0:
            return
        dropped = list(self._pending)[:excess]
        for signature in dropped:
            del self._pending[signature]
        logger.warning(
            "Pending refetch set over %d signatures, dropped %d oldest starting at %s",
            self._max_pending,
            excess,
            dropped[0],
        )

"""Signature pagination relative to a cursor anchor."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from .models import Cursor, Direction, Page, SignatureInfo, TransactionRecord

logger = logging.getLogger(__name__)

# Largest page getSignaturesForAddress serves
MAX_PAGE_LIMIT = 1000


class LedgerClient(Protocol):
    """The subset of the ledger RPC the ingestor consumes."""

    async def get_signatures(
        self,
        address: str,
        *,
        before: str | None = None,
        until: str | None = None,
        limit: int | None = None,
    ) -> list[SignatureInfo]: ...

    async def get_transactions(self, signatures: Sequence[str]) -> list[TransactionRecord | None]: ...


class SignaturePaginator:
    """Queries pages of signatures for the target program address.

    Forward pages use the anchor as an `until` bound (everything newer than the
    anchor, up to the present). When more signatures landed since the anchor
    than one page holds, the gap is walked backwards with `before` until the
    anchor is reached and kept as a backlog. Each forward page is then the
    oldest `page_limit` signatures newer than the anchor, so a large backlog is
    worked through oldest-first one page per cycle. Backward pages use the
    anchor as a `before` bound and return a single page of older history.
    """

    def __init__(
        self,
        client: LedgerClient,
        address: str,
        *,
        page_limit: int = MAX_PAGE_LIMIT,
    ) -> None:
        if not 1 <= page_limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"page_limit must be between 1 and {MAX_PAGE_LIMIT}")
        self._client = client
        self._address = address
        self._page_limit = page_limit
        # newest-first, everything between _backlog_origin and the head at walk time
        self._backlog: list[SignatureInfo] = []
        self._backlog_index: dict[str, int] = {}
        self._backlog_origin: str | None = None

    async def fetch_page(self, anchor: Cursor | None, direction: Direction) -> Page:
        """Fetch the next page of signatures, newest-first.

        Errored transactions are kept in `observed` (they still move the cursor)
        and excluded from `candidates`.
        """
        if anchor is None:
            logger.info("Fetching latest %d signatures", self._page_limit)
            entries = await self._client.get_signatures(self._address, limit=self._page_limit)
        elif direction is Direction.FORWARD:
            entries = self._backlog_page(anchor.signature)
            if entries is None:
                logger.info("Fetching until %s", anchor.signature)
                entries = await self._fetch_until(anchor.signature)
        else:
            logger.info("Fetching before %s", anchor.signature)
            entries = await self._client.get_signatures(
                self._address, before=anchor.signature, limit=self._page_limit
            )

        candidates = tuple(e.signature for e in entries if not e.errored)
        errored = len(entries) - len(candidates)
        if errored:
            logger.debug("Skipping %d errored transactions", errored)
        return Page(observed=tuple(entries), candidates=candidates)

    async def _fetch_until(self, until: str) -> list[SignatureInfo]:
        entries = await self._client.get_signatures(
            self._address, until=until, limit=self._page_limit
        )
        chunk = entries
        pages = 1
        while len(chunk) == self._page_limit:
            chunk = await self._client.get_signatures(
                self._address,
                before=chunk[-1].signature,
                until=until,
                limit=self._page_limit,
            )
            entries.extend(chunk)
            pages += 1
        if len(entries) <= self._page_limit:
            self._clear_backlog()
            return entries

        logger.warning(
            "Backlog since %s spans %d pages (%d signatures), working through it oldest-first",
            until,
            pages,
            len(entries),
        )
        self._backlog = entries
        self._backlog_index = {e.signature: i for i, e in enumerate(entries)}
        self._backlog_origin = until
        return entries[-self._page_limit :]

    def _backlog_page(self, anchor: str) -> list[SignatureInfo] | None:
        """Oldest page of the walked backlog newer than `anchor`, if the anchor is in it."""
        if not self._backlog:
            return None
        if anchor == self._backlog_origin:
            remaining = self._backlog
        else:
            position = self._backlog_index.get(anchor)
            if position is None:
                logger.info("Anchor %s is outside the backlog, walking again", anchor)
                self._clear_backlog()
                return None
            remaining = self._backlog[:position]
        if not remaining:
            self._clear_backlog()
            return None
        logger.info(
            "Taking %d of %d backlog signatures after %s",
            min(len(remaining), self._page_limit),
            len(remaining),
            anchor,
        )
        return remaining[-self._page_limit :]

    def _clear_backlog(self) -> None:
        self._backlog = []
        self._backlog_index = {}
        self._backlog_origin = None

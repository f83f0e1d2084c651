"""Swap event extraction from resolved transactions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from swap_event_ingestor.exceptions import DecodeError, MissingBlockTimeError

from .models import SwapEvent, TransactionRecord

if TYPE_CHECKING:
    from swap_event_ingestor.chain.decoder import LogDecoder

logger = logging.getLogger(__name__)

SWAP_EVENT_NAME = "SwapEvent"


def _field(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    raise KeyError(names[0])


def swap_event_from_payload(
    signature: str, block_time: int, data: Mapping[str, Any]
) -> SwapEvent:
    """Build a SwapEvent from a decoded event payload.

    Accepts both camelCase IDL field names and their snake_case forms.
    """
    return SwapEvent(
        txn_hash=signature,
        block_time=block_time,
        pool_addr=str(_field(data, "poolState", "pool_state")),
        sender=str(_field(data, "sender")),
        amount0=int(_field(data, "amount0")),
        amount1=int(_field(data, "amount1")),
    )


class EventExtractor:
    """Turns a transaction's program log into swap events.

    Raises DecodeError when the decoder rejects the log or a recognized event
    has a payload that cannot be converted. Unrecognized event names are logged
    and dropped. A transaction with swap events but no block time raises
    MissingBlockTimeError unless `allow_missing_block_time` is set.
    """

    def __init__(
        self,
        decoder: LogDecoder,
        *,
        event_name: str = SWAP_EVENT_NAME,
        allow_missing_block_time: bool = False,
    ) -> None:
        self._decoder = decoder
        self._event_name = event_name
        self._allow_missing_block_time = allow_missing_block_time

    def extract(self, record: TransactionRecord) -> list[SwapEvent]:
        if not record.succeeded:
            logger.debug("Skipping failed transaction %s", record.signature)
            return []

        try:
            decoded = self._decoder.decode_logs(record.log_lines)
        except Exception as e:
            logger.error("Program log decode failed @ %s: %s", record.signature, e)
            logger.error("Log lines: %s", list(record.log_lines))
            raise DecodeError(record.signature) from e

        block_time = record.block_time
        if block_time is None:
            if not self._allow_missing_block_time:
                if any(event.name == self._event_name for event in decoded):
                    raise MissingBlockTimeError(record.signature)
                return []
            block_time = 0

        events: list[SwapEvent] = []
        for event in decoded:
            if event.name != self._event_name:
                logger.info("Ignoring event %s in %s", event.name, record.signature)
                continue
            try:
                events.append(swap_event_from_payload(record.signature, block_time, event.data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Malformed %s payload in %s: %r", event.name, record.signature, e)
                raise DecodeError(
                    record.signature, f"Malformed {event.name} payload in {record.signature}"
                ) from e
        return events

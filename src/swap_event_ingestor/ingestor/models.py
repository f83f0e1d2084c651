"""Data models for the ingestor module."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Direction(str, Enum):
    """Pagination direction relative to the anchor signature."""

    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class Cursor:
    """Pagination anchor: a signature and its block time (unix seconds)."""

    signature: str
    block_time: int


@dataclass(frozen=True)
class SignatureInfo:
    """A single entry of a signatures-for-address page."""

    signature: str
    block_time: int | None = None
    errored: bool = False


@dataclass(frozen=True)
class Page:
    """One page of signatures, newest-first.

    `observed` holds every entry returned by the RPC (errored ones included);
    `candidates` holds the signatures eligible for event extraction.
    """

    observed: tuple[SignatureInfo, ...]
    candidates: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.observed


@dataclass(frozen=True)
class TransactionRecord:
    """A resolved transaction with its program log output."""

    signature: str
    block_time: int | None
    log_lines: tuple[str, ...] = ()
    succeeded: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize for caching."""
        return {
            "signature": self.signature,
            "block_time": self.block_time,
            "log_lines": list(self.log_lines),
            "succeeded": self.succeeded,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        """Create a TransactionRecord from a cached dictionary."""
        block_time = data.get("block_time")
        return cls(
            signature=str(data["signature"]),
            block_time=int(block_time) if block_time is not None else None,
            log_lines=tuple(str(line) for line in data.get("log_lines", [])),
            succeeded=bool(data.get("succeeded", True)),
        )


@dataclass(frozen=True)
class SwapEvent:
    """A swap decoded from a transaction's program log."""

    txn_hash: str
    block_time: int
    pool_addr: str
    sender: str
    amount0: int
    amount1: int


@dataclass
class LoopStats:
    """Statistics for the reconciliation loop."""

    cycles: int = 0
    idle_cycles: int = 0
    fetch_failures: int = 0
    decode_failures: int = 0
    persist_failures: int = 0
    events_extracted: int = 0
    rows_inserted: int = 0
    last_error: str | None = None
    failed_decodes: list[str] = field(default_factory=list)

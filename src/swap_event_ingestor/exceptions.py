"""Exception hierarchy for the ingestion engine."""

from __future__ import annotations


class IngestorError(Exception):
    """Base exception for all ingestor errors."""


class LedgerClientError(IngestorError):
    """Base exception for ledger RPC client errors."""


class RPCError(LedgerClientError):
    """Raised when an RPC call fails after all retries and failover."""


class RateLimitError(LedgerClientError):
    """Raised when the RPC provider keeps rejecting requests for rate limiting."""


class TransactionFetchError(IngestorError):
    """Raised when a batch of signatures could not be resolved as a whole.

    No pending-set accounting is applied when this is raised.
    """


class DecodeError(IngestorError):
    """Raised when the program-log decoder rejects a transaction's logs.

    Attributes:
        signature: Signature of the transaction whose logs failed to decode.
    """

    def __init__(self, signature: str, message: str | None = None) -> None:
        self.signature = signature
        super().__init__(message or f"Failed to decode program logs for {signature}")


class PersistenceError(IngestorError):
    """Raised when writing events to the relational store fails."""


class MissingBlockTimeError(IngestorError):
    """Raised when a transaction carrying events was resolved without a block time.

    Attributes:
        signature: Signature of the transaction to refetch later.
    """

    def __init__(self, signature: str) -> None:
        self.signature = signature
        super().__init__(f"Transaction {signature} has no block time yet")

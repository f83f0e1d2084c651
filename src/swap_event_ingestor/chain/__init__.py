"""Ledger access layer - Solana RPC client and program-log decoding."""

from swap_event_ingestor.chain.client import RateLimiter, SolanaClient, record_from_response
from swap_event_ingestor.chain.decoder import AnchorEventDecoder, DecodedEvent, LogDecoder

__all__ = [
    "AnchorEventDecoder",
    "DecodedEvent",
    "LogDecoder",
    "RateLimiter",
    "SolanaClient",
    "record_from_response",
]

"""Solana RPC client with rate limiting, retries and caching.

This module provides the ledger client used by the ingestion engine:
- Signature pages for a program address (before/until anchors)
- Batch resolution of signatures to transaction records
- Retry logic with exponential backoff
- Rate limiting to respect provider limits
- Failover to secondary RPC URL
- Optional Redis caching of finalized transaction records
"""

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from redis.asyncio import Redis
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.signature import Signature

from swap_event_ingestor.exceptions import LedgerClientError, RateLimitError, RPCError
from swap_event_ingestor.ingestor.models import SignatureInfo, TransactionRecord

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CACHE_TTL_SECONDS = 24 * 3600
DEFAULT_MAX_REQUESTS_PER_SECOND = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENT_FETCHES = 8

_RETRYABLE_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError, OSError)


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> "RateLimiter":
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


def _is_rate_limited(error: BaseException | None) -> bool:
    if error is None:
        return False
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 429
    cause = error.__cause__ or error.__context__
    if isinstance(cause, httpx.HTTPStatusError):
        return cause.response.status_code == 429
    return "429" in str(error)


def record_from_response(signature: str, value: Any) -> TransactionRecord | None:
    """Convert a getTransaction result into a TransactionRecord.

    Args:
        signature: The signature that was requested.
        value: The `value` of the RPC response, None when the node could not
            resolve the signature.
    """
    if value is None:
        return None
    meta = getattr(value.transaction, "meta", None)
    log_lines: tuple[str, ...] = ()
    succeeded = True
    if meta is not None:
        log_lines = tuple(meta.log_messages or ())
        succeeded = meta.err is None
    return TransactionRecord(
        signature=signature,
        block_time=value.block_time,
        log_lines=log_lines,
        succeeded=succeeded,
    )


class SolanaClient:
    """Solana RPC client with caching and rate limiting.

    Example:
        ```python
        client = SolanaClient(
            rpc_url="https://api.mainnet-beta.solana.com",
            redis=Redis.from_url("redis://localhost:6379"),
        )

        page = await client.get_signatures(program_address, until=last_seen)
        records = await client.get_transactions([s.signature for s in page])
        await client.aclose()
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        commitment: str = "finalized",
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT,
        max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT_FETCHES,
    ) -> None:
        """Initialize the Solana client.

        Args:
            rpc_url: Primary Solana RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            commitment: Commitment level for all queries.
            redis: Optional Redis client for caching finalized transactions.
            cache_ttl_seconds: Cache TTL in seconds.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum retry attempts per endpoint.
            retry_delay_seconds: Initial delay between retries.
            request_timeout_seconds: HTTP timeout per call.
            max_concurrent_fetches: Concurrent getTransaction calls per batch.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._commitment = Commitment(commitment)
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._max_concurrent_fetches = max_concurrent_fetches

        self._client = AsyncClient(rpc_url, commitment=self._commitment, timeout=request_timeout_seconds)
        self._client_fallback: AsyncClient | None = None
        if fallback_rpc_url:
            self._client_fallback = AsyncClient(
                fallback_rpc_url, commitment=self._commitment, timeout=request_timeout_seconds
            )

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

        # Track primary RPC health
        self._primary_healthy = True
        self._last_primary_check = 0.0
        self._primary_recovery_interval = 60.0

        self._cache_prefix = "solana:"

    @property
    def _cache_enabled(self) -> bool:
        # Only finalized records are immutable.
        return self._redis is not None and self._commitment == "finalized"

    def _cache_key(self, key_type: str, key: str) -> str:
        return f"{self._cache_prefix}{key_type}:{key}"

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > self._primary_recovery_interval:
            self._last_primary_check = now
            return True
        return False

    async def _call_with_retries(
        self,
        client: AsyncClient,
        label: str,
        func_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> tuple[Any, BaseException | None]:
        last_error: BaseException | None = None
        delay = self._retry_delay
        for attempt in range(self._max_retries):
            try:
                method = getattr(client, func_name)
                return await method(*args, **kwargs), None
            except _RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    "%s RPC %s failed (attempt %d/%d): %s",
                    label,
                    func_name,
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2
        return None, last_error

    async def _execute_with_retry(self, func_name: str, *args: Any, **kwargs: Any) -> Any:
        """Execute an RPC call with retry and failover logic.

        Raises:
            RateLimitError: If the provider kept answering 429.
            RPCError: If all retries and failover fail.
        """
        await self._rate_limiter.acquire()

        last_error: BaseException | None = None

        if self._should_try_primary():
            result, last_error = await self._call_with_retries(
                self._client, "Primary", func_name, *args, **kwargs
            )
            if last_error is None:
                self._primary_healthy = True
                return result
            self._primary_healthy = False
            self._last_primary_check = time.monotonic()

        if self._client_fallback is not None:
            result, fallback_error = await self._call_with_retries(
                self._client_fallback, "Fallback", func_name, *args, **kwargs
            )
            if fallback_error is None:
                logger.info("Fallback RPC succeeded for %s", func_name)
                return result
            last_error = fallback_error

        if _is_rate_limited(last_error):
            raise RateLimitError(f"RPC call {func_name} rate limited: {last_error}") from last_error
        raise RPCError(f"RPC call {func_name} failed after all retries: {last_error}") from last_error

    async def get_signatures(
        self,
        address: str,
        *,
        before: str | None = None,
        until: str | None = None,
        limit: int | None = None,
    ) -> list[SignatureInfo]:
        """Get a page of signatures for an address, newest-first.

        Args:
            address: Account address to query.
            before: Start searching backwards from this signature (exclusive).
            until: Stop once this signature is reached (exclusive).
            limit: Maximum number of signatures (RPC default 1000).
        """
        resp = await self._execute_with_retry(
            "get_signatures_for_address",
            Pubkey.from_string(address),
            before=Signature.from_string(before) if before else None,
            until=Signature.from_string(until) if until else None,
            limit=limit,
            commitment=self._commitment,
        )
        return [
            SignatureInfo(
                signature=str(item.signature),
                block_time=item.block_time,
                errored=item.err is not None,
            )
            for item in resp.value
        ]

    async def _fetch_transaction(self, signature: str) -> TransactionRecord | None:
        resp = await self._execute_with_retry(
            "get_transaction",
            Signature.from_string(signature),
            encoding="json",
            commitment=self._commitment,
            max_supported_transaction_version=0,
        )
        return record_from_response(signature, resp.value)

    async def get_transactions(self, signatures: Sequence[str]) -> list[TransactionRecord | None]:
        """Resolve signatures to transaction records, index-aligned.

        Unresolvable signatures map to None. Any call that fails after retries
        fails the whole batch.

        Raises:
            RPCError: If any signature could not be queried.
        """
        if not signatures:
            return []

        results: list[TransactionRecord | None] = [None] * len(signatures)
        uncached: list[int] = []

        for i, signature in enumerate(signatures):
            if not self._cache_enabled:
                uncached.append(i)
                continue
            cached = await self._get_cached(self._cache_key("tx", signature))
            if cached is None:
                uncached.append(i)
                continue
            try:
                results[i] = TransactionRecord.from_dict(json.loads(cached))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Failed to parse cached transaction %s: %s", signature, e)
                uncached.append(i)

        if uncached:
            semaphore = asyncio.Semaphore(self._max_concurrent_fetches)

            async def fetch_one(signature: str) -> TransactionRecord | None:
                async with semaphore:
                    return await self._fetch_transaction(signature)

            fetched = await asyncio.gather(
                *(fetch_one(signatures[i]) for i in uncached),
                return_exceptions=True,
            )
            for i, outcome in zip(uncached, fetched, strict=True):
                if isinstance(outcome, BaseException):
                    raise RPCError(
                        f"Failed to fetch transaction {signatures[i]}: {outcome}"
                    ) from outcome
                results[i] = outcome

            if self._cache_enabled:
                for i in uncached:
                    record = results[i]
                    if record is not None:
                        await self._set_cached(
                            self._cache_key("tx", record.signature),
                            json.dumps(record.to_dict()),
                        )

        return results

    async def health_check(self) -> bool:
        """Check if the client can reach the RPC."""
        try:
            await self._execute_with_retry("get_slot")
            return True
        except LedgerClientError:
            return False

    async def aclose(self) -> None:
        """Close the underlying HTTP sessions."""
        clients = [self._client]
        if self._client_fallback is not None:
            clients.append(self._client_fallback)
        for client in clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning("Failed to close RPC client session: %s", e)

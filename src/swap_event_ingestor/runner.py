"""Command runners wiring settings into the ingestion and rollup components.

This module implements the process-level commands:
- `ingest`: live forward ingestion from the ledger head
- `backfill`: backward ingestion from a start signature
- `rollup`: daily pool/token volume tables for a date range
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import date

from anchorpy import Idl, Program, Provider, Wallet
from redis.asyncio import Redis
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from swap_event_ingestor.chain.client import SolanaClient
from swap_event_ingestor.chain.decoder import AnchorEventDecoder
from swap_event_ingestor.config import Settings
from swap_event_ingestor.ingestor.dedup import DedupCache
from swap_event_ingestor.ingestor.extractor import EventExtractor
from swap_event_ingestor.ingestor.fetcher import TransactionFetcher
from swap_event_ingestor.ingestor.loop import IngestionState, ReconciliationLoop
from swap_event_ingestor.ingestor.models import Direction, LoopStats
from swap_event_ingestor.ingestor.paginator import SignaturePaginator
from swap_event_ingestor.ingestor.persister import SwapEventPersister
from swap_event_ingestor.rollup.daily_volume import (
    AnchorPoolTokenResolver,
    DailyVolumeRollup,
    RollupResult,
)
from swap_event_ingestor.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


def build_loop(
    settings: Settings,
    *,
    client: SolanaClient,
    db: DatabaseManager,
    direction: Direction,
    start_signature: str | None = None,
) -> ReconciliationLoop:
    """Assemble a ReconciliationLoop from settings."""
    if settings.program.idl_path is None:
        raise ValueError("PROGRAM_IDL_PATH is required to decode program logs")
    ingest = settings.ingest
    decoder = AnchorEventDecoder.from_idl_file(
        settings.program.idl_path, program_address=settings.program.address
    )
    state = IngestionState.initial(
        direction,
        start_signature=start_signature,
        dedup=DedupCache(ingest.dedup_capacity, eviction=ingest.dedup_eviction),
    )
    return ReconciliationLoop(
        state=state,
        paginator=SignaturePaginator(client, settings.program.address, page_limit=ingest.page_limit),
        fetcher=TransactionFetcher(
            client, batch_size=ingest.fetch_batch_size, max_pending=ingest.max_pending
        ),
        extractor=EventExtractor(decoder),
        persister=SwapEventPersister(db.get_async_session),
        idle_delay_seconds=ingest.idle_delay_seconds,
        retry_delay_seconds=ingest.retry_delay_seconds,
        max_retry_delay_seconds=ingest.max_retry_delay_seconds,
        exhausted_after_empty_pages=ingest.exhausted_after_empty_pages,
    )


def _install_signal_handlers(loop: ReconciliationLoop) -> None:
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, loop.stop)
        except NotImplementedError:
            # Windows event loops
            logger.debug("Signal handlers not supported, %s not installed", sig.name)


async def run_ingest(
    *,
    settings: Settings,
    direction: Direction,
    start_signature: str | None = None,
) -> LoopStats:
    """Run the reconciliation loop until SIGINT/SIGTERM."""
    settings.validate_requirements(command="ingest" if direction is Direction.FORWARD else "backfill")

    redis = Redis.from_url(settings.redis.url) if settings.redis.url else None
    client = SolanaClient(
        settings.solana.rpc_url,
        fallback_rpc_url=settings.solana.fallback_rpc_url,
        commitment=settings.solana.commitment,
        redis=redis,
        cache_ttl_seconds=settings.redis.transaction_cache_ttl_seconds,
        max_requests_per_second=settings.solana.max_requests_per_second,
        request_timeout_seconds=settings.solana.request_timeout_seconds,
    )
    db = DatabaseManager(settings.database.url)
    try:
        if not await client.health_check():
            logger.warning("Solana RPC health check failed, starting anyway")
        loop = build_loop(
            settings,
            client=client,
            db=db,
            direction=direction,
            start_signature=start_signature,
        )
        _install_signal_handlers(loop)
        await loop.run()
        return loop.stats
    finally:
        await client.aclose()
        await db.dispose_async()
        if redis is not None:
            await redis.aclose()


async def run_rollup(*, settings: Settings, start: date, end: date) -> RollupResult:
    settings.validate_requirements(command="rollup")
    if settings.program.idl_path is None:
        raise ValueError("PROGRAM_IDL_PATH is required to resolve pool tokens")

    idl = Idl.from_json(settings.program.idl_path.read_text(encoding="utf-8"))
    connection = AsyncClient(settings.solana.rpc_url, commitment=Commitment(settings.solana.commitment))
    # Read-only access, a throwaway keypair satisfies the provider
    provider = Provider(
        connection,
        Wallet(Keypair()),
        TxOpts(preflight_commitment=Commitment(settings.solana.commitment)),
    )
    program = Program(idl, Pubkey.from_string(settings.program.address), provider)
    db = DatabaseManager(settings.database.url)
    try:
        rollup = DailyVolumeRollup(db.get_async_session, AnchorPoolTokenResolver(program))
        return await rollup.run(start, end)
    finally:
        await program.close()
        await db.dispose_async()

"""Ingestion pipeline - pagination, dedup, fetch, extraction, persistence."""

from swap_event_ingestor.ingestor.models import (
    Cursor,
    Direction,
    LoopStats,
    Page,
    SignatureInfo,
    SwapEvent,
    TransactionRecord,
)
from swap_event_ingestor.ingestor.cursor import CursorTracker
from swap_event_ingestor.ingestor.dedup import DedupCache
from swap_event_ingestor.ingestor.paginator import LedgerClient, SignaturePaginator
from swap_event_ingestor.ingestor.fetcher import FetchBatch, TransactionFetcher
from swap_event_ingestor.ingestor.extractor import EventExtractor
from swap_event_ingestor.ingestor.persister import SwapEventPersister
from swap_event_ingestor.ingestor.loop import (
    CycleOutcome,
    CycleResult,
    CycleStage,
    IngestionState,
    ReconciliationLoop,
)

__all__ = [
    "Cursor",
    "CursorTracker",
    "CycleOutcome",
    "CycleResult",
    "CycleStage",
    "DedupCache",
    "Direction",
    "EventExtractor",
    "FetchBatch",
    "IngestionState",
    "LedgerClient",
    "LoopStats",
    "Page",
    "ReconciliationLoop",
    "SignatureInfo",
    "SignaturePaginator",
    "SwapEvent",
    "SwapEventPersister",
    "TransactionFetcher",
    "TransactionRecord",
]

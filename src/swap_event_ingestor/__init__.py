"""Swap Event Ingestor - Program-log event ingestion for a single Solana program."""

__version__ = "0.1.0"

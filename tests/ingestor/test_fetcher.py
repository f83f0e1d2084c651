"""Tests for transaction resolution and pending refetch."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from swap_event_ingestor.exceptions import RPCError, TransactionFetchError
from swap_event_ingestor.ingestor.fetcher import TransactionFetcher
from swap_event_ingestor.ingestor.models import TransactionRecord


def _record(signature: str) -> TransactionRecord:
    return TransactionRecord(signature=signature, block_time=1_700_000_000, log_lines=())


def _resolver(unresolved: set[str]) -> AsyncMock:
    async def get_transactions(signatures):
        return [None if s in unresolved else _record(s) for s in signatures]

    return AsyncMock(side_effect=get_transactions)


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.get_transactions = _resolver(set())
    return client


class TestTransactionFetcher:
    """Tests for TransactionFetcher."""

    @pytest.mark.asyncio
    async def test_partial_failure_goes_to_pending(self, mock_client: MagicMock) -> None:
        """Test [S1,S2,S3] resolving to [r1,None,r3] leaves S2 pending."""
        mock_client.get_transactions = _resolver({"S2"})
        fetcher = TransactionFetcher(mock_client)

        records = await fetcher.resolve(["S1", "S2", "S3"])

        assert [r.signature if r else None for r in records] == ["S1", None, "S3"]
        assert fetcher.pending == ("S2",)

    @pytest.mark.asyncio
    async def test_pending_is_offered_on_next_fetch(self, mock_client: MagicMock) -> None:
        mock_client.get_transactions = _resolver({"S2"})
        fetcher = TransactionFetcher(mock_client)
        await fetcher.resolve(["S1", "S2", "S3"])

        mock_client.get_transactions = _resolver(set())
        batch = await fetcher.fetch_with_backfill(["S4"])

        mock_client.get_transactions.assert_awaited_once_with(["S2", "S4"])
        assert batch.signatures == ("S2", "S4")
        assert batch.from_pending == frozenset({"S2"})
        assert fetcher.pending == ()

    @pytest.mark.asyncio
    async def test_merge_does_not_repeat(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client)
        fetcher.requeue(["S1", "S2"])

        assert fetcher.merge_pending(["S2", "S3"]) == ["S1", "S2", "S3"]

    @pytest.mark.asyncio
    async def test_batch_error_leaves_pending_untouched(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client)
        fetcher.requeue(["S9"])
        mock_client.get_transactions = AsyncMock(side_effect=RPCError("down"))

        with pytest.raises(TransactionFetchError):
            await fetcher.fetch_with_backfill(["S1"])

        assert fetcher.pending == ("S9",)

    @pytest.mark.asyncio
    async def test_misaligned_result_is_batch_failure(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client)
        mock_client.get_transactions = AsyncMock(return_value=[_record("S1")])

        with pytest.raises(TransactionFetchError):
            await fetcher.resolve(["S1", "S2"])
        assert fetcher.pending == ()

    @pytest.mark.asyncio
    async def test_resolves_in_chunks(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client, batch_size=2)

        records = await fetcher.resolve(["S1", "S2", "S3", "S4", "S5"])

        assert len(records) == 5
        assert mock_client.get_transactions.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_chunk_applies_no_accounting(self, mock_client: MagicMock) -> None:
        """Test a later chunk failing discards results of earlier chunks."""
        calls = 0

        async def flaky(signatures):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise RPCError("down")
            return [None for _ in signatures]

        mock_client.get_transactions = AsyncMock(side_effect=flaky)
        fetcher = TransactionFetcher(mock_client, batch_size=1)

        with pytest.raises(TransactionFetchError):
            await fetcher.resolve(["S1", "S2"])
        assert fetcher.pending == ()

    def test_invalid_batch_size(self, mock_client: MagicMock) -> None:
        with pytest.raises(ValueError):
            TransactionFetcher(mock_client, batch_size=0)

    def test_drop(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client)
        fetcher.requeue(["S1", "S2"])
        fetcher.drop("S1")

        assert fetcher.pending == ("S2",)

    @pytest.mark.asyncio
    async def test_pending_set_is_capped(
        self, mock_client: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test the longest-pending signatures are dropped past the cap."""
        mock_client.get_transactions = _resolver({"S1", "S2", "S3", "S4", "S5"})
        fetcher = TransactionFetcher(mock_client, max_pending=3)

        await fetcher.resolve(["S1", "S2"])
        await fetcher.resolve(["S3", "S4", "S5"])

        assert fetcher.pending == ("S3", "S4", "S5")
        assert "dropped 2 oldest" in caplog.text

    def test_requeue_respects_cap(self, mock_client: MagicMock) -> None:
        fetcher = TransactionFetcher(mock_client, max_pending=2)

        fetcher.requeue(["S1", "S2", "S3"])

        assert fetcher.pending == ("S2", "S3")

    def test_invalid_max_pending(self, mock_client: MagicMock) -> None:
        with pytest.raises(ValueError):
            TransactionFetcher(mock_client, max_pending=0)

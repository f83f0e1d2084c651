"""Tests for signature pagination."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from swap_event_ingestor.ingestor.models import Cursor, Direction, SignatureInfo
from swap_event_ingestor.ingestor.paginator import MAX_PAGE_LIMIT, SignaturePaginator

ADDRESS = "cysPXAjehMpVKUapzbMCCnpFxUFFryEWEaLgnb9NrR8"


def _infos(*names: str, errored: tuple[str, ...] = ()) -> list[SignatureInfo]:
    return [
        SignatureInfo(signature=name, block_time=1000 - i, errored=name in errored)
        for i, name in enumerate(names)
    ]


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.get_signatures = AsyncMock(return_value=[])
    return client


class TestSignaturePaginator:
    """Tests for SignaturePaginator."""

    def test_rejects_out_of_range_limit(self, mock_client: MagicMock) -> None:
        with pytest.raises(ValueError):
            SignaturePaginator(mock_client, ADDRESS, page_limit=MAX_PAGE_LIMIT + 1)

    @pytest.mark.asyncio
    async def test_no_anchor_fetches_latest(self, mock_client: MagicMock) -> None:
        mock_client.get_signatures.return_value = _infos("S1", "S2")
        paginator = SignaturePaginator(mock_client, ADDRESS)

        page = await paginator.fetch_page(None, Direction.FORWARD)

        mock_client.get_signatures.assert_awaited_once_with(ADDRESS, limit=1000)
        assert page.candidates == ("S1", "S2")

    @pytest.mark.asyncio
    async def test_forward_uses_until(self, mock_client: MagicMock) -> None:
        mock_client.get_signatures.return_value = _infos("S1")
        paginator = SignaturePaginator(mock_client, ADDRESS)

        await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.FORWARD)

        mock_client.get_signatures.assert_awaited_once_with(ADDRESS, until="ANCHOR", limit=1000)

    @pytest.mark.asyncio
    async def test_backward_uses_before(self, mock_client: MagicMock) -> None:
        paginator = SignaturePaginator(mock_client, ADDRESS)

        page = await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.BACKWARD)

        mock_client.get_signatures.assert_awaited_once_with(ADDRESS, before="ANCHOR", limit=1000)
        assert page.is_empty

    @pytest.mark.asyncio
    async def test_errored_entries_observed_but_not_candidates(self, mock_client: MagicMock) -> None:
        mock_client.get_signatures.return_value = _infos("S1", "S2", "S3", errored=("S2",))
        paginator = SignaturePaginator(mock_client, ADDRESS)

        page = await paginator.fetch_page(None, Direction.FORWARD)

        assert [i.signature for i in page.observed] == ["S1", "S2", "S3"]
        assert page.candidates == ("S1", "S3")

    @pytest.mark.asyncio
    async def test_forward_walks_backlog_until_anchor(self, mock_client: MagicMock) -> None:
        """Test a backlog larger than one page is walked and its oldest page served."""
        mock_client.get_signatures.side_effect = [
            _infos("S1", "S2"),
            _infos("S3", "S4"),
            _infos("S5"),
        ]
        paginator = SignaturePaginator(mock_client, ADDRESS, page_limit=2)

        page = await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.FORWARD)

        assert page.candidates == ("S4", "S5")
        assert len(paginator._backlog) == 5
        calls = mock_client.get_signatures.await_args_list
        assert calls[1].kwargs == {"before": "S2", "until": "ANCHOR", "limit": 2}
        assert calls[2].kwargs == {"before": "S4", "until": "ANCHOR", "limit": 2}

    @pytest.mark.asyncio
    async def test_backlog_served_oldest_first_without_refetching(
        self, mock_client: MagicMock
    ) -> None:
        mock_client.get_signatures.side_effect = [
            _infos("S1", "S2"),
            _infos("S3", "S4"),
            _infos("S5"),
            [],
        ]
        paginator = SignaturePaginator(mock_client, ADDRESS, page_limit=2)
        await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.FORWARD)

        second = await paginator.fetch_page(Cursor("S4", 0), Direction.FORWARD)
        third = await paginator.fetch_page(Cursor("S2", 0), Direction.FORWARD)

        assert second.candidates == ("S2", "S3")
        assert third.candidates == ("S1",)
        assert mock_client.get_signatures.await_count == 3

        drained = await paginator.fetch_page(Cursor("S1", 0), Direction.FORWARD)

        assert drained.is_empty
        assert len(paginator._backlog) == 0
        assert mock_client.get_signatures.await_args_list[-1].kwargs == {
            "until": "S1",
            "limit": 2,
        }

    @pytest.mark.asyncio
    async def test_retry_from_same_anchor_serves_same_page(self, mock_client: MagicMock) -> None:
        mock_client.get_signatures.side_effect = [_infos("S1", "S2"), _infos("S3")]
        paginator = SignaturePaginator(mock_client, ADDRESS, page_limit=2)

        first = await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.FORWARD)
        retry = await paginator.fetch_page(Cursor("ANCHOR", 10), Direction.FORWARD)

        assert first.candidates == retry.candidates == ("S2", "S3")
        assert mock_client.get_signatures.await_count == 2

    @pytest.mark.asyncio
    async def test_client_error_propagates(self, mock_client: MagicMock) -> None:
        mock_client.get_signatures.side_effect = RuntimeError("boom")
        paginator = SignaturePaginator(mock_client, ADDRESS)

        with pytest.raises(RuntimeError):
            await paginator.fetch_page(None, Direction.FORWARD)

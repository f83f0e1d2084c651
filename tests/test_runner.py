"""Tests for the command runners."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from swap_event_ingestor.config import Settings, clear_settings_cache
from swap_event_ingestor.ingestor.models import Direction
from swap_event_ingestor.runner import build_loop, run_rollup


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/swaps")
    monkeypatch.delenv("PROGRAM_IDL_PATH", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestBuildLoop:
    """Tests for build_loop()."""

    def test_ingest_settings_reach_the_loop(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        idl = tmp_path / "amm.json"
        idl.write_text("{}", encoding="utf-8")
        monkeypatch.setenv("PROGRAM_IDL_PATH", str(idl))
        monkeypatch.setenv("INGEST_DEDUP_CAPACITY", "50")
        monkeypatch.setenv("INGEST_DEDUP_EVICTION", "oldest")
        monkeypatch.setenv("INGEST_MAX_PENDING", "20")
        settings = Settings()

        with patch("swap_event_ingestor.runner.AnchorEventDecoder") as decoder_cls:
            loop = build_loop(
                settings, client=MagicMock(), db=MagicMock(), direction=Direction.FORWARD
            )

        decoder_cls.from_idl_file.assert_called_once()
        assert loop.state.dedup.capacity == 50
        assert loop.state.dedup._eviction == "oldest"
        assert loop._fetcher._max_pending == 20


class TestRunRollup:
    """Tests for run_rollup()."""

    @pytest.mark.asyncio
    async def test_requires_idl_path(self) -> None:
        with pytest.raises(ValueError, match="PROGRAM_IDL_PATH"):
            await run_rollup(settings=Settings(), start=date(2023, 1, 1), end=date(2023, 1, 2))

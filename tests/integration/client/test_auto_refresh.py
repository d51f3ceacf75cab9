"""Tests for the backing-off auto refresher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from src.core.service.client.auto_refresh import AutoRefresher


class TestAutoRefresherBackoff:

    async def test_consecutive_failures_double_interval_up_to_cap(self):
        refresher = AutoRefresher(AsyncMock(side_effect=RuntimeError("down")), interval=30, max_interval=300)

        intervals = []
        for _ in range(5):
            assert await refresher.run_once() is False
            intervals.append(refresher.current_interval)

        assert intervals == [60, 120, 240, 300, 300]
        assert refresher.consecutive_errors == 5

    async def test_backoff_factor_is_capped_at_sixteen(self):
        refresher = AutoRefresher(AsyncMock(return_value=False), interval=1, max_interval=1000)

        for _ in range(8):
            await refresher.run_once()

        assert refresher.current_interval == 16

    async def test_success_resets_interval(self):
        refresh = AsyncMock(side_effect=[RuntimeError("down"), RuntimeError("down"), None])
        refresher = AutoRefresher(refresh, interval=30, max_interval=300)

        await refresher.run_once()
        await refresher.run_once()
        assert await refresher.run_once() is True

        assert refresher.current_interval == 30
        assert refresher.consecutive_errors == 0

    async def test_false_result_counts_as_failure(self):
        refresher = AutoRefresher(AsyncMock(return_value=False), interval=30, max_interval=300)

        assert await refresher.run_once() is False
        assert refresher.current_interval == 60

    async def test_sync_refresh(self):
        refresh = MagicMock(return_value=None)
        refresher = AutoRefresher(refresh, interval=30, max_interval=300)

        assert await refresher.run_once() is True
        refresh.assert_called_once()


class TestAutoRefresherLifecycle:

    async def test_loop_runs_until_stopped(self):
        refresh = AsyncMock()
        refresher = AutoRefresher(refresh, interval=0.01, max_interval=0.1)

        refresher.start()
        await asyncio.sleep(0.06)
        refresher.stop()
        calls = refresh.await_count
        await asyncio.sleep(0.03)

        assert calls >= 2
        assert refresh.await_count == calls
        assert refresher.running is False

    async def test_start_resets_backoff(self):
        refresher = AutoRefresher(AsyncMock(return_value=False), interval=10, max_interval=100)
        await refresher.run_once()

        refresher.start()
        try:
            assert refresher.current_interval == 10
            assert refresher.consecutive_errors == 0
        finally:
            refresher.stop()

    async def test_resume_refreshes_immediately(self):
        refresh = AsyncMock()
        refresher = AutoRefresher(refresh, interval=10, max_interval=100)
        refresher.start()
        refresher.pause()

        await refresher.resume()
        try:
            refresh.assert_awaited_once()
            assert refresher.running is True
        finally:
            refresher.stop()

    def test_defaults_come_from_settings(self):
        refresher = AutoRefresher(lambda: None)
        assert (refresher.interval, refresher.max_interval) == (30, 300)

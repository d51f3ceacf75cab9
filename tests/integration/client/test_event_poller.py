"""
Tests for the debounced chain event poller
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import AsyncWeb3

from src.core.service.client.event_poller import ChainEventPoller, is_benign_rpc_error
from tests.helpers import REGISTRY


class FakeEth:
    def __init__(self, head: int = 100):
        self.head = head
        self.get_logs = AsyncMock(return_value=[])

    @property
    def block_number(self):
        async def current():
            return self.head
        return current()


class FakeWeb3:
    def __init__(self, head: int = 100):
        self.eth = FakeEth(head)


@pytest.fixture
def w3():
    return FakeWeb3()


@pytest.fixture
def on_event():
    return AsyncMock()


@pytest.fixture
async def poller(w3, on_event):
    poller = ChainEventPoller(w3, on_event, registry_address=REGISTRY, indexing_delay=0.02, poll_interval=0.01)
    yield poller
    await poller.stop()


class TestChainEventPoller:

    async def test_first_tick_only_sets_baseline(self, poller, w3, on_event):
        assert await poller.tick() == 0

        assert poller.last_checked_block == 100
        w3.eth.get_logs.assert_not_awaited()
        assert poller.refresh_pending is False

    async def test_activity_schedules_delayed_refresh(self, poller, w3, on_event):
        await poller.tick()
        w3.eth.head = 105
        w3.eth.get_logs.return_value = [{"logIndex": 0}]

        assert await poller.tick() == 1

        w3.eth.get_logs.assert_awaited_once_with({
            "fromBlock": 101,
            "toBlock": 105,
            "address": AsyncWeb3.to_checksum_address(REGISTRY),
        })
        assert poller.last_checked_block == 105
        assert poller.refresh_pending is True
        on_event.assert_not_awaited()

        await asyncio.sleep(0.05)
        on_event.assert_awaited_once()

    async def test_detections_inside_delay_collapse(self, poller, w3, on_event):
        await poller.tick()
        w3.eth.get_logs.return_value = [{"logIndex": 0}]
        for head in (101, 102, 103):
            w3.eth.head = head
            await poller.tick()

        await asyncio.sleep(0.06)
        assert on_event.await_count == 1

    async def test_quiet_range_does_not_refresh(self, poller, w3, on_event):
        await poller.tick()
        w3.eth.head = 110

        assert await poller.tick() == 0
        assert poller.refresh_pending is False
        assert poller.last_checked_block == 110

    async def test_no_new_blocks_skips_log_query(self, poller, w3):
        await poller.tick()
        assert await poller.tick() == 0
        w3.eth.get_logs.assert_not_awaited()

    @pytest.mark.parametrize("message", ["invalid block range params", "Rate limit exceeded", "boom"])
    async def test_rpc_errors_never_escape(self, poller, w3, message):
        await poller.tick()
        w3.eth.head = 120
        w3.eth.get_logs.side_effect = Exception(message)

        assert await poller.tick() == 0
        assert poller.last_checked_block == 100

    async def test_sync_callback_is_supported(self, w3):
        callback = MagicMock(return_value=None)
        poller = ChainEventPoller(w3, callback, registry_address=REGISTRY, indexing_delay=0)
        await poller.tick()
        w3.eth.head = 101
        w3.eth.get_logs.return_value = [{"logIndex": 0}]

        await poller.tick()
        await asyncio.sleep(0.01)

        callback.assert_called_once()

    async def test_failing_callback_is_contained(self, poller, w3, on_event):
        on_event.side_effect = RuntimeError("refresh failed")
        await poller.tick()
        w3.eth.head = 101
        w3.eth.get_logs.return_value = [{"logIndex": 0}]

        await poller.tick()
        await asyncio.sleep(0.05)

        assert poller.refresh_pending is False
        assert await poller.tick() == 0


class TestChainEventPollerLifecycle:

    async def test_start_sets_baseline_and_polls(self, poller, w3):
        await poller.start()
        assert poller.running is True
        assert poller.last_checked_block == 100

        w3.eth.head = 101
        await asyncio.sleep(0.05)
        w3.eth.get_logs.assert_awaited()

    async def test_stop_cancels_refresh_and_resets_baseline(self, poller, w3, on_event):
        await poller.start()
        w3.eth.head = 101
        w3.eth.get_logs.return_value = [{"logIndex": 0}]
        await poller.tick()

        await poller.stop()
        await asyncio.sleep(0.05)

        assert poller.running is False
        assert poller.last_checked_block == 0
        on_event.assert_not_awaited()

    async def test_pause_and_resume(self, poller, w3):
        await poller.start()
        poller.pause()
        assert poller.running is False

        w3.eth.head = 130
        await poller.resume()

        assert poller.running is True
        w3.eth.get_logs.assert_awaited_once()
        assert poller.last_checked_block == 130


def test_benign_error_classification():
    assert is_benign_rpc_error(Exception("Filter not found"))
    assert is_benign_rpc_error(Exception("invalid block range params"))
    assert not is_benign_rpc_error(Exception("connection refused"))

"""
Chain event poller

Watches the registry contract with eth_getLogs and, when new activity shows
up, triggers a single refresh after the indexing delay. Detections inside the
delay window collapse into that one refresh.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from web3 import AsyncWeb3

from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

# RPC errors that only mean "try again later"
BENIGN_RPC_ERRORS = (
    "invalid block range",
    "rate limit",
    "filter not found",
    "missing or invalid parameters",
)


def is_benign_rpc_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in BENIGN_RPC_ERRORS)


class ChainEventPoller:
    """Debounced refresh trigger driven by registry logs"""

    def __init__(
        self,
        w3: AsyncWeb3,
        on_event: Callable[[], Union[None, Awaitable[Any]]],
        registry_address: Optional[str] = None,
        indexing_delay: Optional[float] = None,
        poll_interval: Optional[float] = None
    ):
        self.w3 = w3
        self.on_event = on_event
        self.registry_address = AsyncWeb3.to_checksum_address(registry_address or settings.REGISTRY_ADDRESS)
        self.indexing_delay = settings.INDEXING_LAG_DELAY_SECONDS if indexing_delay is None else indexing_delay
        self.poll_interval = settings.EVENT_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval

        self.last_checked_block = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def refresh_pending(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def tick(self) -> int:
        """
        Poll once

        Returns:
            Number of registry logs seen (0 on the baseline tick or on errors)
        """
        try:
            current_block = int(await self.w3.eth.block_number)

            if self.last_checked_block == 0:
                self.last_checked_block = current_block
                logger.debug("Event poller baseline set", extra={"block": current_block})
                return 0

            if current_block <= self.last_checked_block:
                return 0

            from_block = self.last_checked_block + 1
            logs = await self.w3.eth.get_logs({
                "fromBlock": from_block,
                "toBlock": current_block,
                "address": self.registry_address,
            })

            if logs:
                logger.info(
                    "Registry activity detected",
                    extra={"logs": len(logs), "from_block": from_block, "to_block": current_block}
                )
                self._schedule_refresh()

            self.last_checked_block = current_block
            return len(logs)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not is_benign_rpc_error(e):
                logger.warning("Event poll failed", extra={"error": str(e)})
            return 0

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._delayed_refresh())

    async def _delayed_refresh(self) -> None:
        await asyncio.sleep(self.indexing_delay)
        try:
            result = self.on_event()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Refresh after chain activity failed", extra={"error": str(e)})

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.tick()

    def _start_loop(self) -> None:
        if not self.running:
            self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_loop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def start(self) -> None:
        """Baseline tick, then poll every interval"""
        await self.tick()
        self._start_loop()

    async def stop(self) -> None:
        """Cancel timers and forget the baseline"""
        self._stop_loop()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self.last_checked_block = 0

    def pause(self) -> None:
        """Stop polling (process hidden); a pending refresh still fires"""
        self._stop_loop()

    async def resume(self) -> None:
        """Immediate tick, then restart the timer"""
        await self.tick()
        self._start_loop()

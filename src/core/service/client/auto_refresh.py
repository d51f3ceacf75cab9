"""Periodic refresh with exponential backoff on consecutive failures."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

MAX_BACKOFF_FACTOR = 16


class AutoRefresher:
    """
    Calls ``refresh`` every ``interval`` seconds.

    A refresh that raises (or returns False) counts as a failure; after N
    consecutive failures the interval becomes
    ``min(interval * min(2**N, 16), max_interval)``. The next success restores
    the base interval. State is process-local.
    """

    def __init__(
        self,
        refresh: Callable[[], Union[Any, Awaitable[Any]]],
        interval: Optional[float] = None,
        max_interval: Optional[float] = None
    ):
        self.refresh = refresh
        self.interval = settings.AUTO_REFRESH_INTERVAL_SECONDS if interval is None else interval
        self.max_interval = settings.AUTO_REFRESH_MAX_INTERVAL_SECONDS if max_interval is None else max_interval
        self.current_interval = self.interval
        self.consecutive_errors = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _backoff_interval(self) -> float:
        factor = min(2 ** self.consecutive_errors, MAX_BACKOFF_FACTOR)
        return min(self.interval * factor, self.max_interval)

    async def run_once(self) -> bool:
        """One refresh; returns True on success"""
        try:
            result = self.refresh()
            if inspect.isawaitable(result):
                result = await result
            ok = result is not False
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Auto refresh failed", extra={"error": str(e)})
            ok = False

        if ok:
            if self.consecutive_errors:
                logger.info("Auto refresh recovered", extra={"interval": self.interval})
            self.consecutive_errors = 0
            self.current_interval = self.interval
        else:
            self.consecutive_errors += 1
            new_interval = self._backoff_interval()
            if new_interval != self.current_interval:
                logger.info(
                    "Auto refresh backing off",
                    extra={"interval": new_interval, "consecutive_errors": self.consecutive_errors}
                )
            self.current_interval = new_interval
        return ok

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.current_interval)
            await self.run_once()

    def start(self) -> None:
        """Start from the base interval"""
        self.stop()
        self.consecutive_errors = 0
        self.current_interval = self.interval
        self._task = asyncio.create_task(self._loop())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def pause(self) -> None:
        self.stop()

    async def resume(self) -> None:
        """Refresh immediately, then keep the current schedule"""
        await self.run_once()
        if not self.running:
            self._task = asyncio.create_task(self._loop())

"""
Shared cooldown for the rate-limited query endpoint.

One instance is shared by every caller of the query layer: callers check
before sending and report every outcome, so a 429 seen by one caller
protects all of them.
"""

import time
from typing import Callable, Optional

from src.core.exceptions.indexer import RateLimitedError
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class QueryThrottle:
    """
    Exponential cooldown after rate limiting.

    The first 429 starts a base-length cooldown; every further 429 without an
    intervening success doubles it up to the cap. A success resets it.
    """

    def __init__(
        self,
        base_cooldown: Optional[float] = None,
        max_cooldown: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.base_cooldown = base_cooldown if base_cooldown is not None else settings.QUERY_COOLDOWN_BASE_SECONDS
        self.max_cooldown = max_cooldown if max_cooldown is not None else settings.QUERY_COOLDOWN_MAX_SECONDS
        self._clock = clock
        self._consecutive_rate_limits = 0
        self._cooldown = self.base_cooldown
        self._rate_limited_at: Optional[float] = None

    @property
    def cooldown_seconds(self) -> float:
        """Length of the current (or next) cooldown window"""
        return self._cooldown

    @property
    def consecutive_rate_limits(self) -> int:
        return self._consecutive_rate_limits

    def record_rate_limit(self) -> float:
        """Register a 429; returns the new cooldown length"""
        self._consecutive_rate_limits += 1
        self._cooldown = min(
            self.base_cooldown * (2 ** (self._consecutive_rate_limits - 1)),
            self.max_cooldown
        )
        self._rate_limited_at = self._clock()
        logger.warning(
            "Query endpoint rate limited, cooling down",
            extra={
                "cooldown_seconds": self._cooldown,
                "consecutive_rate_limits": self._consecutive_rate_limits
            }
        )
        return self._cooldown

    def record_success(self) -> None:
        if self._consecutive_rate_limits:
            logger.info("Query endpoint recovered, cooldown reset")
        self._consecutive_rate_limits = 0
        self._cooldown = self.base_cooldown
        self._rate_limited_at = None

    def cooldown_remaining(self) -> float:
        if self._rate_limited_at is None:
            return 0.0
        remaining = self._cooldown - (self._clock() - self._rate_limited_at)
        return max(remaining, 0.0)

    def in_cooldown(self) -> bool:
        return self.cooldown_remaining() > 0

    def check(self) -> None:
        """Raise before a request would be sent during cooldown"""
        remaining = self.cooldown_remaining()
        if remaining > 0:
            raise RateLimitedError(
                message=f"Query endpoint in cooldown ({remaining:.0f}s remaining)",
                retry_after=remaining
            )

    def reset(self) -> None:
        self._consecutive_rate_limits = 0
        self._cooldown = self.base_cooldown
        self._rate_limited_at = None

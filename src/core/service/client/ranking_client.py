"""
Ranking client wiring

Builds the presentation-side stack around one shared QueryThrottle: query
client, block numbering, position cache, trend tracker and ranking feed,
kept fresh by the chain event poller and the auto refresher.
"""

from typing import Dict, Iterable, Optional

import redis.asyncio as redis
from web3 import AsyncWeb3

from src.api.utils.metrics import get_metrics
from src.core.exceptions.handler import ServiceError
from src.core.http_client import HTTPClientConfig
from src.core.service.client.auto_refresh import AutoRefresher
from src.core.service.client.block_numbering import BlockNumbering
from src.core.service.client.event_poller import ChainEventPoller
from src.core.service.client.position_cache import LocalPositionCache
from src.core.service.client.query_client import QueryClient
from src.core.service.client.ranking_feed import RankingFeed, RankingView
from src.core.service.client.throttle import QueryThrottle
from src.core.service.client.trend_tracker import RankingTrendTracker
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class RankingClient:
    """Keeps rankings for a set of watched levels fresh"""

    def __init__(
        self,
        feed: RankingFeed,
        poller: Optional[ChainEventPoller] = None,
        levels: Iterable[int] = (),
        interval: Optional[float] = None,
        max_interval: Optional[float] = None
    ):
        self.feed = feed
        self.poller = poller
        self.levels = list(levels)
        self.views: Dict[int, RankingView] = {}
        self.refresher = AutoRefresher(self.refresh, interval=interval, max_interval=max_interval)
        if poller is not None:
            poller.on_event = self.on_chain_activity

    async def refresh(self) -> bool:
        """
        Re-read every watched level

        Returns:
            False when any level failed or was served stale
        """
        ok = True
        for level_id in self.levels:
            try:
                view = await self.feed.get_ranking(level_id)
            except ServiceError as e:
                logger.warning(
                    "Ranking refresh failed",
                    extra={"level_id": level_id, "error_code": e.code, "error": e.message}
                )
                ok = False
                continue
            self.views[level_id] = view
            ok = ok and not view.stale
        return ok

    async def on_chain_activity(self) -> None:
        self.feed.invalidate()
        await self.refresh()

    async def start(self) -> None:
        await self.refresh()
        self.refresher.start()
        if self.poller is not None:
            await self.poller.start()

    async def stop(self) -> None:
        self.refresher.stop()
        if self.poller is not None:
            await self.poller.stop()
        await self.feed.client.close()

    def pause(self) -> None:
        """Process hidden: stop both timers"""
        self.refresher.pause()
        if self.poller is not None:
            self.poller.pause()

    async def resume(self) -> None:
        await self.refresher.resume()
        if self.poller is not None:
            await self.poller.resume()


def create_ranking_client(
    redis_client: redis.Redis,
    levels: Iterable[int],
    query_url: Optional[str] = None,
    rpc_url: Optional[str] = None,
    throttle: Optional[QueryThrottle] = None,
    watch_chain: bool = True
) -> RankingClient:
    """Wire the client stack with one throttle shared by every query path"""
    throttle = throttle or QueryThrottle()
    client = QueryClient(throttle, base_url=query_url, metrics=get_metrics())
    position_cache = LocalPositionCache(redis_client)
    numbering = BlockNumbering(client)
    feed = RankingFeed(
        client,
        numbering,
        RankingTrendTracker(client, position_cache, numbering=numbering),
        position_cache
    )

    poller = None
    if watch_chain:
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url or settings.RPC_URL,
            request_kwargs={"timeout": HTTPClientConfig.get_timeout("rpc")}
        ))
        poller = ChainEventPoller(w3, on_event=lambda: None)

    return RankingClient(feed, poller=poller, levels=levels)

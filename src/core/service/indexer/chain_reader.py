"""
Chain access for the indexer (AsyncWeb3 over HTTP)
"""

from collections import OrderedDict
from typing import Iterable, List, Optional

from web3 import AsyncWeb3

from src.core.http_client import HTTPClientConfig
from src.core.service.indexer.events import RawLog
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

TIMESTAMP_CACHE_SIZE = 4096

# Provider messages meaning "ask for a smaller block range"
RANGE_ERROR_MARKERS = (
    "block range",
    "range is too large",
    "too many",
    "limit exceeded",
    "query returned more than",
    "response size exceeded",
)


def is_range_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RANGE_ERROR_MARKERS)


class ChainReader:
    """Reads head, block timestamps and logs"""

    def __init__(self, w3: Optional[AsyncWeb3] = None, rpc_url: Optional[str] = None):
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url or settings.RPC_URL,
            request_kwargs={"timeout": HTTPClientConfig.get_timeout("rpc")}
        ))
        self._timestamps: "OrderedDict[int, int]" = OrderedDict()

    async def get_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_block_timestamp(self, block_number: int) -> int:
        cached = self._timestamps.get(block_number)
        if cached is not None:
            return cached
        block = await self.w3.eth.get_block(block_number)
        timestamp = int(block["timestamp"])
        self._timestamps[block_number] = timestamp
        if len(self._timestamps) > TIMESTAMP_CACHE_SIZE:
            self._timestamps.popitem(last=False)
        return timestamp

    async def get_logs(self, addresses: Iterable[str], from_block: int, to_block: int) -> List[RawLog]:
        """eth_getLogs for the addresses, with block timestamps resolved"""
        addresses = [AsyncWeb3.to_checksum_address(address) for address in addresses]
        if not addresses or from_block > to_block:
            return []

        raw_logs = await self.w3.eth.get_logs({
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": addresses,
        })

        logs = []
        for raw in raw_logs:
            if raw.get("removed"):
                continue
            timestamp = await self.get_block_timestamp(int(raw["blockNumber"]))
            logs.append(RawLog.from_web3(raw, timestamp))

        logger.debug(
            "Fetched logs",
            extra={"from_block": from_block, "to_block": to_block, "addresses": len(addresses), "logs": len(logs)}
        )
        return logs

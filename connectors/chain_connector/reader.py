import asyncio
import logging
import time
from typing import Any, List, Optional, Protocol
from urllib.parse import quote

import aiohttp
from prometheus_client import Histogram

from common_models.market_data_models import OrderInfo
from market_engine.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_READER_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0
SOURCE_NAME = "chain-reader"

CHAIN_READER_LATENCY_SECONDS = Histogram(
    'chain_reader_latency_seconds',
    'Latency of live order snapshot reads',
    buckets=(0.05, 0.1, 0.2, 0.4, 0.8, 1.6, 3.2, 6.4, 12.8, 25.6)
)


class OrderSource(Protocol):
    """Capability to read the live resting orders of one market."""

    async def fetch_orders(self, market_name: str) -> List[OrderInfo]:
        ...


def flatten_orders(raw: Any) -> List[OrderInfo]:
    """Builds OrderInfo from the reader's snapshot.

    The reader groups orders per book side (a list of lists) and may wrap each
    order as {"order": {...}} together with owner/account metadata.
    """
    if isinstance(raw, dict):
        raw = raw.get("orders", [])
    orders: List[OrderInfo] = []
    for entry in raw:
        if isinstance(entry, list):
            orders.extend(flatten_orders(entry))
            continue
        order = entry.get("order", entry)
        orders.append(OrderInfo(side=order["side"], price=order["price"], size=order["size"]))
    return orders


class HttpOrderReader:
    """Reads live order snapshots from the on-chain reader sidecar over HTTP."""

    def __init__(
        self,
        base_url: str = DEFAULT_READER_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch_orders(self, market_name: str) -> List[OrderInfo]:
        url = f"{self.base_url}/markets/{quote(market_name, safe='')}/orders"
        start_time = time.time()
        try:
            async with self._get_session().get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                response.raise_for_status()
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error fetching live orders for {market_name}: {e!r}")
            raise UpstreamUnavailable(SOURCE_NAME, f"Live orders for {market_name} unavailable: {e}") from e
        finally:
            CHAIN_READER_LATENCY_SECONDS.observe(time.time() - start_time)

        try:
            return flatten_orders(payload or [])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(SOURCE_NAME, f"Malformed order snapshot for {market_name}: {e}") from e

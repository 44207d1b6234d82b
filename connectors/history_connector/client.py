import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, List, Optional, TypeVar
from urllib.parse import quote

import aiohttp
from prometheus_client import Counter, Histogram
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from common_models.market_data_models import Candle, MarketStats, Trade
from market_engine.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_API_URL = "https://event-history-api-candles.herokuapp.com"
DEFAULT_TIMEOUT = 10.0
SOURCE_NAME = "event-history-api"

# --- Prometheus Metrics Definitions ---
HISTORY_API_LATENCY_SECONDS = Histogram(
    'history_api_latency_seconds',
    'Latency of calls to the event history API',
    ['endpoint'],
    buckets=(0.05, 0.1, 0.2, 0.4, 0.8, 1.6, 3.2, 6.4, 12.8, 25.6)  # 0.05s to ~25s
)
HISTORY_API_EMPTY_TOTAL = Counter(
    'history_api_empty_total',
    'Event history API answers carrying the error sentinel or no data',
    ['endpoint']
)
# --- End Prometheus Metrics Definitions ---

T = TypeVar("T")


@dataclass(frozen=True)
class HistoryResult(Generic[T]):
    """Outcome of one call to the history API: Ok(data) or Empty.

    The API signals failure with `{"s": "error"}` on HTTP 200. That is Empty,
    not an error: callers collapse Empty exactly like an empty Ok (no trades,
    no candles, no stats). The distinction is kept so the collapse happens in
    one place and is counted.
    """
    data: Optional[T] = None
    is_empty: bool = False

    @classmethod
    def ok(cls, data: T) -> "HistoryResult[T]":
        return cls(data=data)

    @classmethod
    def empty(cls) -> "HistoryResult[T]":
        return cls(is_empty=True)

    def value_or(self, default: T) -> T:
        return default if self.is_empty or self.data is None else self.data


def is_error_sentinel(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("s") == "error"


def floor_to_minute(epoch_s: float) -> int:
    return int(epoch_s // 60) * 60


class _TransientError(Exception):
    pass


class HistoryClient:
    """Typed accessor over the event history API (trades, candles, market stats)."""

    def __init__(
        self,
        base_url: str = DEFAULT_HISTORY_API_URL,
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

    @retry(
        retry=retry_if_exception_type(_TransientError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    async def _get(self, endpoint: str, path: str, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        start_time = time.time()
        try:
            async with self._get_session().get(
                url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                response.raise_for_status()
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamUnavailable(
                        SOURCE_NAME, f"{SOURCE_NAME} {endpoint} answered with a non-JSON body"
                    ) from e
            HISTORY_API_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start_time)
            return payload
        except aiohttp.ClientResponseError as e:
            HISTORY_API_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start_time)
            logger.warning(f"History API {endpoint} call to {url} failed: {e!r}")
            if e.status < 500:
                # 4xx will not change on retry
                raise UpstreamUnavailable(SOURCE_NAME, f"{SOURCE_NAME} {endpoint} request failed: {e}") from e
            raise _TransientError(str(e) or type(e).__name__) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            HISTORY_API_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start_time)  # Observe even on error
            logger.warning(f"History API {endpoint} call to {url} failed: {e!r}")
            raise _TransientError(str(e) or type(e).__name__) from e

    async def _fetch(self, endpoint: str, path: str, params: Optional[dict] = None) -> HistoryResult[Any]:
        try:
            payload = await self._get(endpoint, path, params)
        except _TransientError as e:
            raise UpstreamUnavailable(SOURCE_NAME, f"{SOURCE_NAME} {endpoint} request failed: {e}") from e
        if payload is None or is_error_sentinel(payload):
            HISTORY_API_EMPTY_TOTAL.labels(endpoint=endpoint).inc()
            logger.debug(f"History API {endpoint} returned no data for {path}")
            return HistoryResult.empty()
        return HistoryResult.ok(payload)

    async def fetch_stats(self, market_name: str) -> Optional[MarketStats]:
        """24h/1h/bod statistics for a market, None when not indexed."""
        result = await self._fetch("markets", f"/markets/{quote(market_name, safe='')}")
        if result.is_empty:
            return None
        try:
            return MarketStats.model_validate(result.data)
        except ValueError as e:
            raise UpstreamUnavailable(SOURCE_NAME, f"Unexpected stats payload for {market_name}: {e}") from e

    async def fetch_trades(self, market_id: str) -> List[Trade]:
        """Recent fills for an on-chain market address, most recent first."""
        result = await self._fetch("trades", f"/trades/address/{quote(market_id, safe='')}")
        try:
            raw_trades = result.value_or({}).get("data") or []
            return [
                Trade(
                    id=str(t["orderId"]),
                    price=t["price"],
                    side=t["side"],
                    size=t["size"],
                    time=_parse_time(t["time"]),
                ) for t in raw_trades
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(SOURCE_NAME, f"Unexpected trades payload for {market_id}: {e}") from e

    async def fetch_candles(
        self,
        symbol: str,
        resolution: str,
        from_s: float,
        to_s: float,
        force_minute_resolution: bool = True,
    ) -> List[Candle]:
        """OHLCV buckets in [from_s, to_s], ascending by time.

        Bounds are floored to whole minutes so repeated queries hit the
        upstream cache; pass force_minute_resolution=False for raw bounds.
        """
        if force_minute_resolution:
            from_s, to_s = floor_to_minute(from_s), floor_to_minute(to_s)
        params = {
            "symbol": symbol,
            "resolution": resolution,
            "from": str(int(from_s)),
            "to": str(int(to_s)),
        }
        result = await self._fetch("tv_history", "/tv/history", params)
        payload = result.value_or({})
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(SOURCE_NAME, f"Unexpected candles payload for {symbol}: {type(payload).__name__}")
        if payload.get("s") == "no_data":
            HISTORY_API_EMPTY_TOTAL.labels(endpoint="tv_history").inc()
            return []
        try:
            columns = [payload.get(k) or [] for k in ("t", "o", "h", "l", "c", "v")]
            if len({len(column) for column in columns}) > 1:
                raise ValueError(f"column lengths differ: {[len(column) for column in columns]}")
            candles = [
                Candle(time=t, open=o, high=h, low=l, close=c, volume=v)
                for t, o, h, l, c, v in zip(*columns)
            ]
        except (TypeError, ValueError) as e:
            raise UpstreamUnavailable(SOURCE_NAME, f"Unexpected candles payload for {symbol}: {e}") from e
        return sorted(candles, key=lambda c: c.time)


def _parse_time(value: Any) -> datetime:
    # The API sends either epoch milliseconds or an ISO string
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))

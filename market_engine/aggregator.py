import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from prometheus_client import Counter, Histogram

from common_models.market_data_models import (
    Candle,
    MarketConfig,
    MarketStats,
    NormalizedMarket,
    OrderBookSnapshot,
    Trade,
)
from connectors.chain_connector.reader import OrderSource
from market_engine import orderbook, units
from market_engine.catalog import MarketCatalog, external_name

logger = logging.getLogger(__name__)

# --- Prometheus Metrics Definitions ---
MARKET_AGGREGATION_DURATION_SECONDS = Histogram(
    'market_aggregation_duration_seconds',
    'Time to aggregate one market from all upstreams',
    buckets=(0.05, 0.1, 0.2, 0.4, 0.8, 1.6, 3.2, 6.4, 12.8, 25.6)
)
MARKET_AGGREGATION_FAILURES_TOTAL = Counter(
    'market_aggregation_failures_total',
    'Markets whose aggregation failed',
    ['market']
)
# --- End Prometheus Metrics Definitions ---


class HistorySource(Protocol):
    async def fetch_stats(self, market_name: str) -> Optional[MarketStats]: ...

    async def fetch_trades(self, market_id: str) -> List[Trade]: ...

    async def fetch_candles(self, symbol: str, resolution: str, from_s: float, to_s: float,
                            force_minute_resolution: bool = True) -> List[Candle]: ...


@dataclass(frozen=True)
class MarketFailure:
    market: str  # external name
    msg: str


@dataclass
class AggregateResult:
    """Successful markets in catalog order, plus one marker per failed market."""
    markets: List[NormalizedMarket] = field(default_factory=list)
    failures: List[MarketFailure] = field(default_factory=list)


def provided(value: Optional[float]) -> Optional[float]:
    """Drops values the upstream could not compute (None, NaN, inf)."""
    if value is None or not math.isfinite(value):
        return None
    return value


def provided_volume(value: Optional[float]) -> Optional[float]:
    # The history API reports 0 volume for markets it does not index (spot)
    value = provided(value)
    return None if value == 0 else value


class MarketAggregator:
    """Builds normalized market records from the catalog, live orders and the history API."""

    def __init__(self, catalog: MarketCatalog, order_source: OrderSource, history: HistorySource):
        self.catalog = catalog
        self.order_source = order_source
        self.history = history

    async def aggregate_one(self, market_name: str) -> NormalizedMarket:
        """Aggregates one market by external name.

        :raises MarketNotFound: unknown market name.
        :raises UpstreamUnavailable: a sub-fetch failed outright.
        """
        config = self.catalog.find_market(market_name)
        return await self._compute_market_details(config)

    async def aggregate_all(self) -> AggregateResult:
        configs = self.catalog.list_markets()
        outcomes = await asyncio.gather(
            *(self._compute_market_details(config) for config in configs),
            return_exceptions=True,
        )

        result = AggregateResult()
        for config, outcome in zip(configs, outcomes):
            if isinstance(outcome, NormalizedMarket):
                result.markets.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome  # cancellation and friends
            name = external_name(config.name)
            logger.error(f"Aggregation failed for {name}: {outcome}", exc_info=outcome)
            MARKET_AGGREGATION_FAILURES_TOTAL.labels(market=name).inc()
            result.failures.append(MarketFailure(market=name, msg=str(outcome) or type(outcome).__name__))
        return result

    async def _compute_market_details(self, config: MarketConfig) -> NormalizedMarket:
        with MARKET_AGGREGATION_DURATION_SECONDS.time():
            orders, stats, trades = await asyncio.gather(
                self.order_source.fetch_orders(config.name),  # latest bid+ask
                self.history.fetch_stats(config.name),  # volume, 1h, 24h, bod changes
                self.history.fetch_trades(config.public_key),  # latest trade+price
            )

        quotes = orderbook.reduce(orders)
        last_price = trades[0].price if trades else None
        stats = stats or MarketStats()

        return NormalizedMarket(
            name=external_name(config.name),
            base_currency=config.base_symbol,
            quote_currency=config.quote_symbol,
            type=config.kind.kind,
            underlying=config.base_symbol,
            bid=quotes.best_bid,
            ask=quotes.best_ask,
            last=last_price,
            price=last_price,
            price_increment=units.price_increment(config.kind),
            size_increment=units.size_increment(config.kind),
            quote_volume_24h=provided_volume(stats.quote_volume_24h),
            volume_usd_24h=provided_volume(stats.volume_usd_24h),
            change_1h=provided(stats.change_1h),
            change_24h=provided(stats.change_24h),
            change_bod=provided(stats.change_bod),
        )

    async def order_book(self, market_name: str, depth: int = orderbook.DEFAULT_DEPTH) -> OrderBookSnapshot:
        config = self.catalog.find_market(market_name)
        orders = await self.order_source.fetch_orders(config.name)
        return orderbook.book(orders, depth)

    async def trades(self, market_name: str) -> List[Trade]:
        config = self.catalog.find_market(market_name)
        return await self.history.fetch_trades(config.public_key)

    async def candles(self, market_name: str, resolution: str, start_time: int, end_time: int) -> List[Candle]:
        config = self.catalog.find_market(market_name)
        return await self.history.fetch_candles(
            config.name, resolution, start_time, end_time, force_minute_resolution=False
        )

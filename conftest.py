from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from common_models.market_data_models import (
    Candle,
    Futures,
    MarketConfig,
    MarketStats,
    OrderInfo,
    Spot,
    Trade,
)
from market_engine.aggregator import MarketAggregator
from market_engine.catalog import MarketCatalog
from market_engine.errors import UpstreamUnavailable


class FakeOrderSource:
    def __init__(self, orders: Optional[Dict[str, List[OrderInfo]]] = None, failing=()):
        self.orders = orders or {}
        self.failing = set(failing)
        self.calls = []

    async def fetch_orders(self, market_name):
        self.calls.append(market_name)
        if market_name in self.failing:
            raise UpstreamUnavailable("chain-reader", f"Live orders for {market_name} unavailable")
        return list(self.orders.get(market_name, []))


class FakeHistory:
    def __init__(self, stats=None, trades=None, candles=None, failing_trades=(), failing_stats=()):
        self.stats: Dict[str, MarketStats] = stats or {}
        self.trades: Dict[str, List[Trade]] = trades or {}
        self.candles: List[Candle] = candles or []
        self.failing_trades = set(failing_trades)
        self.failing_stats = set(failing_stats)
        self.candle_calls = []

    async def fetch_stats(self, market_name):
        if market_name in self.failing_stats:
            raise UpstreamUnavailable("event-history-api", f"stats for {market_name} failed")
        return self.stats.get(market_name)

    async def fetch_trades(self, market_id):
        if market_id in self.failing_trades:
            raise UpstreamUnavailable("event-history-api", "Cannot connect to host event-history-api")
        return list(self.trades.get(market_id, []))

    async def fetch_candles(self, symbol, resolution, from_s, to_s, force_minute_resolution=True):
        self.candle_calls.append((symbol, resolution, from_s, to_s, force_minute_resolution))
        return list(self.candles)


def make_trade(price, trade_id="1", side="buy", size="1"):
    return Trade(id=trade_id, price=Decimal(str(price)), side=side, size=Decimal(size),
                 time=datetime(2022, 1, 1, tzinfo=timezone.utc))


def make_order(side, price, size="1"):
    return OrderInfo(side=side, price=Decimal(str(price)), size=Decimal(size))


@pytest.fixture
def catalog():
    return MarketCatalog([
        MarketConfig(
            name="BTC-PERP", base_symbol="BTC", quote_symbol="USDC", public_key="btcperpkey",
            kind=Futures(base_decimals=6, quote_decimals=6, base_lot_size=100, quote_lot_size=10),
        ),
        MarketConfig(
            name="SOL-PERP", base_symbol="SOL", quote_symbol="USDC", public_key="solperpkey",
            kind=Futures(base_decimals=9, quote_decimals=6, base_lot_size=10000000, quote_lot_size=100),
        ),
        MarketConfig(
            name="BTC/USDC", base_symbol="BTC", quote_symbol="USDC", public_key="btcspotkey",
            kind=Spot(tick_size=Decimal("0.1"), min_order_size=Decimal("0.0001")),
        ),
    ], group_name="test.1")


@pytest.fixture
def fakes():
    """Factories for upstream doubles, usable from any test package."""
    class Fakes:
        OrderSource = FakeOrderSource
        History = FakeHistory
    return Fakes


@pytest.fixture
def order_source():
    return FakeOrderSource({
        "BTC-PERP": [make_order("buy", 40000), make_order("buy", 40010), make_order("sell", 40020)],
        "SOL-PERP": [make_order("sell", 101.5), make_order("sell", 101.25)],
        "BTC/USDC": [],
    })


@pytest.fixture
def history():
    return FakeHistory(
        stats={
            "BTC-PERP": MarketStats(quoteVolume24h=1234.5, volumeUsd24h=1234.5, change1h=0.01, change24h=-0.02, changeBod=0.0),
            "BTC/USDC": MarketStats(quoteVolume24h=0, volumeUsd24h=0, change1h=0.003, change24h=0.01, changeBod=0.002),
        },
        trades={
            "btcperpkey": [make_trade(40015, "2"), make_trade(39990, "1")],
            "btcspotkey": [make_trade(40001.5, "7")],
        },
    )


@pytest.fixture
def aggregator(catalog, order_source, history):
    return MarketAggregator(catalog, order_source, history)

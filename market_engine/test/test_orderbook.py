from decimal import Decimal

import pytest

from common_models.market_data_models import OrderInfo
from market_engine.orderbook import book, reduce


def _order(side, price, size="1"):
    return OrderInfo(side=side, price=Decimal(str(price)), size=Decimal(size))


def test_best_bid_and_ask():
    orders = [_order("buy", 99), _order("sell", 102), _order("buy", 100), _order("sell", 101)]
    quotes = reduce(orders)
    assert quotes.best_bid == Decimal("100")
    assert quotes.best_ask == Decimal("101")


def test_empty_side_has_no_best_price():
    quotes = reduce([_order("buy", 10)])
    assert quotes.best_bid == Decimal("10")
    assert quotes.best_ask is None
    assert reduce([]).best_bid is None


@pytest.mark.parametrize("n_bids, n_asks, depth", [(0, 0, 20), (5, 30, 20), (150, 150, 100), (25, 3, 20)])
def test_book_is_truncated_and_sorted(n_bids, n_asks, depth):
    orders = [_order("buy", 1000 - (i * 7) % 97) for i in range(n_bids)]
    orders += [_order("sell", 2000 + (i * 13) % 89) for i in range(n_asks)]

    snapshot = book(orders, depth)

    assert len(snapshot.bids) == min(n_bids, depth)
    assert len(snapshot.asks) == min(n_asks, depth)
    bid_prices = [price for price, _ in snapshot.bids]
    ask_prices = [price for price, _ in snapshot.asks]
    assert bid_prices == sorted(bid_prices, reverse=True)
    assert ask_prices == sorted(ask_prices)


def test_equal_prices_keep_arrival_order():
    orders = [_order("sell", 5, "1"), _order("sell", 5, "2"), _order("sell", 4, "3"), _order("buy", 3, "4"), _order("buy", 3, "5")]
    snapshot = book(orders, 20)
    assert [size for _, size in snapshot.asks] == [Decimal("3"), Decimal("1"), Decimal("2")]
    assert [size for _, size in snapshot.bids] == [Decimal("4"), Decimal("5")]

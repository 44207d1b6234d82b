from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from common_models.market_data_models import OrderBookSnapshot, OrderInfo

DEFAULT_DEPTH = 20
MIN_DEPTH = 20
MAX_DEPTH = 100


@dataclass(frozen=True)
class BestQuotes:
    best_bid: Optional[Decimal]
    best_ask: Optional[Decimal]


def split_sides(orders: Iterable[OrderInfo]) -> Tuple[List[OrderInfo], List[OrderInfo]]:
    """Returns (bids, asks), best price first on each side.

    Equal prices keep arrival order: sorted() is stable and only the price is
    used as key.
    """
    orders = list(orders)
    bids = sorted((o for o in orders if o.side == "buy"), key=lambda o: o.price, reverse=True)
    asks = sorted((o for o in orders if o.side == "sell"), key=lambda o: o.price)
    return bids, asks


def reduce(orders: Iterable[OrderInfo]) -> BestQuotes:
    bids, asks = split_sides(orders)
    return BestQuotes(
        best_bid=bids[0].price if bids else None,
        best_ask=asks[0].price if asks else None,
    )


def book(orders: Iterable[OrderInfo], depth: int = DEFAULT_DEPTH) -> OrderBookSnapshot:
    """Two-sided book truncated to `depth` levels per side. Depth is validated by the caller."""
    bids, asks = split_sides(orders)
    return OrderBookSnapshot(
        bids=[[o.price, o.size] for o in bids[:depth]],
        asks=[[o.price, o.size] for o in asks[:depth]],
    )

from decimal import Decimal

import pytest

from common_models.market_data_models import Futures, Spot
from market_engine.units import price_increment, size_increment


def test_futures_size_increment_is_exact():
    kind = Futures(base_decimals=6, quote_decimals=6, base_lot_size=100, quote_lot_size=1)
    assert size_increment(kind) == Decimal("0.0001")


@pytest.mark.parametrize("base_lot, quote_lot, base_dec, quote_dec, expected", [
    (100, 10, 6, 6, "0.1"),          # BTC-PERP
    (1000, 10, 6, 6, "0.01"),        # ETH-PERP
    (10000000, 100, 9, 6, "0.01"),   # SOL-PERP
    (1, 1, 6, 9, "0.001"),           # quote more precise than base
])
def test_futures_price_increment(base_lot, quote_lot, base_dec, quote_dec, expected):
    kind = Futures(base_decimals=base_dec, quote_decimals=quote_dec, base_lot_size=base_lot, quote_lot_size=quote_lot)
    assert price_increment(kind) == Decimal(expected)


def test_large_lot_sizes_keep_precision():
    # 2**63 - 1 does not fit in a double without rounding
    kind = Futures(base_decimals=6, quote_decimals=6, base_lot_size=9223372036854775807, quote_lot_size=1)
    assert size_increment(kind) == Decimal("9223372036854.775807")


def test_spot_increments_are_reported_unchanged():
    kind = Spot(tick_size=Decimal("0.1"), min_order_size=Decimal("0.0001"))
    assert price_increment(kind) == Decimal("0.1")
    assert size_increment(kind) == Decimal("0.0001")

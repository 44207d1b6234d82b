"""Conversions from on-chain lot/decimal representation to UI increments."""
from decimal import Decimal, localcontext

from common_models.market_data_models import Futures, MarketKind, Spot

# Lot sizes are u64 on chain, so keep well above 20 significant digits
PRECISION = 40


def size_increment(kind: MarketKind) -> Decimal:
    """Smallest order size step, in base units."""
    match kind:
        case Spot(min_order_size=min_order_size):
            return min_order_size
        case Futures(base_lot_size=base_lot_size, base_decimals=base_decimals):
            with localcontext() as ctx:
                ctx.prec = PRECISION
                return Decimal(base_lot_size) / Decimal(10) ** base_decimals
    raise TypeError(f"Unknown market kind: {kind!r}")


def price_increment(kind: MarketKind) -> Decimal:
    """Smallest price step, in quote per base.

    For perps: (quoteLotSize / baseLotSize) * 10^(baseDecimals - quoteDecimals).
    """
    match kind:
        case Spot(tick_size=tick_size):
            return tick_size
        case Futures():
            with localcontext() as ctx:
                ctx.prec = PRECISION
                lots_to_native = Decimal(kind.quote_lot_size) / Decimal(kind.base_lot_size)
                native_to_ui = Decimal(10) ** (kind.base_decimals - kind.quote_decimals)
                return lots_to_native * native_to_ui
    raise TypeError(f"Unknown market kind: {kind!r}")

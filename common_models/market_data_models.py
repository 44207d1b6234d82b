from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal

# --- Market Data Models (shared by connectors, engine and API) ---

# Decimals are kept exact in memory and emitted as JSON numbers on the wire
WireDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Spot(BaseModel):
    """Spot market: increments are reported by the catalog as-is."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["spot"] = "spot"
    tick_size: WireDecimal
    min_order_size: WireDecimal


class Futures(BaseModel):
    """Perpetual market: increments derive from native lot arithmetic."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["futures"] = "futures"
    base_decimals: int
    quote_decimals: int
    base_lot_size: int
    quote_lot_size: int


MarketKind = Annotated[Union[Spot, Futures], Field(discriminator="kind")]


class MarketConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str  # internal catalog name, e.g. "BTC-PERP", "BTC/USDC"
    base_symbol: str
    quote_symbol: str
    public_key: str  # on-chain market address (base58)
    kind: MarketKind


class OrderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    side: Literal["buy", "sell"]
    price: WireDecimal
    size: WireDecimal


class MarketStats(BaseModel):
    # Upstream field names are camelCase; None means "not provided"
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quote_volume_24h: Optional[float] = Field(default=None, alias="quoteVolume24h")
    volume_usd_24h: Optional[float] = Field(default=None, alias="volumeUsd24h")
    change_1h: Optional[float] = Field(default=None, alias="change1h")
    change_24h: Optional[float] = Field(default=None, alias="change24h")
    change_bod: Optional[float] = Field(default=None, alias="changeBod")


class Trade(BaseModel):
    id: str  # upstream order id of the fill
    price: WireDecimal
    side: str  # "buy" or "sell"
    size: WireDecimal
    time: datetime


class Candle(BaseModel):
    time: int  # bucket start, epoch seconds
    open: WireDecimal
    high: WireDecimal
    low: WireDecimal
    close: WireDecimal
    volume: WireDecimal


class OrderBookSnapshot(BaseModel):
    bids: List[List[WireDecimal]]  # [[price, size], ...] best first
    asks: List[List[WireDecimal]]


class NormalizedMarket(BaseModel):
    """One market's current state, independent of the chain representation."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    base_currency: str = Field(alias="baseCurrency")
    quote_currency: str = Field(alias="quoteCurrency")
    type: Literal["spot", "futures"]
    underlying: str
    bid: Optional[WireDecimal] = None
    ask: Optional[WireDecimal] = None
    last: Optional[WireDecimal] = None
    price: Optional[WireDecimal] = None
    price_increment: WireDecimal = Field(alias="priceIncrement")
    size_increment: WireDecimal = Field(alias="sizeIncrement")
    quote_volume_24h: Optional[float] = Field(default=None, alias="quoteVolume24h")
    volume_usd_24h: Optional[float] = Field(default=None, alias="volumeUsd24h")
    change_1h: Optional[float] = Field(default=None, alias="change1h")
    change_24h: Optional[float] = Field(default=None, alias="change24h")
    change_bod: Optional[float] = Field(default=None, alias="changeBod")

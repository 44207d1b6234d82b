from pydantic import BaseModel, Field
from typing import Any, List, Optional

from .market_data_models import Candle, NormalizedMarket, OrderBookSnapshot, Trade


# --- Error Models (returned with 400/500) ---

class RequestError(BaseModel):
    msg: str
    # Field-level detail, only set for validation failures
    value: Optional[Any] = None
    param: Optional[str] = None
    location: Optional[str] = None


class MarketError(BaseModel):
    msg: str
    market: str  # external market name whose aggregation failed


class ErrorResponse(BaseModel):
    errors: List[RequestError]


# --- Success Envelopes ---

class MarketsResponse(BaseModel):
    success: bool = True
    result: List[NormalizedMarket]
    # Present only when some markets could not be aggregated
    errors: Optional[List[MarketError]] = None


class OrderBookResponse(BaseModel):
    success: bool = True
    result: OrderBookSnapshot


class TradesResponse(BaseModel):
    success: bool = True
    result: List[Trade] = Field(default_factory=list)


class CandlesResponse(BaseModel):
    success: bool = True
    result: List[Candle] = Field(default_factory=list)

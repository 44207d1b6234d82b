from typing import Any, Dict, List, Optional


class MarketDataError(Exception):
    """Base class for errors raised while serving market data."""


class ValidationError(MarketDataError):
    """Client input rejected before any upstream I/O (HTTP 400)."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        super().__init__("; ".join(e.get("msg", "") for e in errors))

    @classmethod
    def for_field(cls, msg: str, param: str, value: Any = None, location: str = "query") -> "ValidationError":
        return cls([{"value": value, "msg": msg, "param": param, "location": location}])


class MarketNotFound(ValidationError):
    def __init__(self, market_name: str):
        self.market_name = market_name
        super().__init__([{
            "value": market_name,
            "msg": f"Market {market_name} not supported!",
            "param": "market_name",
            "location": "params",
        }])


class UpstreamUnavailable(MarketDataError):
    """An upstream could not be reached or answered with a hard failure (HTTP 500)."""

    def __init__(self, source: str, message: str, market: Optional[str] = None):
        self.source = source
        self.message = message
        self.market = market
        super().__init__(message)


class CatalogError(MarketDataError):
    """The group configuration could not be loaded."""

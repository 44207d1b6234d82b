import json
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from common_models.market_data_models import Futures, MarketConfig, Spot
from market_engine.errors import CatalogError, MarketNotFound

logger = logging.getLogger(__name__)

FUTURES_SUFFIX = "PERP"
# Internal quote symbol -> quote symbol used in external market names
QUOTE_ALIASES = {"USDC": "USD"}


def external_name(internal: str) -> str:
    """Maps a catalog name to the name clients see, e.g. BTC/USDC -> BTC/USD."""
    for quote, alias in QUOTE_ALIASES.items():
        if internal.endswith(f"/{quote}"):
            return internal[: -len(quote)] + alias
    return internal


def internal_name(external: str) -> str:
    """Inverse of external_name."""
    for quote, alias in QUOTE_ALIASES.items():
        if external.endswith(f"/{alias}"):
            return external[: -len(alias)] + quote
    return external


def market_kind_of(name: str) -> str:
    return "futures" if FUTURES_SUFFIX in name else "spot"


class MarketCatalog:
    """Resolves market names to their on-chain configuration.

    Markets keep the order in which the group config lists them, perps first.
    """

    def __init__(self, markets: List[MarketConfig], group_name: str = ""):
        self.group_name = group_name
        self._markets = list(markets)
        self._by_name: Dict[str, MarketConfig] = {m.name: m for m in self._markets}

    def list_markets(self) -> List[MarketConfig]:
        return list(self._markets)

    def _lookup(self, name: Optional[str]) -> Optional[MarketConfig]:
        if not name:
            return None
        internal = internal_name(name)
        # Only the external spelling is accepted, BTC/USDC is not an alias of BTC/USD
        if external_name(internal) != name:
            return None
        return self._by_name.get(internal)

    def find_market(self, name: str) -> MarketConfig:
        """Looks up a market by its external name.

        :raises MarketNotFound: if the catalog has no such market.
        """
        market = self._lookup(name)
        if market is None:
            raise MarketNotFound(name)
        return market

    def is_valid_market(self, name: Optional[str]) -> bool:
        return self._lookup(name) is not None

    def __len__(self) -> int:
        return len(self._markets)


def _parse_group(group: dict) -> List[MarketConfig]:
    quote_symbol = group["quoteSymbol"]
    decimals = {t["symbol"]: int(t["decimals"]) for t in group.get("tokens", [])}
    if quote_symbol not in decimals:
        raise CatalogError(f"Quote token {quote_symbol} missing from group {group.get('name')}")

    markets = []
    for perp in group.get("perpMarkets", []):
        markets.append(MarketConfig(
            name=perp["name"],
            base_symbol=perp["baseSymbol"],
            quote_symbol=quote_symbol,
            public_key=perp["publicKey"],
            kind=Futures(
                base_decimals=int(perp["baseDecimals"]),
                quote_decimals=int(perp.get("quoteDecimals", decimals[quote_symbol])),
                base_lot_size=int(perp["baseLotSize"]),
                quote_lot_size=int(perp["quoteLotSize"]),
            ),
        ))
    for spot in group.get("spotMarkets", []):
        markets.append(MarketConfig(
            name=spot["name"],
            base_symbol=spot["baseSymbol"],
            quote_symbol=quote_symbol,
            public_key=spot["publicKey"],
            # str() keeps JSON floats like 0.1 from picking up binary noise
            kind=Spot(
                tick_size=Decimal(str(spot["tickSize"])),
                min_order_size=Decimal(str(spot["minOrderSize"])),
            ),
        ))

    for market in markets:
        if market_kind_of(market.name) != market.kind.kind:
            raise CatalogError(f"Market {market.name} is listed as {market.kind.kind} but named as {market_kind_of(market.name)}")
    return markets


def load_catalog(path: str, group_name: str) -> MarketCatalog:
    """Loads the markets of one group from a mango-style group config file."""
    try:
        with open(path, "r") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        raise CatalogError(f"Cannot read group config {path}: {e}") from e

    group = next((g for g in config.get("groups", []) if g.get("name") == group_name), None)
    if group is None:
        raise CatalogError(f"Group {group_name} not found in {path}")

    try:
        markets = _parse_group(group)
    except (KeyError, TypeError, ValueError) as e:
        raise CatalogError(f"Malformed market entry in group {group_name}: {e}") from e

    logger.info(f"Loaded {len(markets)} markets for group {group_name}")
    return MarketCatalog(markets, group_name=group_name)

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import REGISTRY, make_asgi_app

from common_models.api_models import (
    CandlesResponse,
    ErrorResponse,
    MarketError,
    MarketsResponse,
    OrderBookResponse,
    RequestError,
    TradesResponse,
)
from connectors.chain_connector.reader import HttpOrderReader
from connectors.history_connector.client import HistoryClient
from market_engine.aggregator import MarketAggregator
from market_engine.catalog import load_catalog
from market_engine.errors import MarketNotFound, UpstreamUnavailable, ValidationError
from market_engine.orderbook import DEFAULT_DEPTH, MAX_DEPTH, MIN_DEPTH
from market_engine.settings import Settings, load_settings

logger = logging.getLogger(__name__)

DEPTH_ERROR = f"Depth should be a number between {MIN_DEPTH} and {MAX_DEPTH}!"

router = APIRouter(prefix="/api/markets", tags=["Markets"])


def _aggregator(request: Request) -> MarketAggregator:
    return request.app.state.aggregator


def _validate(aggregator: MarketAggregator, market_name: str, errors: Optional[List[dict]] = None) -> None:
    """Collects every field error before touching an upstream."""
    all_errors = []
    if not aggregator.catalog.is_valid_market(market_name):
        all_errors.extend(MarketNotFound(market_name).errors)
    all_errors.extend(errors or [])
    if all_errors:
        raise ValidationError(all_errors)


def _parse_int(raw: Optional[str]) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _envelope(response) -> JSONResponse:
    body = response.model_dump(mode="json", by_alias=True)
    if body.get("errors") is None:
        body.pop("errors", None)
    return JSONResponse(content=body)


# GET /api/markets
@router.get("")
async def fetch_markets(request: Request):
    outcome = await _aggregator(request).aggregate_all()
    return _envelope(MarketsResponse(
        result=outcome.markets,
        errors=[MarketError(market=f.market, msg=f.msg) for f in outcome.failures] or None,
    ))


# GET /api/markets/{market_name}/orderbook?depth={depth}
@router.get("/{market_name:path}/orderbook")
async def get_order_book(request: Request, market_name: str, depth: Optional[str] = Query(None)):
    aggregator = _aggregator(request)
    errors = []
    if depth in (None, ""):
        depth_value = DEFAULT_DEPTH
    else:
        depth_value = _parse_int(depth)
        if depth_value is None or not MIN_DEPTH <= depth_value <= MAX_DEPTH:
            errors.append({"value": depth, "msg": DEPTH_ERROR, "param": "depth", "location": "query"})
    _validate(aggregator, market_name, errors)

    snapshot = await aggregator.order_book(market_name, depth_value)
    return _envelope(OrderBookResponse(result=snapshot))


# GET /api/markets/{market_name}/trades
@router.get("/{market_name:path}/trades")
async def get_trades(request: Request, market_name: str):
    aggregator = _aggregator(request)
    _validate(aggregator, market_name)
    trades = await aggregator.trades(market_name)
    return _envelope(TradesResponse(result=trades))


# GET /api/markets/{market_name}/candles?resolution={resolution}&start_time={start_time}&end_time={end_time}
@router.get("/{market_name:path}/candles")
async def get_candles(
    request: Request,
    market_name: str,
    resolution: Optional[str] = Query(None),
    start_time: Optional[str] = Query(None),
    end_time: Optional[str] = Query(None),
):
    aggregator = _aggregator(request)
    errors = []
    if not resolution:
        errors.append({"value": resolution, "msg": "Resolution is required!", "param": "resolution", "location": "query"})
    start, end = _parse_int(start_time), _parse_int(end_time)
    if start is None:
        errors.append({"value": start_time, "msg": "start_time should be an epoch in seconds!", "param": "start_time", "location": "query"})
    if end is None:
        errors.append({"value": end_time, "msg": "end_time should be an epoch in seconds!", "param": "end_time", "location": "query"})
    if start is not None and end is not None and start > end:
        errors.append({"value": start_time, "msg": "start_time should not be after end_time!", "param": "start_time", "location": "query"})
    _validate(aggregator, market_name, errors)

    candles = await aggregator.candles(market_name, resolution, start, end)
    return _envelope(CandlesResponse(result=candles))


# GET /api/markets/{market_name}
@router.get("/{market_name:path}")
async def fetch_market(request: Request, market_name: str):
    aggregator = _aggregator(request)
    _validate(aggregator, market_name)
    market = await aggregator.aggregate_one(market_name)
    return _envelope(MarketsResponse(result=[market]))


async def validation_error_handler(request: Request, exc: ValidationError):
    body = ErrorResponse(errors=[RequestError(**e) for e in exc.errors])
    return JSONResponse(status_code=400, content=jsonable_encoder(body))


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        RequestError(
            msg=err.get("msg", "Invalid value"),
            value=err.get("input"),
            param=str(err["loc"][-1]) if err.get("loc") else None,
            location=str(err["loc"][0]) if err.get("loc") else None,
        ) for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=jsonable_encoder(ErrorResponse(errors=errors)))


async def server_error_handler(request: Request, exc: Exception):
    logger.error(f"message - {exc}, path - {request.url.path}", exc_info=exc)
    body = ErrorResponse(errors=[RequestError(msg=str(exc) or type(exc).__name__)])
    return JSONResponse(status_code=500, content=jsonable_encoder(body, exclude_none=True))


def create_app(settings: Optional[Settings] = None, aggregator: Optional[MarketAggregator] = None) -> FastAPI:
    """Builds the API. Pass an aggregator to bypass building upstream clients from settings."""
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        if getattr(app.state, "aggregator", None) is None:
            catalog = load_catalog(settings.group_config_path, settings.group_name)
            history = HistoryClient(settings.history_api_url, timeout=settings.upstream_timeout)
            reader = HttpOrderReader(settings.order_reader_url, timeout=settings.upstream_timeout)
            owned = [history, reader]
            app.state.aggregator = MarketAggregator(catalog, reader, history)
            logger.info(f"Serving {len(catalog)} markets of group {settings.group_name}")
        yield
        for client in owned:
            await client.close()

    app = FastAPI(
        title="Markets Service",
        description="Exchange-style REST API over on-chain order books and the event history API.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator
    app.include_router(router)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(UpstreamUnavailable, server_error_handler)
    app.add_exception_handler(Exception, server_error_handler)

    @app.get("/health", summary="Health Check", tags=["General"])
    async def health_check(request: Request):
        aggregator = getattr(request.app.state, "aggregator", None)
        markets = len(aggregator.catalog) if aggregator else 0
        return {"status": "healthy" if markets else "degraded", "markets": markets}

    app.mount("/metrics", make_asgi_app(REGISTRY))
    return app

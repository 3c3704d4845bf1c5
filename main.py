# main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analytics import StockAnalytics
from cache import TTLCache, run_sweeper
from config import Settings, get_settings
from errors import (
    CredentialUnavailable,
    InvalidInput,
    ServiceError,
    Unauthorized,
    UpstreamFailure,
    UpstreamTimeout,
)
from log_utils import setup_logging
from middleware import (
    AccessLogMiddleware,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from models import (
    AveragePriceResponse,
    CorrelationResponse,
    CurrentPriceResponse,
    ErrorResponse,
    HealthResponse,
    NumbersResponse,
    PriceHistoryResponse,
    StockCatalogResponse,
)
from numbers_service import fetch_numbers, unchanged
from upstream import CredentialStore, UpstreamClient
from window import SlidingWindowStore

logger = logging.getLogger(__name__)

SERVICE_NAME = "Price Window Analytics"
SERVICE_VERSION = "1.0.0"
RATE_LIMITED_PREFIXES = ("/stocks", "/correlation")

router = APIRouter()


# --- Dependencies: process-scoped state lives on app.state ---

def get_analytics(request: Request) -> StockAnalytics:
    return request.app.state.analytics


def get_window(request: Request) -> SlidingWindowStore:
    return request.app.state.window


def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# --- 1) Number window ---

@router.get(
    "/numbers/{kind}",
    response_model=NumbersResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 401: {"model": NumbersResponse}, 503: {"model": NumbersResponse}},
    tags=["Numbers"],
)
async def get_numbers(
    kind: str,
    window: SlidingWindowStore = Depends(get_window),
    upstream: UpstreamClient = Depends(get_upstream),
    settings: Settings = Depends(get_app_settings),
):
    """
    Fetch numbers of one kind (p, f, e, r), absorb them into the window and
    report the window before and after along with its average.
    """
    try:
        return await fetch_numbers(
            kind,
            window,
            upstream,
            base_url=settings.NUMBERS_API_BASE_URL,
            timeout_s=settings.NUMBERS_TIMEOUT_MS / 1000.0,
        )
    except CredentialUnavailable:
        logger.warning("Access token not available")
        body = unchanged(
            window,
            error="Service unavailable: access token not obtained. Check the ACCESS_TOKEN setting.",
        )
        return _window_error(body, status.HTTP_503_SERVICE_UNAVAILABLE)
    except Unauthorized:
        body = unchanged(
            window,
            error="Authorization failed: access token expired or invalid. Please retry.",
        )
        return _window_error(body, status.HTTP_401_UNAUTHORIZED)


def _window_error(body: NumbersResponse, status_code: int) -> JSONResponse:
    return JSONResponse(body.model_dump(by_alias=True, exclude_none=True), status_code=status_code)


# --- 2) Stock analytics ---

@router.get("/stocks", response_model=StockCatalogResponse, tags=["Stocks"])
async def list_stocks(analytics: StockAnalytics = Depends(get_analytics)):
    return await analytics.get_all_stocks()


@router.get("/stocks/{ticker}", response_model=CurrentPriceResponse, tags=["Stocks"])
async def current_price(ticker: str, analytics: StockAnalytics = Depends(get_analytics)):
    return await analytics.get_current_price(ticker)


@router.get("/stocks/{ticker}/history", response_model=PriceHistoryResponse, tags=["Stocks"])
async def price_history(
    ticker: str,
    minutes: Optional[int] = Query(default=None, gt=0),
    analytics: StockAnalytics = Depends(get_analytics),
):
    return await analytics.get_price_history(ticker, minutes)


@router.get("/stocks/{ticker}/average", response_model=AveragePriceResponse, tags=["Stocks"])
async def average_price(
    ticker: str,
    minutes: Optional[int] = Query(default=None, gt=0),
    analytics: StockAnalytics = Depends(get_analytics),
):
    return await analytics.get_average_price(ticker, minutes)


@router.get("/correlation", response_model=CorrelationResponse, tags=["Stocks"])
async def correlation(
    ticker1: str = Query(...),
    ticker2: str = Query(...),
    minutes: Optional[int] = Query(default=None, gt=0),
    analytics: StockAnalytics = Depends(get_analytics),
):
    """Pearson correlation between two tickers' price histories."""
    return await analytics.get_correlation(ticker1, ticker2, minutes)


# --- 3) Service ---

@router.get("/", tags=["Service"])
async def root():
    return {"name": SERVICE_NAME, "version": SERVICE_VERSION, "docs": "/docs"}


@router.get("/health", response_model=HealthResponse, tags=["Service"])
async def health(request: Request):
    state = request.app.state
    return HealthResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        auth="Configured" if state.credentials.is_configured else "Missing",
        window={"size": len(state.window), "capacity": state.window.capacity},
        cache=state.cache.stats(),
    )


# --- Error handlers ---

def _error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, InvalidInput):
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, CredentialUnavailable):
        return _error(str(exc), status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(exc, UpstreamTimeout):
        return _error(str(exc), status.HTTP_504_GATEWAY_TIMEOUT)
    if isinstance(exc, UpstreamFailure):
        return _error(str(exc), status.HTTP_502_BAD_GATEWAY)
    logger.error("Unhandled service error", exc_info=exc)
    return _error("Internal Server Error", status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error("Invalid request parameters", status.HTTP_400_BAD_REQUEST, details=details)


# --- App factory ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(
        "Service starting",
        extra={"auth": "Configured" if app.state.credentials.is_configured else "Missing"},
    )
    sweeper = asyncio.create_task(run_sweeper(app.state.cache, settings.CACHE_SWEEP_SEC))
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        await app.state.upstream.aclose()


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the service with fresh process-scoped state.

    ``transport`` replaces the network for the upstream client (tests pass an
    ``httpx.MockTransport``).
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title=f"{SERVICE_NAME} Service", version=SERVICE_VERSION, lifespan=lifespan)

    credentials = CredentialStore(settings.ACCESS_TOKEN, settings.TOKEN_TYPE)
    http_client = httpx.AsyncClient(transport=transport, timeout=settings.STOCK_TIMEOUT_SEC)
    upstream = UpstreamClient(credentials, http_client)
    cache = TTLCache(default_ttl=settings.CACHE_TTL_SEC)

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.upstream = upstream
    app.state.cache = cache
    app.state.window = SlidingWindowStore(capacity=settings.WINDOW_SIZE)
    app.state.analytics = StockAnalytics(
        upstream,
        cache,
        base_url=settings.STOCK_API_BASE_URL,
        current_price_ttl=settings.CURRENT_PRICE_TTL_SEC,
        default_minutes=settings.DEFAULT_MINUTES,
    )
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SEC
    )

    # Last added runs first: security headers wrap everything, including
    # the 500s produced by the access log middleware
    app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter, prefixes=RATE_LIMITED_PREFIXES)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("main:app", host=_settings.HOST, port=_settings.PORT)

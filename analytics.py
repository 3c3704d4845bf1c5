# analytics.py
"""Cached stock analytics over the upstream price service.

Every operation follows the same steps: derive a cache key from the operation
and its parameters, return the cached result if fresh, otherwise fetch
upstream, compute, cache and return. Upstream failures propagate unchanged
and nothing is cached for them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from cache import TTLCache
from errors import UpstreamDecodeError
from models import (
    AveragePriceResponse,
    CorrelationResponse,
    CurrentPricePayload,
    CurrentPriceResponse,
    PriceHistoryPayload,
    PriceHistoryResponse,
    PriceSample,
    StockCatalogPayload,
    StockCatalogResponse,
    StockSeries,
)
from stats import mean, pearson_correlation
from upstream import UpstreamClient

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _time_range(minutes: int) -> str:
    return f"{minutes} minutes"


def _prices(samples: List[PriceSample]) -> List[float]:
    return [s.price for s in samples]


class StockAnalytics:
    def __init__(
        self,
        upstream: UpstreamClient,
        cache: TTLCache,
        base_url: str,
        current_price_ttl: float = 60.0,
        default_minutes: int = 50,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.upstream = upstream
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.current_price_ttl = current_price_ttl
        self.default_minutes = default_minutes
        self.timeout_s = timeout_s

    async def _cached(
        self,
        key: str,
        compute: Callable[[], Awaitable[M]],
        ttl: Optional[float] = None,
    ) -> M:
        hit = self.cache.get(key)
        if hit is not None:
            logger.debug("Cache hit", extra={"key": key})
            return hit
        logger.debug("Cache miss", extra={"key": key})
        result = await compute()
        self.cache.set(key, result, ttl)
        return result

    async def _fetch(self, path: str, minutes: Optional[int] = None) -> Any:
        params = {"minutes": minutes} if minutes is not None else None
        return await self.upstream.fetch(f"{self.base_url}{path}", params=params, timeout=self.timeout_s)

    async def _fetch_history(self, ticker: str, minutes: int) -> List[PriceSample]:
        raw = await self._fetch(f"/stocks/{ticker}", minutes)
        try:
            return PriceHistoryPayload.validate_python(raw)
        except ValidationError as exc:
            raise UpstreamDecodeError(f"Unexpected price history payload for {ticker}") from exc

    async def get_all_stocks(self) -> StockCatalogResponse:
        async def compute() -> StockCatalogResponse:
            raw = await self._fetch("/stocks")
            try:
                payload = StockCatalogPayload.model_validate(raw)
            except ValidationError as exc:
                raise UpstreamDecodeError("Unexpected stock catalog payload") from exc
            return StockCatalogResponse(stocks=payload.stocks)

        return await self._cached("all_stocks", compute)

    async def get_current_price(self, ticker: str) -> CurrentPriceResponse:
        async def compute() -> CurrentPriceResponse:
            raw = await self._fetch(f"/stocks/{ticker}")
            try:
                payload = CurrentPricePayload.model_validate(raw)
            except ValidationError as exc:
                raise UpstreamDecodeError(f"Unexpected price payload for {ticker}") from exc
            return CurrentPriceResponse(
                stock=ticker,
                price=payload.stock.price,
                last_updated_at=payload.stock.last_updated_at,
            )

        return await self._cached(f"stock_{ticker}", compute, ttl=self.current_price_ttl)

    async def get_price_history(self, ticker: str, minutes: Optional[int] = None) -> PriceHistoryResponse:
        minutes = minutes or self.default_minutes

        async def compute() -> PriceHistoryResponse:
            history = await self._fetch_history(ticker, minutes)
            return PriceHistoryResponse(
                stock=ticker, time_range=_time_range(minutes), price_history=history
            )

        return await self._cached(f"history_{ticker}_{minutes}", compute)

    async def get_average_price(self, ticker: str, minutes: Optional[int] = None) -> AveragePriceResponse:
        minutes = minutes or self.default_minutes

        async def compute() -> AveragePriceResponse:
            history = await self._fetch_history(ticker, minutes)
            return AveragePriceResponse(
                stock=ticker,
                time_range=_time_range(minutes),
                average_price=round(mean(_prices(history)), 6),
                price_history=history,
            )

        return await self._cached(f"average_{ticker}_{minutes}", compute)

    async def get_correlation(
        self, ticker1: str, ticker2: str, minutes: Optional[int] = None
    ) -> CorrelationResponse:
        minutes = minutes or self.default_minutes

        async def compute() -> CorrelationResponse:
            # Either failure fails the whole operation
            history1, history2 = await asyncio.gather(
                self._fetch_history(ticker1, minutes),
                self._fetch_history(ticker2, minutes),
            )
            # Truncate to the shorter series, keeping each series' own prefix.
            # No realignment by timestamp.
            n = min(len(history1), len(history2))
            history1, history2 = history1[:n], history2[:n]

            correlation = 0.0
            if n > 1:
                correlation = pearson_correlation(_prices(history1), _prices(history2))

            return CorrelationResponse(
                correlation=correlation,
                time_range=_time_range(minutes),
                stocks={
                    ticker1: StockSeries(average_price=mean(_prices(history1)), price_history=history1),
                    ticker2: StockSeries(average_price=mean(_prices(history2)), price_history=history2),
                },
            )

        return await self._cached(f"correlation_{ticker1}_{ticker2}_{minutes}", compute)

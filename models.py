# models.py
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

Number = Union[int, float]


class CamelModel(BaseModel):
    # Wire format is camelCase; Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Upstream payloads ---

class NumbersPayload(BaseModel):
    numbers: List[Number]


class PriceSample(CamelModel):
    price: float
    last_updated_at: str


class StockCatalogPayload(BaseModel):
    stocks: Dict[str, str]


class CurrentPricePayload(BaseModel):
    stock: PriceSample


PriceHistoryPayload = TypeAdapter(List[PriceSample])


# --- Responses ---

class NumbersResponse(CamelModel):
    window_prev_state: List[Number]
    window_curr_state: List[Number]
    numbers: List[Number]
    avg: str  # two decimals
    error: Optional[str] = None


class StockCatalogResponse(CamelModel):
    stocks: Dict[str, str]


class CurrentPriceResponse(CamelModel):
    stock: str
    price: float
    last_updated_at: str


class PriceHistoryResponse(CamelModel):
    stock: str
    time_range: str
    price_history: List[PriceSample]


class AveragePriceResponse(CamelModel):
    stock: str
    time_range: str
    average_price: float
    price_history: List[PriceSample]


class StockSeries(CamelModel):
    average_price: float
    price_history: List[PriceSample]


class CorrelationResponse(CamelModel):
    correlation: float = Field(..., ge=-1.0, le=1.0)
    time_range: str
    stocks: Dict[str, StockSeries]


class WindowStats(BaseModel):
    size: int
    capacity: int


class CacheStats(BaseModel):
    entries: int
    hits: int
    misses: int


class HealthResponse(BaseModel):
    status: Literal["UP"] = "UP"
    timestamp: str
    auth: Literal["Configured", "Missing"]
    window: WindowStats
    cache: CacheStats


class ErrorResponse(BaseModel):
    error: str

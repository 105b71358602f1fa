from pydantic import BaseModel, Field
from typing import Optional

from ..pipeline.models import ChartPoint, PeriodSummary

class AprSummaryRequest(BaseModel):
    periods: list[PeriodSummary]
    asset_decimals: int = Field(ge=0)
    vault_decimals: Optional[int] = Field(default=None, ge=0)
    time_range: Optional[str] = None
    now: Optional[int] = None

class PriceReferenceRequest(BaseModel):
    periods: list[PeriodSummary]
    timestamp: int
    asset_decimals: int = Field(ge=0)
    vault_decimals: Optional[int] = Field(default=None, ge=0)

class PriceReferenceResponse(BaseModel):
    price: str
    price_display: float
    effective_timestamp: int

class AllocationRequest(BaseModel):
    portfolios: list[dict]

class SeriesShapeRequest(BaseModel):
    points: list[ChartPoint]
    compare_points: Optional[list[ChartPoint]] = None
    names: tuple[str, str] = ("value", "compare")
    time_range: Optional[str] = None
    now: Optional[int] = None
    max_points: Optional[int] = Field(default=None, ge=1)
    rolling_window: Optional[int] = Field(default=None, ge=1)
    lookback: Optional[int] = Field(default=None, ge=1)

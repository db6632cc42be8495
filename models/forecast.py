from dataclasses import dataclass
from datetime import date
from typing import List, Optional


@dataclass
class TrendFit:
    slope: float
    intercept: float
    r2: float


@dataclass
class SeasonalPattern:
    period: int         # days
    amplitude: float    # peak-to-mean deviation
    phase: int          # offset of the highest averaged value
    confidence: float   # autocorrelation at the period


@dataclass
class ForecastPoint:
    day: date
    predicted: float
    confidence: float
    trend: str  # "increasing", "decreasing", "stable"


@dataclass
class ForecastResult:
    predictions: List[ForecastPoint]
    algorithm: str
    confidence: float
    trend_direction: str  # "up", "down", "stable"
    seasonality: bool
    data_points: int
    trend: Optional[TrendFit] = None
    seasonal_pattern: Optional[SeasonalPattern] = None
    residual_std: float = 0.0

    @property
    def values(self) -> List[float]:
        return [p.predicted for p in self.predictions]


@dataclass
class CapacityTrend:
    direction: str      # "increasing", "decreasing", "stable"
    strength: float     # 0-1
    volatility: float   # 0-1
    growth_rate: float  # annualized percent

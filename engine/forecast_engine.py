"""Time-series forecasting: smoothing, linear trend, seasonality and projection."""

import json
import logging
import math
from datetime import date, timedelta
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from models.forecast import (
    CapacityTrend, ForecastPoint, ForecastResult, SeasonalPattern, TrendFit,
)
from engine.errors import InsufficientDataError
from config.defaults import (
    MIN_FORECAST_POINTS, MOVING_AVERAGE_WINDOW, SEASONAL_PERIODS,
    MIN_SEASONAL_POINTS, AUTOCORRELATION_THRESHOLD, CONFIDENCE_FLOOR,
    CONFIDENCE_DECAY_DAYS, STABLE_SLOPE_BAND, DEFAULT_FORECAST_DAYS,
)

logger = logging.getLogger(__name__)

ALGORITHM_NAME = "MovingAverage_Seasonal"

SeriesInput = Union[Sequence[Tuple[date, float]], pd.DataFrame]


def to_frame(series: SeriesInput) -> pd.DataFrame:
    """Normalize (date, value) pairs or a date/value frame, sorted by date."""
    if isinstance(series, pd.DataFrame):
        df = series[["date", "value"]].copy()
    else:
        df = pd.DataFrame(list(series), columns=["date", "value"])
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["value"] = df["value"].astype(float)
    return df.sort_values("date", kind="stable").reset_index(drop=True)


def moving_average(values: np.ndarray, window: int = MOVING_AVERAGE_WINDOW) -> np.ndarray:
    """Centered moving average; the window shrinks at both edges."""
    return (
        pd.Series(values, dtype=float)
        .rolling(window, center=True, min_periods=1)
        .mean()
        .to_numpy()
    )


def fit_trend(values: np.ndarray) -> TrendFit:
    """Ordinary least squares of value against index."""
    n = len(values)
    x = np.arange(n, dtype=float)
    if n < 2:
        return TrendFit(slope=0.0, intercept=float(values[0]) if n else 0.0, r2=0.0)
    x_mean = x.mean()
    y_mean = values.mean()
    sxx = ((x - x_mean) ** 2).sum()
    slope = float(((x - x_mean) * (values - y_mean)).sum() / sxx)
    intercept = float(y_mean - slope * x_mean)

    total_ss = float(((values - y_mean) ** 2).sum())
    residual_ss = float(((values - (slope * x + intercept)) ** 2).sum())
    r2 = 1 - residual_ss / total_ss if total_ss > 0 else 0.0
    return TrendFit(slope=slope, intercept=intercept, r2=max(0.0, r2))


def autocorrelation(values: np.ndarray, lag: int) -> float:
    if len(values) <= lag:
        return 0.0
    mean = values.mean()
    centered = values - mean
    denominator = float((centered ** 2).sum())
    if denominator <= 0:
        return 0.0
    numerator = float((centered[:-lag] * centered[lag:]).sum())
    return numerator / denominator


def _phase_averages(values: np.ndarray, period: int) -> np.ndarray:
    cycles = len(values) // period
    folded = values[: cycles * period].reshape(cycles, period)
    return folded.mean(axis=0)


def seasonal_amplitude(values: np.ndarray, period: int) -> float:
    if len(values) < period * 2:
        return 0.0
    averages = _phase_averages(values, period)
    return float(np.abs(averages - averages.mean()).max())


def seasonal_phase(values: np.ndarray, period: int) -> int:
    if len(values) < period:
        return 0
    return int(np.argmax(_phase_averages(values, period)))


def detect_seasonality(
    values: np.ndarray,
    rule_config: Optional[dict] = None,
) -> Optional[SeasonalPattern]:
    """Best candidate period by autocorrelation of the detrended series."""
    cfg = rule_config or {}
    periods = cfg.get("seasonal_periods", SEASONAL_PERIODS)
    threshold = cfg.get("autocorrelation_threshold", AUTOCORRELATION_THRESHOLD)
    min_points = cfg.get("min_seasonal_points", MIN_SEASONAL_POINTS)

    if len(values) < min_points:
        return None

    raw_fit = fit_trend(values)
    residuals = values - (raw_fit.slope * np.arange(len(values)) + raw_fit.intercept)
    scale = max(1.0, float(np.abs(values).max()))
    if np.allclose(residuals, 0.0, atol=1e-9 * scale):
        return None

    best: Optional[SeasonalPattern] = None
    best_correlation = 0.0
    for period in periods:
        if len(values) < period * 2:
            continue
        correlation = autocorrelation(residuals, period)
        logger.debug("Autocorrelation at period %d: %.3f", period, correlation)
        if correlation > best_correlation and correlation > threshold:
            best_correlation = correlation
            best = SeasonalPattern(
                period=period,
                amplitude=seasonal_amplitude(residuals, period),
                phase=seasonal_phase(residuals, period),
                confidence=correlation,
            )
    return best


def seasonal_adjustment(offset: int, pattern: SeasonalPattern) -> float:
    position = (offset + pattern.phase) % pattern.period
    angle = 2 * math.pi * position / pattern.period
    return pattern.amplitude * math.sin(angle) * pattern.confidence


def trend_label(slope: float, band: float = STABLE_SLOPE_BAND) -> str:
    if slope > band:
        return "increasing"
    if slope < -band:
        return "decreasing"
    return "stable"


def trend_direction(slope: float, band: float = STABLE_SLOPE_BAND) -> str:
    if abs(slope) < band:
        return "stable"
    return "up" if slope > 0 else "down"


def forecast(
    series: SeriesInput,
    horizon_days: int = DEFAULT_FORECAST_DAYS,
    rule_config: Optional[dict] = None,
) -> ForecastResult:
    """Project a daily series ``horizon_days`` beyond its last date.

    Raises InsufficientDataError when fewer than the minimum number of
    points are supplied. Degenerate input (constant values) produces a flat
    forecast at the floor confidence rather than an error.
    """
    cfg = rule_config or {}
    min_points = cfg.get("min_forecast_points", MIN_FORECAST_POINTS)
    window = cfg.get("moving_average_window", MOVING_AVERAGE_WINDOW)
    floor = cfg.get("confidence_floor", CONFIDENCE_FLOOR)
    decay = cfg.get("confidence_decay_days", CONFIDENCE_DECAY_DAYS)
    band = cfg.get("stable_slope_band", STABLE_SLOPE_BAND)

    df = to_frame(series)
    if len(df) < min_points:
        raise InsufficientDataError(min_points, len(df))

    values = df["value"].to_numpy()
    smoothed = moving_average(values, window)
    trend = fit_trend(smoothed)
    pattern = detect_seasonality(values, cfg)

    last_date = df["date"].iloc[-1]
    last_value = float(smoothed[-1])
    base_confidence = max(trend.r2, floor)
    label = trend_label(trend.slope, band)

    predictions = []
    for i in range(1, horizon_days + 1):
        predicted = last_value + trend.slope * i
        if pattern is not None:
            predicted += seasonal_adjustment(i, pattern)
        predictions.append(ForecastPoint(
            day=last_date + timedelta(days=i),
            predicted=max(0.0, predicted),
            confidence=base_confidence * math.exp(-i / decay),
            trend=label,
        ))

    fitted = trend.slope * np.arange(len(smoothed)) + trend.intercept
    residual_std = float(np.std(values - fitted))
    overall = (
        sum(p.confidence for p in predictions) / len(predictions) if predictions else 0.0
    )
    logger.debug(
        "Forecast over %d points: slope=%.4f r2=%.3f seasonality=%s",
        len(df), trend.slope, trend.r2, pattern.period if pattern else None,
    )
    return ForecastResult(
        predictions=predictions,
        algorithm=ALGORITHM_NAME,
        confidence=overall,
        trend_direction=trend_direction(trend.slope, band),
        seasonality=pattern is not None,
        data_points=len(df),
        trend=trend,
        seasonal_pattern=pattern,
        residual_std=residual_std,
    )


def analyze_capacity_trend(
    series: SeriesInput,
    rule_config: Optional[dict] = None,
) -> CapacityTrend:
    """Direction, strength, volatility and annualized growth of a capacity series."""
    cfg = rule_config or {}
    band = cfg.get("stable_slope_band", STABLE_SLOPE_BAND)

    df = to_frame(series)
    if len(df) < 2:
        return CapacityTrend(direction="stable", strength=0.0, volatility=0.0, growth_rate=0.0)

    values = df["value"].to_numpy()
    slope = fit_trend(values).slope
    mean = float(values.mean())
    std = float(values.std())

    volatility = min(std / mean, 1.0) if mean > 0 else 0.0
    strength = min(abs(slope) / mean, 1.0) if mean > 0 else 0.0

    first, last = float(values[0]), float(values[-1])
    periods = len(values) - 1
    if first > 0 and last >= 0:
        growth_rate = ((last / first) ** (365 / periods) - 1) * 100
    else:
        growth_rate = 0.0

    if abs(slope) < band:
        direction = "stable"
    else:
        direction = "increasing" if slope > 0 else "decreasing"
    return CapacityTrend(
        direction=direction,
        strength=strength,
        volatility=volatility,
        growth_rate=growth_rate,
    )


def forecast_to_frame(result: ForecastResult) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Date": p.day.isoformat(),
            "Predicted": p.predicted,
            "Confidence": p.confidence,
            "Trend": p.trend,
        }
        for p in result.predictions
    ], columns=["Date", "Predicted", "Confidence", "Trend"])


def export_forecast(result: ForecastResult) -> Dict[str, str]:
    """Render a forecast as CSV, JSON and a plain-text summary."""
    df = forecast_to_frame(result)
    csv_df = df.copy()
    csv_df["Predicted"] = csv_df["Predicted"].map(lambda v: f"{v:.2f}")
    csv_df["Confidence"] = csv_df["Confidence"].map(lambda v: f"{v:.3f}")
    csv = csv_df.to_csv(index=False, lineterminator="\n")

    payload = {
        "predictions": [
            {
                "date": p.day.isoformat(),
                "predicted": p.predicted,
                "confidence": p.confidence,
                "trend": p.trend,
            }
            for p in result.predictions
        ],
        "metadata": {
            "algorithm": result.algorithm,
            "confidence": result.confidence,
            "trend_direction": result.trend_direction,
            "seasonality": result.seasonality,
            "data_points": result.data_points,
        },
    }

    values = result.values
    avg_predicted = sum(values) / len(values) if values else 0.0
    summary_lines = [
        "Forecast Summary:",
        f"Algorithm: {result.algorithm}",
        f"Data Points: {result.data_points}",
        f"Predictions: {len(values)} days",
        f"Average Predicted Value: {avg_predicted:.2f}",
        f"Overall Confidence: {result.confidence * 100:.1f}%",
        f"Trend Direction: {result.trend_direction}",
        f"Seasonality Detected: {'Yes' if result.seasonality else 'No'}",
    ]
    return {
        "csv": csv,
        "json": json.dumps(payload, indent=2),
        "summary": "\n".join(summary_lines),
    }

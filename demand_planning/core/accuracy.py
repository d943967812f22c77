# demand_planning/core/accuracy.py
"""Forecast error metrics.

Every metric takes (actual, forecast) pairs. Signed errors follow the
forecast - actual convention, so a positive bias means over-forecasting.
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..exceptions import NoForecastDataError

Pair = Tuple[float, float]

@dataclass
class AccuracyResult:
    mape: Optional[float]
    mae: float
    mad: float
    rmse: float
    bias: float
    bias_percentage: Optional[float]
    tracking_signal: float
    sample_size: int
    total_actual_demand: float
    total_forecasted_demand: float

    def is_within_tolerance(self, target_mape: float) -> bool:
        """True when MAPE is known and does not exceed the target."""
        return self.mape is not None and self.mape <= target_mape


def _split(pairs: Sequence[Pair]) -> Tuple[np.ndarray, np.ndarray]:
    if not pairs:
        return np.array([], dtype=float), np.array([], dtype=float)
    actual, forecast = zip(*pairs)
    return np.asarray(actual, dtype=float), np.asarray(forecast, dtype=float)

def calculate_mape(pairs: Sequence[Pair]) -> Optional[float]:
    """Mean absolute percentage error over days with positive actual demand.

    Returns:
        MAPE in percent, or None when no day has positive actual demand
    """
    actual, forecast = _split(pairs)
    mask = actual > 0
    if not mask.any():
        return None

    return float(np.mean(np.abs(actual[mask] - forecast[mask]) / actual[mask]) * 100)

def calculate_mae(pairs: Sequence[Pair]) -> float:
    actual, forecast = _split(pairs)
    if actual.size == 0:
        return 0.0
    return float(np.mean(np.abs(actual - forecast)))

def calculate_mad(pairs: Sequence[Pair]) -> float:
    """Mean absolute deviation of forecast from actual (same as MAE)."""
    return calculate_mae(pairs)

def calculate_rmse(pairs: Sequence[Pair]) -> float:
    actual, forecast = _split(pairs)
    if actual.size == 0:
        return 0.0
    return math.sqrt(float(np.mean((actual - forecast) ** 2)))

def calculate_bias(pairs: Sequence[Pair]) -> float:
    """Mean signed error, forecast - actual."""
    actual, forecast = _split(pairs)
    if actual.size == 0:
        return 0.0
    return float(np.mean(forecast - actual))

def calculate_bias_percentage(pairs: Sequence[Pair]) -> Optional[float]:
    """Total signed error as a percentage of total actual demand."""
    actual, forecast = _split(pairs)
    total_actual = float(np.sum(actual))
    if total_actual == 0:
        return None
    return float(np.sum(forecast - actual)) / total_actual * 100

def calculate_tracking_signal(pairs: Sequence[Pair]) -> float:
    """Cumulative signed error divided by MAD, 0 when MAD is 0."""
    actual, forecast = _split(pairs)
    mad = calculate_mad(pairs)
    if mad == 0:
        return 0.0
    return float(np.sum(forecast - actual)) / mad

def calculate_accuracy(pairs: Sequence[Pair]) -> AccuracyResult:
    """Compute every accuracy metric for a set of (actual, forecast) pairs.

    Raises:
        NoForecastDataError: If there are no pairs
    """
    if not pairs:
        raise NoForecastDataError()

    actual, forecast = _split(pairs)
    mae = calculate_mae(pairs)

    return AccuracyResult(
        mape=calculate_mape(pairs),
        mae=mae,
        mad=mae,
        rmse=calculate_rmse(pairs),
        bias=calculate_bias(pairs),
        bias_percentage=calculate_bias_percentage(pairs),
        tracking_signal=calculate_tracking_signal(pairs),
        sample_size=len(pairs),
        total_actual_demand=float(np.sum(actual)),
        total_forecasted_demand=float(np.sum(forecast))
    )

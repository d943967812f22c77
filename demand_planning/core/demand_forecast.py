# demand_planning/core/demand_forecast.py
import math
from dataclasses import dataclass, field
from functools import reduce
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..exceptions import ForecastError, InsufficientDataError
from ..models import ForecastAlgorithm

# z-scores for the two-sided 80% and 95% prediction intervals
Z_80 = 1.28
Z_95 = 1.96

SEASONAL_PERIOD_CANDIDATES = (7, 30, 90, 180, 365)
DEFAULT_SEASONAL_PERIOD = 7

CONFIDENCE_SCORES = {
    ForecastAlgorithm.MOVING_AVERAGE: 0.70,
    ForecastAlgorithm.EXP_SMOOTHING: 0.75,
    ForecastAlgorithm.HOLT_WINTERS: 0.80,
}

@dataclass
class ForecastPoint:
    step: int
    quantity: float
    lower_80: float
    upper_80: float
    lower_95: float
    upper_95: float

@dataclass
class ForecastResult:
    """Output of one forecasting algorithm over a horizon."""
    algorithm: ForecastAlgorithm
    points: List[ForecastPoint]
    confidence_score: float
    std_dev: float
    seasonal_period: Optional[int] = None

    @property
    def horizon_days(self) -> int:
        return len(self.points)

@dataclass(frozen=True)
class HoltWintersState:
    level: float
    trend: float
    seasonal: Tuple[float, ...] = field(default_factory=tuple)

    @property
    def period(self) -> int:
        return len(self.seasonal)


def _as_array(series: Sequence[float]) -> np.ndarray:
    values = np.asarray(series, dtype=float)
    if values.size == 0:
        raise InsufficientDataError("Cannot forecast an empty demand series")
    return values

def coefficient_of_variation(series: Sequence[float]) -> float:
    """Population standard deviation over mean.

    Args:
        series: Demand values

    Returns:
        Coefficient of variation, 0 when the mean is not positive
    """
    values = np.asarray(series, dtype=float)
    if values.size == 0:
        return 0.0

    mean = float(np.mean(values))
    if mean <= 0:
        return 0.0

    return float(np.std(values)) / mean

def calculate_autocorrelation(series: Sequence[float], lag: int) -> float:
    """Sample autocorrelation at a lag.

    The numerator sums over the n - lag valid pairs while the denominator
    covers the full series, both centred on the overall mean.

    Args:
        series: Demand values
        lag: Lag in days

    Returns:
        Autocorrelation, 0 when lag >= n or the series is constant
    """
    values = np.asarray(series, dtype=float)
    n = values.size
    if lag >= n or n == 0:
        return 0.0

    deviations = values - np.mean(values)
    denominator = float(np.sum(deviations ** 2))
    if denominator <= 0:
        return 0.0

    numerator = float(np.sum(deviations[:n - lag] * deviations[lag:]))
    return numerator / denominator

def detect_seasonality(series: Sequence[float], threshold: float = 0.3) -> bool:
    """Weekly or monthly seasonality test.

    Args:
        series: Demand values
        threshold: Minimum autocorrelation at lag 7 or lag 30

    Returns:
        True if either lag exceeds the threshold
    """
    if len(series) < 30:
        return False

    weekly = calculate_autocorrelation(series, 7)
    monthly = calculate_autocorrelation(series, 30)

    return weekly > threshold or monthly > threshold

def detect_seasonal_period(series: Sequence[float], threshold: float = 0.3) -> int:
    """Pick the candidate period with the strongest autocorrelation.

    Only periods shorter than half the series are tested. Falls back to a
    weekly period when no candidate reaches the threshold.
    """
    n = len(series)
    best_period = DEFAULT_SEASONAL_PERIOD
    best_acf = 0.0

    for period in SEASONAL_PERIOD_CANDIDATES:
        if period < n / 2:
            acf = calculate_autocorrelation(series, period)
            if acf > best_acf:
                best_acf = acf
                best_period = period

    if best_acf < threshold:
        return DEFAULT_SEASONAL_PERIOD

    return best_period

def select_algorithm(
    requested: Union[str, ForecastAlgorithm, None],
    series: Sequence[float],
    seasonality_threshold: float = 0.3,
    variability_threshold: float = 0.3,
    holt_winters_min_history: int = 60
) -> ForecastAlgorithm:
    """Choose the forecasting algorithm for a demand series.

    An explicit request always wins. For AUTO (or None), seasonal series
    with enough history get Holt-Winters, volatile series get exponential
    smoothing and stable series get a moving average.
    """
    if isinstance(requested, ForecastAlgorithm):
        return requested

    if requested and requested.upper() != 'AUTO':
        try:
            return ForecastAlgorithm.from_string(requested)
        except ValueError as e:
            raise ForecastError(str(e))

    if detect_seasonality(series, seasonality_threshold) and len(series) >= holt_winters_min_history:
        return ForecastAlgorithm.HOLT_WINTERS

    if coefficient_of_variation(series) >= variability_threshold:
        return ForecastAlgorithm.EXP_SMOOTHING

    return ForecastAlgorithm.MOVING_AVERAGE

def build_forecast_points(raw_values: Sequence[float], std_dev: float) -> List[ForecastPoint]:
    """Attach prediction intervals to raw per-step forecasts.

    The interval half-width at step h is z x std_dev x sqrt(h). Quantities and
    lower bounds are clamped at zero.
    """
    points = []
    for step, raw in enumerate(raw_values, start=1):
        spread = std_dev * math.sqrt(step)
        points.append(ForecastPoint(
            step=step,
            quantity=max(0.0, raw),
            lower_80=max(0.0, raw - Z_80 * spread),
            upper_80=raw + Z_80 * spread,
            lower_95=max(0.0, raw - Z_95 * spread),
            upper_95=raw + Z_95 * spread
        ))
    return points

def moving_average_forecast(series: Sequence[float], horizon: int, window: int = 30) -> ForecastResult:
    """Flat forecast at the mean of the most recent `window` observations."""
    values = _as_array(series)
    recent = values[-min(window, values.size):]

    average = float(np.mean(recent))
    std_dev = float(np.std(recent))

    algorithm = ForecastAlgorithm.MOVING_AVERAGE
    return ForecastResult(
        algorithm=algorithm,
        points=build_forecast_points([average] * horizon, std_dev),
        confidence_score=CONFIDENCE_SCORES[algorithm],
        std_dev=std_dev
    )

def exponential_smoothing_level(series: Sequence[float], alpha: float = 0.3) -> float:
    """Final smoothed level, seeded at the first observation."""
    values = _as_array(series)
    return reduce(lambda level, x: alpha * x + (1 - alpha) * level, values[1:], float(values[0]))

def exponential_smoothing_residual_std(series: Sequence[float], alpha: float = 0.3) -> float:
    """Root mean squared one-step-ahead error of simple exponential smoothing."""
    values = _as_array(series)
    if values.size < 2:
        return 0.0

    def step(state, x):
        level, sse = state
        error = x - level
        return alpha * x + (1 - alpha) * level, sse + error * error

    _, sse = reduce(step, values[1:], (float(values[0]), 0.0))
    return math.sqrt(sse / (values.size - 1))

def exponential_smoothing_forecast(series: Sequence[float], horizon: int, alpha: float = 0.3) -> ForecastResult:
    level = exponential_smoothing_level(series, alpha)
    std_dev = exponential_smoothing_residual_std(series, alpha)

    algorithm = ForecastAlgorithm.EXP_SMOOTHING
    return ForecastResult(
        algorithm=algorithm,
        points=build_forecast_points([level] * horizon, std_dev),
        confidence_score=CONFIDENCE_SCORES[algorithm],
        std_dev=std_dev
    )

def initialize_holt_winters(series: Sequence[float], period: int) -> HoltWintersState:
    """Initial state: level at the overall mean, no trend, and seasonal
    indices equal to the average deviation from the mean at each phase."""
    values = _as_array(series)
    mean = float(np.mean(values))
    seasonal = tuple(
        float(np.mean(values[phase::period] - mean)) if values[phase::period].size else 0.0
        for phase in range(period)
    )
    return HoltWintersState(level=mean, trend=0.0, seasonal=seasonal)

def holt_winters_update(
    state: HoltWintersState,
    t: int,
    x: float,
    alpha: float,
    beta: float,
    gamma: float
) -> HoltWintersState:
    """One additive Holt-Winters smoothing step for observation x at time t."""
    phase = t % state.period
    deseasonalized = x - state.seasonal[phase]

    level = alpha * deseasonalized + (1 - alpha) * (state.level + state.trend)
    trend = beta * (level - state.level) + (1 - beta) * state.trend
    season = gamma * (x - level) + (1 - gamma) * state.seasonal[phase]

    seasonal = state.seasonal[:phase] + (season,) + state.seasonal[phase + 1:]
    return HoltWintersState(level=level, trend=trend, seasonal=seasonal)

def fit_holt_winters(
    series: Sequence[float],
    period: int,
    alpha: float = 0.2,
    beta: float = 0.1,
    gamma: float = 0.1
) -> HoltWintersState:
    """Fold the full series into a fitted Holt-Winters state."""
    values = _as_array(series)
    initial = initialize_holt_winters(values, period)
    return reduce(
        lambda state, item: holt_winters_update(state, item[0], item[1], alpha, beta, gamma),
        enumerate(values.tolist()),
        initial
    )

def holt_winters_residual_std(
    series: Sequence[float],
    fitted: HoltWintersState,
    alpha: float = 0.2,
    beta: float = 0.1,
    gamma: float = 0.1
) -> float:
    """Residual standard deviation from a separate replay pass.

    The replay starts again from the overall mean with no trend, but with a
    copy of the fitted seasonal indices, and accumulates one-step errors from
    the second observation onwards.
    """
    values = _as_array(series)
    n = values.size
    if n < 2:
        return 0.0

    seed = HoltWintersState(level=float(np.mean(values)), trend=0.0, seasonal=tuple(fitted.seasonal))

    def step(acc, item):
        state, sse = acc
        t, x = item
        predicted = state.level + state.trend + state.seasonal[t % state.period]
        error = x - predicted
        return holt_winters_update(state, t, x, alpha, beta, gamma), sse + error * error

    _, sse = reduce(step, ((t, float(values[t])) for t in range(1, n)), (seed, 0.0))
    return math.sqrt(sse / (n - 1))

def holt_winters_forecast(
    series: Sequence[float],
    horizon: int,
    alpha: float = 0.2,
    beta: float = 0.1,
    gamma: float = 0.1,
    smoothing_alpha: float = 0.3,
    seasonality_threshold: float = 0.3
) -> ForecastResult:
    """Additive Holt-Winters forecast.

    Falls back to simple exponential smoothing when the series holds fewer
    than two full seasonal cycles.
    """
    values = _as_array(series)
    period = detect_seasonal_period(values, seasonality_threshold)

    if values.size < 2 * period:
        return exponential_smoothing_forecast(values, horizon, smoothing_alpha)

    fitted = fit_holt_winters(values, period, alpha, beta, gamma)
    std_dev = holt_winters_residual_std(values, fitted, alpha, beta, gamma)

    n = values.size
    raw_values = [
        fitted.level + h * fitted.trend + fitted.seasonal[(n + h - 1) % period]
        for h in range(1, horizon + 1)
    ]

    algorithm = ForecastAlgorithm.HOLT_WINTERS
    return ForecastResult(
        algorithm=algorithm,
        points=build_forecast_points(raw_values, std_dev),
        confidence_score=CONFIDENCE_SCORES[algorithm],
        std_dev=std_dev,
        seasonal_period=period
    )

def generate_forecast(
    series: Sequence[float],
    horizon: int,
    algorithm: Union[str, ForecastAlgorithm, None] = 'AUTO',
    forecast_config: Optional[dict] = None
) -> ForecastResult:
    """Select an algorithm and forecast `horizon` days ahead.

    Args:
        series: Demand values in date order
        horizon: Number of days to forecast
        algorithm: AUTO or an explicit algorithm
        forecast_config: Optional forecasting parameters (see Config.forecast_config)

    Returns:
        ForecastResult
    """
    if horizon <= 0:
        raise ForecastError(f"Forecast horizon must be positive, got {horizon}")

    params = forecast_config or {}
    values = _as_array(series)

    selected = select_algorithm(
        algorithm,
        values,
        seasonality_threshold=params.get('seasonality_threshold', 0.3),
        variability_threshold=params.get('variability_threshold', 0.3),
        holt_winters_min_history=params.get('holt_winters_min_history', 60)
    )

    if selected == ForecastAlgorithm.MOVING_AVERAGE:
        return moving_average_forecast(values, horizon, params.get('moving_average_window', 30))

    if selected == ForecastAlgorithm.HOLT_WINTERS:
        return holt_winters_forecast(
            values,
            horizon,
            alpha=params.get('holt_winters_alpha', 0.2),
            beta=params.get('holt_winters_beta', 0.1),
            gamma=params.get('holt_winters_gamma', 0.1),
            smoothing_alpha=params.get('smoothing_alpha', 0.3),
            seasonality_threshold=params.get('seasonality_threshold', 0.3)
        )

    return exponential_smoothing_forecast(values, horizon, params.get('smoothing_alpha', 0.3))

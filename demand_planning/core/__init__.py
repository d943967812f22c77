from .demand_forecast import (
    ForecastPoint, ForecastResult, HoltWintersState,
    coefficient_of_variation, calculate_autocorrelation,
    detect_seasonality, detect_seasonal_period, select_algorithm,
    moving_average_forecast, exponential_smoothing_forecast,
    fit_holt_winters, holt_winters_residual_std, holt_winters_forecast,
    generate_forecast
)
from .accuracy import AccuracyResult, calculate_accuracy
from .safety_stock import (
    SafetyStockCalculation, get_z_score, select_calculation_method,
    calculate_reorder_point, calculate_eoq, calculate_service_level,
    calculate_safety_stock
)
from .replenishment import ReplenishmentPlan, plan_replenishment

__all__ = [
    'ForecastPoint',
    'ForecastResult',
    'HoltWintersState',
    'coefficient_of_variation',
    'calculate_autocorrelation',
    'detect_seasonality',
    'detect_seasonal_period',
    'select_algorithm',
    'moving_average_forecast',
    'exponential_smoothing_forecast',
    'fit_holt_winters',
    'holt_winters_residual_std',
    'holt_winters_forecast',
    'generate_forecast',
    'AccuracyResult',
    'calculate_accuracy',
    'SafetyStockCalculation',
    'get_z_score',
    'select_calculation_method',
    'calculate_reorder_point',
    'calculate_eoq',
    'calculate_service_level',
    'calculate_safety_stock',
    'ReplenishmentPlan',
    'plan_replenishment'
]

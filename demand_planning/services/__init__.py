from .demand_history_service import DemandHistoryService, DemandStatistics
from .forecast_service import ForecastService
from .accuracy_service import AccuracyService, MethodComparison
from .safety_stock_service import SafetyStockService
from .replenishment_service import ReplenishmentService

__all__ = [
    'DemandHistoryService',
    'DemandStatistics',
    'ForecastService',
    'AccuracyService',
    'MethodComparison',
    'SafetyStockService',
    'ReplenishmentService'
]

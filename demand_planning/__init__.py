from .config import config
from .logging_setup import log_manager, get_logger
from .db import db, session_scope, PlanningScope
from .exceptions import (
    DemandPlanningError,
    ValidationError,
    NotFoundError,
    ForecastError,
    InsufficientDataError,
    AccuracyError,
    NoForecastDataError,
    SafetyStockError,
    ReplenishmentError
)

__version__ = '1.0.0'

__all__ = [
    'config',
    'db',
    'session_scope',
    'log_manager',
    'get_logger',
    'PlanningScope',
    'DemandPlanningError',
    'ValidationError',
    'NotFoundError',
    'ForecastError',
    'InsufficientDataError',
    'AccuracyError',
    'NoForecastDataError',
    'SafetyStockError',
    'ReplenishmentError'
]

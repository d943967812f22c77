from .date_utils import calendar_fields, week_of_year, day_of_week, horizon_type, convert_to_date
from .math_utils import round_up_to_multiple, population_std
from .validation import validate_scope, validate_horizon, validate_service_level, validate_date_range

__all__ = [
    'calendar_fields',
    'week_of_year',
    'day_of_week',
    'horizon_type',
    'convert_to_date',
    'round_up_to_multiple',
    'population_std',
    'validate_scope',
    'validate_horizon',
    'validate_service_level',
    'validate_date_range'
]

# demand_planning/utils/date_utils.py
import math
from datetime import date, datetime
from typing import Dict, Union

from demand_planning.models import ForecastHorizonType

def day_of_week(value: date) -> int:
    """Day of week with Sunday = 0 through Saturday = 6."""
    return (value.weekday() + 1) % 7

def week_of_year(value: date) -> int:
    """Calendar week number, counting partial first weeks.

    Week 1 runs from January 1 to the first Saturday; every week after that
    starts on a Sunday.

    Args:
        value: Date to classify

    Returns:
        Week number (1-54)
    """
    jan1 = date(value.year, 1, 1)
    days_since_jan1 = (value - jan1).days
    return math.ceil((days_since_jan1 + day_of_week(jan1) + 1) / 7)

def quarter(value: date) -> int:
    return math.ceil(value.month / 3)

def calendar_fields(value: date) -> Dict[str, int]:
    """Calendar breakdown stored with each demand history row.

    Args:
        value: Demand date

    Returns:
        Dictionary with year, month, week_of_year, day_of_week and quarter
    """
    return {
        'year': value.year,
        'month': value.month,
        'week_of_year': week_of_year(value),
        'day_of_week': day_of_week(value),
        'quarter': quarter(value)
    }

def horizon_type(horizon_days: int) -> ForecastHorizonType:
    """Classify a forecast horizon length."""
    if horizon_days <= 30:
        return ForecastHorizonType.SHORT_TERM
    if horizon_days <= 90:
        return ForecastHorizonType.MEDIUM_TERM
    return ForecastHorizonType.LONG_TERM

def convert_to_date(value: Union[str, date, datetime]) -> date:
    """Convert a value to a date object.

    Args:
        value: Value to convert (ISO string, date, or datetime)

    Returns:
        Date object
    """
    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        try:
            return datetime.strptime(value, '%Y-%m-%d').date()
        except ValueError:
            raise ValueError(f"Invalid date format: {value}. Expected YYYY-MM-DD")

    raise ValueError(f"Cannot convert {type(value)} to date")

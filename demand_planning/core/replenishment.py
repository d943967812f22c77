# demand_planning/core/replenishment.py
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence, Tuple

from ..models import UrgencyLevel
from ..utils.math_utils import round_up_to_multiple

# (forecast date, quantity) in date order
DailyForecast = Tuple[date, float]

@dataclass
class ReplenishmentPlan:
    """Order proposal for one material before it is persisted."""
    recommended_order_quantity: float
    recommended_order_date: date
    recommended_delivery_date: date
    projected_stockout_date: Optional[date]
    days_until_stockout: Optional[int]
    urgency_level: UrgencyLevel
    suggestion_reason: str

def sum_forecast_demand(forecasts: Sequence[DailyForecast], days: int, as_of: date) -> float:
    """Total forecast quantity dated on or before as_of + days."""
    cutoff = as_of + timedelta(days=days)
    return sum(quantity for forecast_date, quantity in forecasts if forecast_date <= cutoff)

def calculate_stockout_date(
    available_quantity: float,
    forecasts: Sequence[DailyForecast],
    safety_stock: float
) -> Optional[date]:
    """First forecast date on which projected inventory falls below safety stock.

    Args:
        available_quantity: Current available inventory
        forecasts: Daily forecasts in date order
        safety_stock: Safety stock quantity

    Returns:
        Projected stockout date, or None if safety stock is never breached
    """
    remaining = available_quantity
    for forecast_date, quantity in forecasts:
        remaining -= quantity
        if remaining < safety_stock:
            return forecast_date
    return None

def days_until(target: Optional[date], as_of: date) -> Optional[int]:
    if target is None:
        return None
    return (target - as_of).days

def should_recommend_replenishment(
    available_quantity: float,
    on_order_quantity: float,
    reorder_point: float,
    forecast_demand_30_days: float
) -> bool:
    """Recommend when the inventory position is strictly below the reorder
    point or strictly below the next 30 days of forecast demand."""
    position = available_quantity + on_order_quantity
    return position < reorder_point or position < forecast_demand_30_days

def calculate_order_quantity(
    available_quantity: float,
    on_order_quantity: float,
    forecast_demand_90_days: float,
    economic_order_quantity: float,
    minimum_order_quantity: float = 1.0,
    order_multiple: float = 1.0
) -> float:
    """Order quantity covering 90 days of demand.

    The larger of EOQ and the 90-day shortfall, raised to the minimum order
    quantity and rounded up to the order multiple.
    """
    shortfall = max(0.0, forecast_demand_90_days - (available_quantity + on_order_quantity))
    quantity = max(economic_order_quantity, shortfall)

    if quantity < minimum_order_quantity:
        quantity = minimum_order_quantity

    if order_multiple > 1:
        quantity = round_up_to_multiple(quantity, order_multiple)

    return quantity

def determine_urgency_level(
    days_until_stockout: Optional[int],
    available_quantity: float,
    safety_stock: float
) -> UrgencyLevel:
    if available_quantity < safety_stock:
        return UrgencyLevel.CRITICAL

    if days_until_stockout is None:
        return UrgencyLevel.LOW

    if days_until_stockout < 7:
        return UrgencyLevel.CRITICAL
    if days_until_stockout < 14:
        return UrgencyLevel.HIGH
    if days_until_stockout < 30:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW

def calculate_order_date(
    stockout_date: Optional[date],
    lead_time_days: int,
    as_of: date,
    buffer_days: int = 2
) -> date:
    """Latest order date that lands stock before the projected stockout.

    Never earlier than as_of; as_of itself when no stockout is projected.
    """
    if stockout_date is None:
        return as_of

    order_date = stockout_date - timedelta(days=lead_time_days + buffer_days)
    return max(order_date, as_of)

def build_suggestion_reason(
    available_quantity: float,
    reorder_point: float,
    forecast_demand_30_days: float,
    days_until_stockout: Optional[int]
) -> str:
    reasons = []

    if available_quantity < reorder_point:
        reasons.append(f"Inventory ({available_quantity:.2f}) below reorder point ({reorder_point:.2f})")

    if available_quantity < forecast_demand_30_days:
        reasons.append(f"Current inventory insufficient for 30-day forecast ({forecast_demand_30_days:.2f})")

    if days_until_stockout is not None and days_until_stockout < 30:
        reasons.append(f"Projected stockout in {days_until_stockout} days")

    return '. '.join(reasons) or 'Proactive replenishment based on forecast.'

def plan_replenishment(
    available_quantity: float,
    on_order_quantity: float,
    forecasts: Sequence[DailyForecast],
    safety_stock: float,
    reorder_point: float,
    economic_order_quantity: float,
    lead_time_days: int,
    as_of: date,
    minimum_order_quantity: float = 1.0,
    order_multiple: float = 1.0,
    buffer_days: int = 2
) -> Optional[ReplenishmentPlan]:
    """Decide whether and how much to reorder for one material.

    Returns:
        ReplenishmentPlan, or None when no replenishment is warranted
    """
    demand_30 = sum_forecast_demand(forecasts, 30, as_of)
    demand_90 = sum_forecast_demand(forecasts, 90, as_of)

    stockout_date = calculate_stockout_date(available_quantity, forecasts, safety_stock)
    days_to_stockout = days_until(stockout_date, as_of)

    if not should_recommend_replenishment(available_quantity, on_order_quantity, reorder_point, demand_30):
        return None

    quantity = calculate_order_quantity(
        available_quantity, on_order_quantity, demand_90, economic_order_quantity,
        minimum_order_quantity, order_multiple
    )
    order_date = calculate_order_date(stockout_date, lead_time_days, as_of, buffer_days)

    return ReplenishmentPlan(
        recommended_order_quantity=quantity,
        recommended_order_date=order_date,
        recommended_delivery_date=order_date + timedelta(days=lead_time_days),
        projected_stockout_date=stockout_date,
        days_until_stockout=days_to_stockout,
        urgency_level=determine_urgency_level(days_to_stockout, available_quantity, safety_stock),
        suggestion_reason=build_suggestion_reason(available_quantity, reorder_point, demand_30, days_to_stockout)
    )

# demand_planning/core/safety_stock.py
import math
from dataclasses import dataclass
from typing import Optional

from scipy import stats

from ..exceptions import SafetyStockError
from ..models import CalculationMethod

DEMAND_CV_THRESHOLD = 0.2
LEAD_TIME_CV_THRESHOLD = 0.1

@dataclass
class SafetyStockCalculation:
    material_id: str
    safety_stock_quantity: float
    reorder_point: float
    economic_order_quantity: float
    calculation_method: CalculationMethod
    avg_daily_demand: float
    demand_std_dev: float
    avg_lead_time_days: float
    lead_time_std_dev: float
    service_level: float
    z_score: float
    attained_service_level: Optional[float] = None

def get_z_score(service_level: float) -> float:
    """Z-score for a target cycle service level.

    Uses the planning table of rounded values rather than the exact normal
    quantile; anything below 80% gets the 95% value.

    Args:
        service_level: Service level as a fraction (e.g. 0.95)

    Returns:
        Z-score
    """
    if service_level >= 0.99:
        return 2.33
    if service_level >= 0.95:
        return 1.65
    if service_level >= 0.90:
        return 1.28
    if service_level >= 0.85:
        return 1.04
    if service_level >= 0.80:
        return 0.84
    return 1.65

def coefficient_of_variation(mean: float, std_dev: float) -> float:
    return std_dev / mean if mean > 0 else 0.0

def select_calculation_method(demand_cv: float, lead_time_cv: float) -> CalculationMethod:
    """Pick the safety stock formula from demand and lead time variability."""
    volatile_demand = demand_cv >= DEMAND_CV_THRESHOLD
    volatile_lead_time = lead_time_cv >= LEAD_TIME_CV_THRESHOLD

    if volatile_demand and volatile_lead_time:
        return CalculationMethod.COMBINED_VARIABILITY
    if volatile_demand:
        return CalculationMethod.DEMAND_VARIABILITY
    if volatile_lead_time:
        return CalculationMethod.LEAD_TIME_VARIABILITY
    return CalculationMethod.BASIC

def basic_safety_stock(avg_daily_demand: float, safety_stock_days: float) -> float:
    """Fixed days of supply."""
    return avg_daily_demand * safety_stock_days

def demand_variability_safety_stock(demand_std_dev: float, avg_lead_time_days: float, z_score: float) -> float:
    return z_score * demand_std_dev * math.sqrt(max(0.0, avg_lead_time_days))

def lead_time_variability_safety_stock(avg_daily_demand: float, lead_time_std_dev: float, z_score: float) -> float:
    return z_score * avg_daily_demand * lead_time_std_dev

def combined_variability_safety_stock(
    avg_daily_demand: float,
    demand_std_dev: float,
    avg_lead_time_days: float,
    lead_time_std_dev: float,
    z_score: float
) -> float:
    """King's formula: Z x sqrt(LT x sigma_d^2 + d^2 x sigma_LT^2)."""
    demand_component = avg_lead_time_days * demand_std_dev ** 2
    lead_time_component = avg_daily_demand ** 2 * lead_time_std_dev ** 2
    return z_score * math.sqrt(max(0.0, demand_component + lead_time_component))

def combined_std_dev(
    avg_daily_demand: float,
    demand_std_dev: float,
    avg_lead_time_days: float,
    lead_time_std_dev: float
) -> float:
    """Standard deviation of demand over the replenishment lead time."""
    variance = avg_lead_time_days * demand_std_dev ** 2 + avg_daily_demand ** 2 * lead_time_std_dev ** 2
    return math.sqrt(max(0.0, variance))

def calculate_safety_stock_quantity(
    method: CalculationMethod,
    avg_daily_demand: float,
    demand_std_dev: float,
    avg_lead_time_days: float,
    lead_time_std_dev: float,
    z_score: float,
    safety_stock_days: float = 7
) -> float:
    if method == CalculationMethod.BASIC:
        return basic_safety_stock(avg_daily_demand, safety_stock_days)
    if method == CalculationMethod.DEMAND_VARIABILITY:
        return demand_variability_safety_stock(demand_std_dev, avg_lead_time_days, z_score)
    if method == CalculationMethod.LEAD_TIME_VARIABILITY:
        return lead_time_variability_safety_stock(avg_daily_demand, lead_time_std_dev, z_score)
    if method == CalculationMethod.COMBINED_VARIABILITY:
        return combined_variability_safety_stock(
            avg_daily_demand, demand_std_dev, avg_lead_time_days, lead_time_std_dev, z_score
        )
    raise SafetyStockError(f"Unsupported safety stock method: {method}")

def calculate_reorder_point(avg_daily_demand: float, avg_lead_time_days: float, safety_stock: float) -> float:
    """Demand over the lead time plus safety stock."""
    return avg_daily_demand * avg_lead_time_days + safety_stock

def calculate_eoq(
    annual_demand: float,
    unit_cost: float,
    ordering_cost: float = 50.0,
    holding_cost_pct: float = 0.25
) -> float:
    """Economic order quantity.

    Args:
        annual_demand: Annual demand in units
        unit_cost: Cost per unit
        ordering_cost: Fixed cost per order
        holding_cost_pct: Annual holding cost as a fraction of unit cost

    Returns:
        EOQ, 0 when either the holding cost or the demand is not positive
    """
    holding_cost = unit_cost * holding_cost_pct
    if holding_cost <= 0 or annual_demand <= 0:
        return 0.0

    return math.sqrt(2 * annual_demand * ordering_cost / holding_cost)

def safety_stock_days_from_quantity(
    safety_stock_quantity: Optional[float],
    avg_daily_demand: float,
    default_days: float = 7
) -> float:
    """Days of supply covered by a stored safety stock quantity.

    Rounded to whole days, half away from zero. Falls back to the default
    when there is no stored quantity, no demand, or the result is zero.
    """
    if not safety_stock_quantity or avg_daily_demand <= 0:
        return default_days

    days = math.floor(safety_stock_quantity / avg_daily_demand + 0.5)
    return days or default_days

def calculate_service_level(safety_stock: float, std_dev: float) -> Optional[float]:
    """Service level implied by a safety stock under normally distributed demand.

    Args:
        safety_stock: Safety stock quantity
        std_dev: Standard deviation of lead time demand

    Returns:
        Cycle service level as a fraction, or None without variability
    """
    if std_dev <= 0:
        return None

    try:
        return float(stats.norm.cdf(safety_stock / std_dev))
    except Exception as e:
        raise SafetyStockError(f"Error calculating service level: {str(e)}")

def calculate_safety_stock(
    material_id: str,
    avg_daily_demand: float,
    demand_std_dev: float,
    avg_lead_time_days: float,
    lead_time_std_dev: float,
    lead_time_cv: float,
    service_level: float = 0.95,
    safety_stock_days: float = 7,
    unit_cost: float = 100.0,
    ordering_cost: float = 50.0,
    holding_cost_pct: float = 0.25
) -> SafetyStockCalculation:
    """Safety stock, reorder point and EOQ for one material.

    The lead time CV is passed in separately because it is measured from
    purchase order history, while `avg_lead_time_days` is the planned lead
    time used in the formulas.
    """
    try:
        z_score = get_z_score(service_level)
        demand_cv = coefficient_of_variation(avg_daily_demand, demand_std_dev)
        method = select_calculation_method(demand_cv, lead_time_cv)

        safety_stock = calculate_safety_stock_quantity(
            method, avg_daily_demand, demand_std_dev, avg_lead_time_days,
            lead_time_std_dev, z_score, safety_stock_days
        )
        reorder_point = calculate_reorder_point(avg_daily_demand, avg_lead_time_days, safety_stock)
        eoq = calculate_eoq(avg_daily_demand * 365, unit_cost, ordering_cost, holding_cost_pct)

        attained = calculate_service_level(
            max(0.0, safety_stock),
            combined_std_dev(avg_daily_demand, demand_std_dev, avg_lead_time_days, lead_time_std_dev)
        )
    except SafetyStockError:
        raise
    except Exception as e:
        raise SafetyStockError(f"Error calculating safety stock for {material_id}: {str(e)}")

    return SafetyStockCalculation(
        material_id=material_id,
        safety_stock_quantity=max(0.0, safety_stock),
        reorder_point=max(0.0, reorder_point),
        economic_order_quantity=max(0.0, eoq),
        calculation_method=method,
        avg_daily_demand=avg_daily_demand,
        demand_std_dev=demand_std_dev,
        avg_lead_time_days=avg_lead_time_days,
        lead_time_std_dev=lead_time_std_dev,
        service_level=service_level,
        z_score=z_score,
        attained_service_level=attained
    )

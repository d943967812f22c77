from datetime import date, timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.core.safety_stock import (
    SafetyStockCalculation, calculate_safety_stock, safety_stock_days_from_quantity
)
from demand_planning.db.interface import PlanningScope, PlanningDataSource, SqlPlanningDataSource
from demand_planning.services.demand_history_service import DemandHistoryService
from demand_planning.utils.validation import validate_scope, validate_service_level
from demand_planning.exceptions import SafetyStockError, DemandPlanningError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)

class SafetyStockService:
    """Service for safety stock, reorder point and EOQ calculations."""

    def __init__(
        self,
        session: Session,
        data_source: Optional[PlanningDataSource] = None,
        history_service: Optional[DemandHistoryService] = None
    ):
        """Initialize the safety stock service.

        Args:
            session: Database session
            data_source: Material master and purchasing data
            history_service: Demand history service sharing the same session
        """
        self.session = session
        self.data_source = data_source or SqlPlanningDataSource(session)
        self.history_service = history_service or DemandHistoryService(session, self.data_source)
        self._safety_stock_config = None

    @property
    def safety_stock_config(self) -> Dict:
        if self._safety_stock_config is None:
            self._safety_stock_config = config.safety_stock_config
        return self._safety_stock_config

    def get_lead_time_statistics(self, tenant_id: str, material_id: str, as_of: date) -> Tuple[float, float]:
        """Mean and standard deviation of observed lead times.

        Missing, zero or unreadable statistics fall back to the configured
        defaults so that the calculation can proceed. The query runs in a
        savepoint so a failed read leaves the session usable.

        Returns:
            Tuple with average lead time and lead time standard deviation in days
        """
        settings = self.safety_stock_config
        default_avg = settings['default_lead_time_days']
        default_std = settings['default_lead_time_std_dev']
        since = as_of - timedelta(days=settings['lead_time_window_days'])

        try:
            with self.session.begin_nested():
                stats = self.data_source.get_lead_time_statistics(tenant_id, material_id, since)
        except Exception as e:
            logger.warning(f"Failed to fetch lead time statistics for {material_id}, using defaults: {str(e)}")
            return default_avg, default_std

        if stats is None:
            return default_avg, default_std

        return (stats.avg_lead_time_days or default_avg, stats.std_dev_lead_time_days or default_std)

    def calculate_safety_stock(
        self,
        scope: PlanningScope,
        service_level: Optional[float] = None,
        as_of: Optional[date] = None
    ) -> SafetyStockCalculation:
        """Calculate safety stock, reorder point and EOQ for a material.

        Args:
            scope: Tenant, facility and material
            service_level: Target service level (defaults to configuration)
            as_of: Planning date (defaults to today)

        Returns:
            SafetyStockCalculation
        """
        validate_scope(scope)
        settings = self.safety_stock_config
        service_level = validate_service_level(
            service_level if service_level is not None else settings['default_service_level']
        )
        as_of = as_of or date.today()

        try:
            demand = self.history_service.get_demand_statistics(
                scope, as_of - timedelta(days=settings['demand_window_days']), as_of
            )

            material = self.data_source.get_material_info(scope.material_id)
            lead_time_days = settings['default_lead_time_days']
            unit_cost = settings['default_unit_cost']
            stored_safety_stock = None
            if material:
                lead_time_days = material.lead_time_days or lead_time_days
                unit_cost = material.standard_cost or unit_cost
                stored_safety_stock = material.safety_stock_quantity

            observed_lead_time, lead_time_std_dev = self.get_lead_time_statistics(
                scope.tenant_id, scope.material_id, as_of
            )
            lead_time_cv = lead_time_std_dev / observed_lead_time if observed_lead_time > 0 else 0.0

            result = calculate_safety_stock(
                material_id=scope.material_id,
                avg_daily_demand=demand.avg_daily_demand,
                demand_std_dev=demand.std_dev_demand,
                avg_lead_time_days=lead_time_days,
                lead_time_std_dev=lead_time_std_dev,
                lead_time_cv=lead_time_cv,
                service_level=service_level,
                safety_stock_days=safety_stock_days_from_quantity(
                    stored_safety_stock, demand.avg_daily_demand, settings['default_safety_stock_days']
                ),
                unit_cost=unit_cost,
                ordering_cost=settings['ordering_cost'],
                holding_cost_pct=settings['holding_cost_pct']
            )
        except DemandPlanningError:
            raise
        except Exception as e:
            raise SafetyStockError(f"Error calculating safety stock for material {scope.material_id}: {str(e)}")

        logger.debug(f"Safety stock for {scope.material_id}: {result.safety_stock_quantity:.2f} "
                     f"({result.calculation_method.value}), ROP {result.reorder_point:.2f}, "
                     f"EOQ {result.economic_order_quantity:.2f}")
        return result

    def update_material_planning_parameters(
        self,
        material_id: str,
        safety_stock: float,
        reorder_point: float,
        economic_order_quantity: float,
        updated_by: Optional[str] = None
    ) -> None:
        """Write safety stock, reorder point and EOQ back to the material master."""
        if not material_id:
            raise SafetyStockError("Material ID is required")

        self.data_source.update_planning_parameters(
            material_id, safety_stock, reorder_point, economic_order_quantity, updated_by
        )
        logger.info(f"Updated planning parameters for {material_id}: SS {safety_stock:.2f}, "
                    f"ROP {reorder_point:.2f}, EOQ {economic_order_quantity:.2f}")

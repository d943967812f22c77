from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.models import (
    ReplenishmentSuggestion, SuggestionStatus, UrgencyLevel, CalculationMethod, ForecastStatus
)
from demand_planning.core.replenishment import plan_replenishment, sum_forecast_demand
from demand_planning.db.interface import PlanningScope, PlanningDataSource, SqlPlanningDataSource, MaterialInfo
from demand_planning.services.forecast_service import ForecastService
from demand_planning.services.safety_stock_service import SafetyStockService
from demand_planning.utils.validation import validate_scope, validate_tenant_facility
from demand_planning.exceptions import DemandPlanningError, ReplenishmentError
from demand_planning.logging_setup import get_logger, log_exception

logger = get_logger(__name__)

class ReplenishmentService:
    """Service for generating purchase replenishment recommendations."""

    def __init__(
        self,
        session: Session,
        data_source: Optional[PlanningDataSource] = None,
        forecast_service: Optional[ForecastService] = None,
        safety_stock_service: Optional[SafetyStockService] = None
    ):
        """Initialize the replenishment service.

        Args:
            session: Database session
            data_source: Inventory, purchasing and material master data
            forecast_service: Source of active forecasts
            safety_stock_service: Safety stock calculator
        """
        self.session = session
        self.data_source = data_source or SqlPlanningDataSource(session)
        self.forecast_service = forecast_service or ForecastService(session)
        self.safety_stock_service = safety_stock_service or SafetyStockService(session, self.data_source)
        self._replenishment_config = None

    @property
    def replenishment_config(self) -> Dict:
        if self._replenishment_config is None:
            self._replenishment_config = config.replenishment_config
        return self._replenishment_config

    def generate_recommendations(
        self,
        tenant_id: str,
        facility_id: str,
        material_ids: Optional[List[str]] = None,
        urgency_level_filter: Union[UrgencyLevel, str, None] = None,
        created_by: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> List[ReplenishmentSuggestion]:
        """Evaluate materials and store a suggestion for each one that needs stock.

        Every material ID is validated before any evaluation starts. Each
        material is then evaluated inside its own savepoint: a failure is
        logged, that material's writes are rolled back and the remaining
        materials are still evaluated.

        Args:
            tenant_id: Tenant ID
            facility_id: Facility ID
            material_ids: Materials to evaluate (defaults to all active materials)
            urgency_level_filter: Only return suggestions at this urgency
            created_by: User generating the suggestions
            as_of: Planning date (defaults to today)

        Returns:
            Stored suggestions, filtered by urgency when requested

        Raises:
            ValidationError: If the tenant, facility or any material ID is empty
        """
        validate_tenant_facility(tenant_id, facility_id)
        as_of = as_of or date.today()
        urgency_filter = UrgencyLevel(urgency_level_filter) if urgency_level_filter else None

        if not material_ids:
            material_ids = self.data_source.get_active_material_ids(tenant_id, facility_id)

        scopes = [PlanningScope(tenant_id, facility_id, material_id) for material_id in material_ids]
        for scope in scopes:
            validate_scope(scope)

        recommendations = []
        for scope in scopes:
            try:
                with self.session.begin_nested():
                    suggestion = self.generate_single_recommendation(scope, created_by, as_of)
            except Exception as e:
                log_exception(logger, e, f"Error generating recommendation for material {scope.material_id}")
                continue

            if suggestion is None:
                continue

            if urgency_filter is None or suggestion.urgency_level == urgency_filter:
                recommendations.append(suggestion)

        logger.info(f"Generated {len(recommendations)} replenishment recommendations "
                    f"for {tenant_id}/{facility_id} ({len(material_ids)} materials evaluated)")
        return recommendations

    def generate_single_recommendation(
        self,
        scope: PlanningScope,
        created_by: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> Optional[ReplenishmentSuggestion]:
        """Evaluate one material.

        Returns:
            The stored suggestion, or None when the material has no active
            forecast or does not need replenishment

        Raises:
            ReplenishmentError: If the material could not be evaluated
        """
        as_of = as_of or date.today()
        try:
            return self._evaluate_material(scope, created_by, as_of)
        except DemandPlanningError:
            raise
        except Exception as e:
            raise ReplenishmentError(
                f"Error evaluating material {scope.material_id}: {str(e)}",
                details={'material_id': scope.material_id}
            )

    def _evaluate_material(
        self,
        scope: PlanningScope,
        created_by: Optional[str],
        as_of: date
    ) -> Optional[ReplenishmentSuggestion]:
        settings = self.replenishment_config

        inventory = self.data_source.get_inventory_position(scope.tenant_id, scope.facility_id, scope.material_id)

        forecasts = self.forecast_service.get_material_forecasts(
            scope, as_of, as_of + timedelta(days=settings['forecast_window_days']), ForecastStatus.ACTIVE
        )
        if not forecasts:
            logger.debug(f"No active forecasts for material {scope.material_id}, skipping")
            return None

        daily = [(f.forecast_date, f.effective_quantity) for f in forecasts]

        safety = self.safety_stock_service.calculate_safety_stock(scope, settings['service_level'], as_of)
        material = self.data_source.get_material_info(scope.material_id) or MaterialInfo(scope.material_id)

        plan = plan_replenishment(
            available_quantity=inventory.available_quantity,
            on_order_quantity=inventory.on_order_quantity,
            forecasts=daily,
            safety_stock=safety.safety_stock_quantity,
            reorder_point=safety.reorder_point,
            economic_order_quantity=safety.economic_order_quantity,
            lead_time_days=material.lead_time_days,
            as_of=as_of,
            minimum_order_quantity=material.minimum_order_quantity,
            order_multiple=material.order_multiple,
            buffer_days=settings['order_buffer_days']
        )

        if plan is None:
            return None

        unit_cost = material.last_cost
        suggestion = ReplenishmentSuggestion(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            material_id=scope.material_id,
            preferred_vendor_id=material.preferred_vendor_id,
            suggestion_generation_timestamp=datetime.now(),
            suggestion_status=SuggestionStatus.PENDING,
            current_on_hand_quantity=inventory.on_hand_quantity,
            current_allocated_quantity=inventory.allocated_quantity,
            current_available_quantity=inventory.available_quantity,
            current_on_order_quantity=inventory.on_order_quantity,
            safety_stock_quantity=safety.safety_stock_quantity,
            reorder_point_quantity=safety.reorder_point,
            economic_order_quantity=safety.economic_order_quantity,
            forecasted_demand_30_days=sum_forecast_demand(daily, 30, as_of),
            forecasted_demand_60_days=sum_forecast_demand(daily, 60, as_of),
            forecasted_demand_90_days=sum_forecast_demand(daily, 90, as_of),
            projected_stockout_date=plan.projected_stockout_date,
            days_until_stockout=plan.days_until_stockout,
            recommended_order_quantity=plan.recommended_order_quantity,
            recommended_order_uom=material.primary_uom,
            recommended_order_date=plan.recommended_order_date,
            recommended_delivery_date=plan.recommended_delivery_date,
            estimated_unit_cost=unit_cost,
            estimated_total_cost=unit_cost * plan.recommended_order_quantity if unit_cost else None,
            vendor_lead_time_days=material.lead_time_days,
            suggestion_reason=plan.suggestion_reason,
            calculation_method=CalculationMethod.FORECAST_BASED,
            urgency_level=plan.urgency_level,
            created_by=created_by
        )

        self.session.add(suggestion)
        self.session.flush()

        logger.info(f"Recommend {plan.recommended_order_quantity:.2f} of {scope.material_id} "
                    f"({plan.urgency_level.value}) by {plan.recommended_order_date}")
        return suggestion

    def get_recommendations(
        self,
        tenant_id: str,
        facility_id: str,
        status: Union[SuggestionStatus, str, None] = None,
        urgency_level: Union[UrgencyLevel, str, None] = None,
        material_id: Optional[str] = None
    ) -> List[ReplenishmentSuggestion]:
        """Stored suggestions, soonest projected stockout first (none last), then newest."""
        validate_tenant_facility(tenant_id, facility_id)

        query = self.session.query(ReplenishmentSuggestion).filter(
            ReplenishmentSuggestion.tenant_id == tenant_id,
            ReplenishmentSuggestion.facility_id == facility_id,
            ReplenishmentSuggestion.deleted_at.is_(None)
        )

        if status:
            query = query.filter(ReplenishmentSuggestion.suggestion_status == SuggestionStatus(status))
        if urgency_level:
            query = query.filter(ReplenishmentSuggestion.urgency_level == UrgencyLevel(urgency_level))
        if material_id:
            query = query.filter(ReplenishmentSuggestion.material_id == material_id)

        return query.order_by(
            ReplenishmentSuggestion.projected_stockout_date.is_(None),
            ReplenishmentSuggestion.projected_stockout_date,
            ReplenishmentSuggestion.created_at.desc(),
            ReplenishmentSuggestion.id.desc()
        ).all()

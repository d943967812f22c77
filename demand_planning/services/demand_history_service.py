from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from demand_planning.models import DemandHistory, TransactionType
from demand_planning.db.connection import dialect_insert
from demand_planning.db.interface import PlanningScope, PlanningDataSource, SqlPlanningDataSource
from demand_planning.utils.date_utils import calendar_fields
from demand_planning.utils.math_utils import population_std
from demand_planning.utils.validation import validate_scope, validate_tenant_facility, validate_date_range
from demand_planning.exceptions import NotFoundError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)

BACKFILL_USER = 'SYSTEM_BACKFILL'

# Natural key of a demand history row
DEMAND_HISTORY_KEY = ['tenant_id', 'facility_id', 'material_id', 'demand_date']

# Quantities summed when the same day is recorded again
ADDITIVE_COLUMNS = (
    'actual_demand_quantity',
    'sales_order_demand',
    'production_order_demand',
    'transfer_order_demand',
    'scrap_adjustment'
)

@dataclass
class DemandStatistics:
    avg_daily_demand: float = 0.0
    std_dev_demand: float = 0.0
    total_demand: float = 0.0
    sample_size: int = 0
    min_demand: float = 0.0
    max_demand: float = 0.0


class DemandHistoryService:
    """Service for recording and querying daily material demand."""

    def __init__(self, session: Session, data_source: Optional[PlanningDataSource] = None):
        """Initialize the demand history service.

        Args:
            session: Database session
            data_source: Source of consumption transactions for backfill
        """
        self.session = session
        self.data_source = data_source or SqlPlanningDataSource(session)

    def _find(self, scope: PlanningScope, demand_date: date) -> Optional[DemandHistory]:
        return self.session.query(DemandHistory).filter(
            DemandHistory.tenant_id == scope.tenant_id,
            DemandHistory.facility_id == scope.facility_id,
            DemandHistory.material_id == scope.material_id,
            DemandHistory.demand_date == demand_date
        ).populate_existing().first()

    def record_demand(
        self,
        scope: PlanningScope,
        demand_date: date,
        actual_demand_quantity: float,
        demand_uom: str = 'UNITS',
        sales_order_demand: float = 0.0,
        production_order_demand: float = 0.0,
        transfer_order_demand: float = 0.0,
        scrap_adjustment: float = 0.0,
        avg_unit_price: Optional[float] = None,
        promotional_discount_pct: Optional[float] = None,
        marketing_campaign_active: bool = False,
        is_holiday: bool = False,
        created_by: Optional[str] = None
    ) -> DemandHistory:
        """Record demand for a material on a day.

        A second call for the same day adds its quantities to the stored
        row instead of replacing them.

        Args:
            scope: Tenant, facility and material
            demand_date: Day the demand occurred
            actual_demand_quantity: Total demand quantity
            demand_uom: Unit of measure
            sales_order_demand: Portion driven by sales orders
            production_order_demand: Portion driven by production orders
            transfer_order_demand: Portion driven by transfers
            scrap_adjustment: Portion scrapped
            avg_unit_price: Optional average selling price
            promotional_discount_pct: Optional discount; > 0 marks a promotional period
            marketing_campaign_active: Whether a campaign ran that day
            is_holiday: Whether the day is a holiday
            created_by: User recording the demand

        Returns:
            The accumulated demand history row
        """
        validate_scope(scope)

        values = dict(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            material_id=scope.material_id,
            demand_date=demand_date,
            is_holiday=is_holiday,
            is_promotional_period=bool(promotional_discount_pct and promotional_discount_pct > 0),
            marketing_campaign_active=marketing_campaign_active,
            actual_demand_quantity=actual_demand_quantity,
            demand_uom=demand_uom,
            sales_order_demand=sales_order_demand,
            production_order_demand=production_order_demand,
            transfer_order_demand=transfer_order_demand,
            scrap_adjustment=scrap_adjustment,
            avg_unit_price=avg_unit_price,
            promotional_discount_pct=promotional_discount_pct,
            created_by=created_by,
            **calendar_fields(demand_date)
        )

        stmt = dialect_insert(self.session, DemandHistory).values(**values)

        accumulated = {
            column: func.coalesce(getattr(DemandHistory, column), 0.0) + getattr(stmt.excluded, column)
            for column in ADDITIVE_COLUMNS
        }
        accumulated['updated_by'] = stmt.excluded.created_by
        accumulated['updated_at'] = func.now()

        self.session.execute(stmt.on_conflict_do_update(index_elements=DEMAND_HISTORY_KEY, set_=accumulated))

        record = self._find(scope, demand_date)
        logger.debug(f"Demand for {scope.material_id} on {demand_date} is now {record.actual_demand_quantity}")
        return record

    def get_demand_history(self, scope: PlanningScope, start_date: date, end_date: date) -> List[DemandHistory]:
        """Demand rows for a material in an inclusive date range, oldest first."""
        validate_scope(scope)
        validate_date_range(start_date, end_date)

        return self.session.query(DemandHistory).filter(
            DemandHistory.tenant_id == scope.tenant_id,
            DemandHistory.facility_id == scope.facility_id,
            DemandHistory.material_id == scope.material_id,
            DemandHistory.demand_date >= start_date,
            DemandHistory.demand_date <= end_date,
            DemandHistory.deleted_at.is_(None)
        ).order_by(DemandHistory.demand_date).all()

    def get_batch_demand_history(
        self,
        tenant_id: str,
        facility_id: str,
        material_ids: List[str],
        start_date: date,
        end_date: date
    ) -> Dict[str, List[DemandHistory]]:
        """Demand history for many materials in a single query.

        Returns:
            Dictionary keyed by material ID; every requested ID is present,
            with an empty list when it has no history
        """
        if not material_ids:
            return {}

        validate_tenant_facility(tenant_id, facility_id)
        validate_date_range(start_date, end_date)

        result = OrderedDict((material_id, []) for material_id in material_ids)

        rows = self.session.query(DemandHistory).filter(
            DemandHistory.tenant_id == tenant_id,
            DemandHistory.facility_id == facility_id,
            DemandHistory.material_id.in_(list(result.keys())),
            DemandHistory.demand_date >= start_date,
            DemandHistory.demand_date <= end_date,
            DemandHistory.deleted_at.is_(None)
        ).order_by(DemandHistory.material_id, DemandHistory.demand_date).all()

        for row in rows:
            result[row.material_id].append(row)

        return dict(result)

    def backfill_demand_history(
        self,
        tenant_id: str,
        facility_id: str,
        start_date: date,
        end_date: date
    ) -> int:
        """Build daily demand rows from consumption transactions.

        Days that already have a row are left untouched, so running the
        backfill twice over the same range inserts nothing the second time.

        Returns:
            Number of rows inserted
        """
        validate_tenant_facility(tenant_id, facility_id)
        validate_date_range(start_date, end_date)

        transactions = self.data_source.get_consumption_transactions(tenant_id, facility_id, start_date, end_date)

        # Aggregate per material, day and unit of measure
        buckets = OrderedDict()
        for txn in transactions:
            key = (txn.material_id, txn.transaction_timestamp.date(), txn.uom)
            bucket = buckets.setdefault(key, {
                'actual': 0.0, 'sales': 0.0, 'production': 0.0, 'transfer': 0.0, 'scrap': 0.0
            })

            quantity = abs(txn.quantity)
            bucket['actual'] += quantity

            if txn.transaction_type == TransactionType.ISSUE.value:
                if txn.sales_order_id:
                    bucket['sales'] += quantity
                if txn.production_order_id:
                    bucket['production'] += quantity
            elif txn.transaction_type == TransactionType.TRANSFER.value:
                bucket['transfer'] += quantity
            elif txn.transaction_type == TransactionType.SCRAP.value:
                bucket['scrap'] += quantity

        inserted = 0
        for (material_id, demand_date, uom), totals in buckets.items():
            stmt = dialect_insert(self.session, DemandHistory).values(
                tenant_id=tenant_id,
                facility_id=facility_id,
                material_id=material_id,
                demand_date=demand_date,
                is_holiday=False,
                is_promotional_period=False,
                actual_demand_quantity=totals['actual'],
                demand_uom=uom,
                sales_order_demand=totals['sales'],
                production_order_demand=totals['production'],
                transfer_order_demand=totals['transfer'],
                scrap_adjustment=totals['scrap'],
                created_by=BACKFILL_USER,
                **calendar_fields(demand_date)
            ).on_conflict_do_nothing(index_elements=DEMAND_HISTORY_KEY)

            inserted += self.session.execute(stmt).rowcount

        logger.info(f"Backfilled {inserted} demand history rows for {tenant_id}/{facility_id} "
                    f"from {start_date} to {end_date}")
        return inserted

    def update_forecasted_demand(
        self,
        demand_history_id: int,
        forecasted_quantity: float,
        updated_by: Optional[str] = None
    ) -> DemandHistory:
        """Attach a forecast to a historical day and derive its error.

        The absolute percentage error stays None when actual demand is zero.

        Raises:
            NotFoundError: If the row does not exist
        """
        record = self.session.get(DemandHistory, demand_history_id)
        if not record or record.deleted_at is not None:
            raise NotFoundError(f"Demand history {demand_history_id} not found")

        actual = record.actual_demand_quantity or 0.0
        record.forecasted_demand_quantity = forecasted_quantity
        record.forecast_error = actual - forecasted_quantity
        record.absolute_percentage_error = (
            abs(actual - forecasted_quantity) / actual * 100 if actual > 0 else None
        )
        record.updated_by = updated_by
        self.session.flush()

        return record

    def get_demand_statistics(self, scope: PlanningScope, start_date: date, end_date: date) -> DemandStatistics:
        """Summary statistics of daily demand over a date range.

        The standard deviation is the population standard deviation. All
        values are zero when the range has no rows.
        """
        history = self.get_demand_history(scope, start_date, end_date)
        quantities = [row.actual_demand_quantity or 0.0 for row in history]

        if not quantities:
            return DemandStatistics()

        total = sum(quantities)
        return DemandStatistics(
            avg_daily_demand=total / len(quantities),
            std_dev_demand=population_std(quantities),
            total_demand=total,
            sample_size=len(quantities),
            min_demand=min(quantities),
            max_demand=max(quantities)
        )

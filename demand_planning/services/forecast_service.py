import threading
import weakref
import zlib
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.models import MaterialForecast, ForecastStatus, ForecastAlgorithm
from demand_planning.core.demand_forecast import ForecastResult, generate_forecast
from demand_planning.db.interface import PlanningScope
from demand_planning.services.demand_history_service import DemandHistoryService
from demand_planning.utils.date_utils import horizon_type, week_of_year
from demand_planning.utils.validation import (
    validate_scope, validate_tenant_facility, validate_horizon, validate_date_range
)
from demand_planning.exceptions import ForecastError, NotFoundError, ValidationError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)

# One lock per (tenant, facility, material), shared by every service instance.
# An entry lives only while some caller still holds a reference to its lock.
_material_locks = weakref.WeakValueDictionary()
_material_locks_guard = threading.Lock()

def _material_lock(scope: PlanningScope) -> threading.Lock:
    key = (scope.tenant_id, scope.facility_id, scope.material_id)
    with _material_locks_guard:
        lock = _material_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _material_locks[key] = lock
        return lock

def _advisory_lock_key(scope: PlanningScope) -> int:
    return zlib.crc32(f"{scope.tenant_id}:{scope.facility_id}:{scope.material_id}".encode('utf-8'))


class ForecastService:
    """Service for generating, versioning and adjusting material forecasts."""

    def __init__(self, session: Session, history_service: Optional[DemandHistoryService] = None):
        """Initialize the forecast service.

        Args:
            session: Database session
            history_service: Demand history service sharing the same session
        """
        self.session = session
        self.history_service = history_service or DemandHistoryService(session)
        self._forecast_config = None

    @property
    def forecast_config(self) -> Dict:
        if self._forecast_config is None:
            self._forecast_config = config.forecast_config
        return self._forecast_config

    def generate_forecasts(
        self,
        tenant_id: str,
        facility_id: str,
        material_ids: List[str],
        horizon_days: Optional[int] = None,
        algorithm: Union[str, ForecastAlgorithm, None] = 'AUTO',
        created_by: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> List[MaterialForecast]:
        """Generate forecasts for a set of materials.

        History for all materials is read in one query. Materials with too
        little history are skipped with a warning. Each material's forecast
        is committed as its own atomic batch.

        Args:
            tenant_id: Tenant ID
            facility_id: Facility ID
            material_ids: Materials to forecast
            horizon_days: Days to forecast (defaults to configuration)
            algorithm: AUTO or an explicit algorithm name
            created_by: User generating the forecasts
            as_of: Planning date (defaults to today)

        Returns:
            Newly created forecast rows for all materials
        """
        validate_tenant_facility(tenant_id, facility_id)
        if horizon_days is None:
            horizon_days = self.forecast_config['default_horizon_days']
        horizon_days = validate_horizon(horizon_days)
        self._check_algorithm(algorithm)

        if not material_ids:
            return []

        as_of = as_of or date.today()
        start_date = as_of - timedelta(days=self.forecast_config['history_days'])
        min_history = self.forecast_config['min_history_days']

        history = self.history_service.get_batch_demand_history(
            tenant_id, facility_id, material_ids, start_date, as_of
        )

        created = []
        for material_id in material_ids:
            rows = history.get(material_id, [])

            if len(rows) < min_history:
                logger.warning(f"Insufficient demand history for material {material_id} "
                               f"({len(rows)} days), skipping")
                continue

            series = [row.actual_demand_quantity or 0.0 for row in rows]
            result = generate_forecast(series, horizon_days, algorithm, self.forecast_config)

            scope = PlanningScope(tenant_id, facility_id, material_id)
            created.extend(self.commit_forecast_batch(
                scope, result, horizon_days, rows[0].demand_uom or 'UNITS', created_by, as_of
            ))

            logger.info(f"Generated {result.horizon_days}-day {result.algorithm.value} forecast "
                        f"for material {material_id}")

        return created

    def _check_algorithm(self, algorithm) -> None:
        if algorithm is None or isinstance(algorithm, ForecastAlgorithm) or algorithm.upper() == 'AUTO':
            return
        try:
            ForecastAlgorithm.from_string(algorithm)
        except ValueError as e:
            raise ValidationError(str(e), details={'algorithm': algorithm})

    def _acquire_database_lock(self, scope: PlanningScope) -> None:
        """Transaction-scoped advisory lock on PostgreSQL; no-op elsewhere."""
        if self.session.get_bind().dialect.name == 'postgresql':
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {'key': _advisory_lock_key(scope)}
            )

    def commit_forecast_batch(
        self,
        scope: PlanningScope,
        result: ForecastResult,
        horizon_days: int,
        uom: str = 'UNITS',
        created_by: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> List[MaterialForecast]:
        """Atomically replace a material's active forecast.

        Supersedes every ACTIVE row dated on or after as_of, reads the
        current maximum version and inserts the new rows as the next version,
        all in one transaction. Concurrent runs for the same material are
        serialized. Work already pending on the session is committed before
        the material lock is taken, so the batch always starts a fresh
        transaction whose first statement is a write.

        Returns:
            The inserted forecast rows
        """
        validate_scope(scope)
        as_of = as_of or date.today()

        # Release any read lock held by this session while waiting for the material
        self.session.commit()

        with _material_lock(scope):
            try:
                self._acquire_database_lock(scope)

                superseded = self.session.query(MaterialForecast).filter(
                    MaterialForecast.tenant_id == scope.tenant_id,
                    MaterialForecast.facility_id == scope.facility_id,
                    MaterialForecast.material_id == scope.material_id,
                    MaterialForecast.forecast_status == ForecastStatus.ACTIVE,
                    MaterialForecast.forecast_date >= as_of
                ).update({MaterialForecast.forecast_status: ForecastStatus.SUPERSEDED},
                         synchronize_session=False)

                current_version = self.session.query(
                    func.coalesce(func.max(MaterialForecast.forecast_version), 0)
                ).filter(
                    MaterialForecast.tenant_id == scope.tenant_id,
                    MaterialForecast.facility_id == scope.facility_id,
                    MaterialForecast.material_id == scope.material_id
                ).scalar()
                version = int(current_version) + 1

                generated_at = datetime.now()
                horizon_class = horizon_type(horizon_days)

                rows = []
                for point in result.points:
                    forecast_date = as_of + timedelta(days=point.step)
                    rows.append(MaterialForecast(
                        tenant_id=scope.tenant_id,
                        facility_id=scope.facility_id,
                        material_id=scope.material_id,
                        forecast_generation_timestamp=generated_at,
                        forecast_version=version,
                        forecast_horizon_type=horizon_class,
                        forecast_algorithm=result.algorithm,
                        forecast_date=forecast_date,
                        forecast_year=forecast_date.year,
                        forecast_month=forecast_date.month,
                        forecast_week_of_year=week_of_year(forecast_date),
                        forecasted_demand_quantity=point.quantity,
                        forecast_uom=uom,
                        lower_bound_80_pct=point.lower_80,
                        upper_bound_80_pct=point.upper_80,
                        lower_bound_95_pct=point.lower_95,
                        upper_bound_95_pct=point.upper_95,
                        model_confidence_score=result.confidence_score,
                        is_manually_overridden=False,
                        forecast_status=ForecastStatus.ACTIVE,
                        created_by=created_by
                    ))

                self.session.add_all(rows)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                raise ForecastError(
                    f"Failed to commit forecast batch for material {scope.material_id}: {str(e)}"
                )

        logger.debug(f"Material {scope.material_id}: version {version}, superseded {superseded} rows")
        return rows

    def get_material_forecasts(
        self,
        scope: PlanningScope,
        start_date: date,
        end_date: date,
        status: Union[ForecastStatus, str, None] = None
    ) -> List[MaterialForecast]:
        """Forecast rows for a material in an inclusive date range, by date."""
        validate_scope(scope)
        validate_date_range(start_date, end_date)

        query = self.session.query(MaterialForecast).filter(
            MaterialForecast.tenant_id == scope.tenant_id,
            MaterialForecast.facility_id == scope.facility_id,
            MaterialForecast.material_id == scope.material_id,
            MaterialForecast.forecast_date >= start_date,
            MaterialForecast.forecast_date <= end_date,
            MaterialForecast.deleted_at.is_(None)
        )

        if status is not None:
            query = query.filter(MaterialForecast.forecast_status == ForecastStatus(status))

        return query.order_by(MaterialForecast.forecast_date, MaterialForecast.forecast_version).all()

    def override_forecast(
        self,
        forecast_id: int,
        quantity: float,
        override_by: str,
        reason: Optional[str] = None
    ) -> MaterialForecast:
        """Record a planner's manual override on an active forecast row.

        Raises:
            NotFoundError: If the forecast does not exist
            ValidationError: If the row is not active or the quantity is negative
        """
        forecast = self.session.get(MaterialForecast, forecast_id)
        if not forecast or forecast.deleted_at is not None:
            raise NotFoundError(f"Forecast {forecast_id} not found")

        if forecast.forecast_status != ForecastStatus.ACTIVE:
            raise ValidationError(
                f"Forecast {forecast_id} is {forecast.forecast_status.value} and cannot be overridden"
            )

        if quantity is None or quantity < 0:
            raise ValidationError("Override quantity must be non-negative", details={'quantity': quantity})

        forecast.is_manually_overridden = True
        forecast.manual_override_quantity = quantity
        forecast.manual_override_by = override_by
        forecast.manual_override_reason = reason
        self.session.flush()

        logger.info(f"Forecast {forecast_id} for {forecast.material_id} on {forecast.forecast_date} "
                    f"overridden to {quantity} by {override_by}")
        return forecast

    def reconcile_forecasts_with_actuals(
        self,
        scope: PlanningScope,
        start_date: date,
        end_date: date,
        updated_by: Optional[str] = None
    ) -> int:
        """Attach the forecast that applied to each past day lacking one.

        The ACTIVE forecast for the date is preferred, otherwise the latest
        version that is not rejected.

        Returns:
            Number of demand history days updated
        """
        history = self.history_service.get_demand_history(scope, start_date, end_date)
        pending = [row for row in history if row.forecasted_demand_quantity is None]
        if not pending:
            return 0

        forecasts = self.session.query(MaterialForecast).filter(
            MaterialForecast.tenant_id == scope.tenant_id,
            MaterialForecast.facility_id == scope.facility_id,
            MaterialForecast.material_id == scope.material_id,
            MaterialForecast.forecast_date >= start_date,
            MaterialForecast.forecast_date <= end_date,
            MaterialForecast.forecast_status != ForecastStatus.REJECTED,
            MaterialForecast.deleted_at.is_(None)
        ).all()

        best_by_date = {}
        for forecast in forecasts:
            rank = (forecast.forecast_status == ForecastStatus.ACTIVE, forecast.forecast_version)
            current = best_by_date.get(forecast.forecast_date)
            if current is None or rank > current[0]:
                best_by_date[forecast.forecast_date] = (rank, forecast)

        updated = 0
        for row in pending:
            match = best_by_date.get(row.demand_date)
            if match is None:
                continue
            self.history_service.update_forecasted_demand(row.id, match[1].effective_quantity, updated_by)
            updated += 1

        logger.info(f"Reconciled {updated} demand history days with forecasts for {scope.material_id}")
        return updated

from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.models import (
    ForecastAccuracyMetric, MaterialForecast, AggregationLevel, ForecastAlgorithm, ForecastStatus
)
from demand_planning.core.accuracy import calculate_accuracy
from demand_planning.db.connection import dialect_insert
from demand_planning.db.interface import PlanningScope, PlanningDataSource, SqlPlanningDataSource
from demand_planning.services.demand_history_service import DemandHistoryService
from demand_planning.utils.validation import validate_scope, validate_date_range
from demand_planning.exceptions import NoForecastDataError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)

ACCURACY_METRIC_KEY = [
    'tenant_id', 'facility_id', 'material_id',
    'measurement_period_start', 'measurement_period_end', 'aggregation_level'
]

@dataclass
class MethodComparison:
    method: ForecastAlgorithm
    avg_mape: Optional[float]
    avg_rmse: Optional[float]
    sample_size: int


class AccuracyService:
    """Service for measuring forecast accuracy and ranking algorithms."""

    def __init__(
        self,
        session: Session,
        data_source: Optional[PlanningDataSource] = None,
        history_service: Optional[DemandHistoryService] = None
    ):
        self.session = session
        self.data_source = data_source or SqlPlanningDataSource(session)
        self.history_service = history_service or DemandHistoryService(session, self.data_source)
        self._accuracy_config = None

    @property
    def accuracy_config(self):
        if self._accuracy_config is None:
            self._accuracy_config = config.accuracy_config
        return self._accuracy_config

    def get_target_mape(self, material_id: str) -> float:
        """Per-material MAPE tolerance, falling back to the configured default."""
        material = self.data_source.get_material_info(material_id)
        if material and material.target_forecast_accuracy_pct:
            return float(material.target_forecast_accuracy_pct)
        return self.accuracy_config['default_target_mape']

    def _dominant_algorithm(self, scope: PlanningScope, period_start: date, period_end: date) -> Optional[ForecastAlgorithm]:
        """Most common algorithm among non-rejected forecasts dated in the period."""
        rows = self.session.query(MaterialForecast.forecast_algorithm).filter(
            MaterialForecast.tenant_id == scope.tenant_id,
            MaterialForecast.facility_id == scope.facility_id,
            MaterialForecast.material_id == scope.material_id,
            MaterialForecast.forecast_date >= period_start,
            MaterialForecast.forecast_date <= period_end,
            MaterialForecast.forecast_status != ForecastStatus.REJECTED,
            MaterialForecast.deleted_at.is_(None)
        ).all()

        counts = Counter(row[0] for row in rows if row[0] is not None)
        if not counts:
            return None
        return counts.most_common(1)[0][0]

    def calculate_accuracy_metrics(
        self,
        scope: PlanningScope,
        period_start: date,
        period_end: date,
        aggregation_level: Union[AggregationLevel, str] = AggregationLevel.DAILY,
        forecast_algorithm: Union[ForecastAlgorithm, str, None] = None,
        created_by: Optional[str] = None
    ) -> ForecastAccuracyMetric:
        """Compare forecast with actual demand over a period and store the metrics.

        Only days carrying both an actual and a forecast quantity count.
        Recomputing the same period and aggregation level replaces the
        stored row.

        Args:
            scope: Tenant, facility and material
            period_start: First day of the measurement period
            period_end: Last day of the measurement period
            aggregation_level: Aggregation level recorded with the metrics
            forecast_algorithm: Algorithm being measured (inferred when omitted)
            created_by: User requesting the calculation

        Returns:
            The stored accuracy metric row

        Raises:
            NoForecastDataError: If no day in the period has a forecast
        """
        validate_scope(scope)
        validate_date_range(period_start, period_end)
        aggregation_level = AggregationLevel(aggregation_level)

        history = self.history_service.get_demand_history(scope, period_start, period_end)
        pairs = [
            (row.actual_demand_quantity, row.forecasted_demand_quantity)
            for row in history
            if row.actual_demand_quantity is not None and row.forecasted_demand_quantity is not None
        ]

        if not pairs:
            raise NoForecastDataError(details={
                'material_id': scope.material_id,
                'period_start': str(period_start),
                'period_end': str(period_end)
            })

        result = calculate_accuracy(pairs)
        target = self.get_target_mape(scope.material_id)

        if forecast_algorithm is not None:
            algorithm = ForecastAlgorithm(forecast_algorithm)
        else:
            algorithm = self._dominant_algorithm(scope, period_start, period_end)

        measured = dict(
            forecast_algorithm=algorithm,
            mape=result.mape,
            rmse=result.rmse,
            mae=result.mae,
            mad=result.mad,
            bias=result.bias,
            bias_percentage=result.bias_percentage,
            tracking_signal=result.tracking_signal,
            sample_size=result.sample_size,
            total_actual_demand=result.total_actual_demand,
            total_forecasted_demand=result.total_forecasted_demand,
            is_within_tolerance=result.is_within_tolerance(target),
            target_mape_threshold=target
        )

        stmt = dialect_insert(self.session, ForecastAccuracyMetric).values(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            material_id=scope.material_id,
            measurement_period_start=period_start,
            measurement_period_end=period_end,
            aggregation_level=aggregation_level,
            created_by=created_by,
            **measured
        )

        # Recalculating a period replaces its figures; created_by keeps the first writer
        replaced = {column: getattr(stmt.excluded, column) for column in measured}
        replaced['updated_at'] = func.now()

        self.session.execute(stmt.on_conflict_do_update(index_elements=ACCURACY_METRIC_KEY, set_=replaced))

        metric = self.session.query(ForecastAccuracyMetric).filter(
            ForecastAccuracyMetric.tenant_id == scope.tenant_id,
            ForecastAccuracyMetric.facility_id == scope.facility_id,
            ForecastAccuracyMetric.material_id == scope.material_id,
            ForecastAccuracyMetric.measurement_period_start == period_start,
            ForecastAccuracyMetric.measurement_period_end == period_end,
            ForecastAccuracyMetric.aggregation_level == aggregation_level
        ).populate_existing().one()

        mape_text = f"{result.mape:.2f}%" if result.mape is not None else "n/a"
        logger.info(f"Accuracy for {scope.material_id} {period_start}..{period_end}: "
                    f"MAPE {mape_text}, bias {result.bias:.2f}, n={result.sample_size}")
        return metric

    def get_accuracy_metrics(
        self,
        scope: PlanningScope,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None
    ) -> List[ForecastAccuracyMetric]:
        """Stored metrics overlapping a period, latest period end first."""
        validate_scope(scope)

        query = self.session.query(ForecastAccuracyMetric).filter(
            ForecastAccuracyMetric.tenant_id == scope.tenant_id,
            ForecastAccuracyMetric.facility_id == scope.facility_id,
            ForecastAccuracyMetric.material_id == scope.material_id
        )

        if period_start:
            query = query.filter(ForecastAccuracyMetric.measurement_period_end >= period_start)
        if period_end:
            query = query.filter(ForecastAccuracyMetric.measurement_period_start <= period_end)

        return query.order_by(ForecastAccuracyMetric.measurement_period_end.desc()).all()

    def _metrics_since(self, scope: PlanningScope, since: date) -> List[ForecastAccuracyMetric]:
        return self.session.query(ForecastAccuracyMetric).filter(
            ForecastAccuracyMetric.tenant_id == scope.tenant_id,
            ForecastAccuracyMetric.facility_id == scope.facility_id,
            ForecastAccuracyMetric.material_id == scope.material_id,
            ForecastAccuracyMetric.measurement_period_end >= since,
            ForecastAccuracyMetric.forecast_algorithm.isnot(None)
        ).all()

    def _rank_methods(self, metrics: List[ForecastAccuracyMetric]) -> List[MethodComparison]:
        grouped = {}
        for metric in metrics:
            grouped.setdefault(metric.forecast_algorithm, []).append(metric)

        comparisons = []
        for algorithm, rows in grouped.items():
            mapes = [row.mape for row in rows if row.mape is not None]
            rmses = [row.rmse for row in rows if row.rmse is not None]
            comparisons.append(MethodComparison(
                method=algorithm,
                avg_mape=sum(mapes) / len(mapes) if mapes else None,
                avg_rmse=sum(rmses) / len(rmses) if rmses else None,
                sample_size=sum(row.sample_size or 0 for row in rows)
            ))

        # Unknown MAPE sorts last
        comparisons.sort(key=lambda c: (c.avg_mape is None, c.avg_mape or 0.0))
        return comparisons

    def get_best_performing_method(self, scope: PlanningScope, as_of: Optional[date] = None) -> Optional[ForecastAlgorithm]:
        """Algorithm with the lowest average MAPE over recent measurement periods."""
        validate_scope(scope)
        as_of = as_of or date.today()
        since = as_of - timedelta(days=self.accuracy_config['best_method_window_days'])

        ranked = self._rank_methods(self._metrics_since(scope, since))
        if not ranked:
            return None
        return ranked[0].method

    def compare_forecast_methods(self, scope: PlanningScope, as_of: Optional[date] = None) -> List[MethodComparison]:
        """Average MAPE, RMSE and total sample size per algorithm, best first."""
        validate_scope(scope)
        as_of = as_of or date.today()
        since = as_of - timedelta(days=self.accuracy_config['comparison_window_days'])

        return self._rank_methods(self._metrics_since(scope, since))

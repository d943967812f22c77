"""
Tests for the accuracy service.
"""
import unittest
from datetime import timedelta

from demand_planning.models import ForecastAccuracyMetric, ForecastAlgorithm, AggregationLevel, DemandHistory
from demand_planning.services.accuracy_service import AccuracyService
from demand_planning.exceptions import NoForecastDataError
from demand_planning.tests.fixtures import DatabaseTestCase, TENANT_ID, FACILITY_ID, AS_OF

PERIOD_START = AS_OF - timedelta(days=30)
PERIOD_END = AS_OF - timedelta(days=1)


class TestCalculateAccuracyMetrics(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.service = AccuracyService(self.session)

    def test_no_forecasts_stores_nothing(self):
        self.add_history('MAT-1', [10.0, 20.0, 30.0])

        with self.assertRaises(NoForecastDataError) as context:
            self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)

        self.assertEqual(context.exception.details['material_id'], 'MAT-1')
        self.assertEqual(self.session.query(ForecastAccuracyMetric).count(), 0)

    def test_metrics(self):
        self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])

        metric = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END, created_by='qa')

        self.assertAlmostEqual(metric.mape, 10.0)
        self.assertAlmostEqual(metric.bias, -15.0)
        self.assertAlmostEqual(metric.bias_percentage, -10.0)
        self.assertAlmostEqual(metric.mae, 15.0)
        self.assertAlmostEqual(metric.tracking_signal, -2.0)
        self.assertEqual(metric.sample_size, 2)
        self.assertEqual(metric.total_actual_demand, 300.0)
        self.assertEqual(metric.total_forecasted_demand, 270.0)
        self.assertEqual(metric.aggregation_level, AggregationLevel.DAILY)
        self.assertEqual(metric.target_mape_threshold, 25.0)
        self.assertTrue(metric.is_within_tolerance)

    def test_days_without_forecast_are_ignored(self):
        rows = self.add_history('MAT-1', [100.0, 200.0, 50.0], forecasts=[90.0, 180.0, 0.0])
        rows[2].forecasted_demand_quantity = None
        self.session.commit()

        metric = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)
        self.assertEqual(metric.sample_size, 2)

    def test_material_target_mape(self):
        self.add_material('MAT-1', target_forecast_accuracy_pct=5.0)
        self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])

        metric = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)

        self.assertEqual(metric.target_mape_threshold, 5.0)
        self.assertFalse(metric.is_within_tolerance)

    def test_recalculation_replaces_stored_metric(self):
        rows = self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])
        first = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)

        rows[0].forecasted_demand_quantity = 100.0
        rows[1].forecasted_demand_quantity = 200.0
        self.session.commit()
        second = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.mape, 0.0)
        self.assertEqual(self.session.query(ForecastAccuracyMetric).count(), 1)

    def test_weekly_level_is_stored_separately(self):
        self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])

        self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)
        self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END, aggregation_level='WEEKLY')

        self.assertEqual(self.session.query(ForecastAccuracyMetric).count(), 2)

    def test_algorithm_is_inferred_from_forecasts(self):
        rows = self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])
        for row in rows:
            self.add_forecast('MAT-1', row.demand_date, 90.0, algorithm=ForecastAlgorithm.HOLT_WINTERS)

        metric = self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)
        self.assertEqual(metric.forecast_algorithm, ForecastAlgorithm.HOLT_WINTERS)

    def test_get_accuracy_metrics(self):
        self.add_history('MAT-1', [100.0, 200.0], forecasts=[90.0, 180.0])
        self.service.calculate_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)

        self.assertEqual(len(self.service.get_accuracy_metrics(self.scope(), PERIOD_START, PERIOD_END)), 1)
        self.assertEqual(len(self.service.get_accuracy_metrics(self.scope(), AS_OF, AS_OF + timedelta(days=5))), 0)


class TestMethodRanking(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.service = AccuracyService(self.session)

    def _metric(self, algorithm, mape, rmse, end_offset, sample_size=30):
        end = AS_OF - timedelta(days=end_offset)
        self.session.add(ForecastAccuracyMetric(
            tenant_id=TENANT_ID,
            facility_id=FACILITY_ID,
            material_id='MAT-1',
            forecast_algorithm=algorithm,
            measurement_period_start=end - timedelta(days=6),
            measurement_period_end=end,
            aggregation_level=AggregationLevel.DAILY,
            mape=mape,
            rmse=rmse,
            sample_size=sample_size
        ))
        self.session.commit()

    def test_best_performing_method(self):
        self._metric(ForecastAlgorithm.MOVING_AVERAGE, 20.0, 5.0, 1)
        self._metric(ForecastAlgorithm.EXP_SMOOTHING, 10.0, 4.0, 8)
        self._metric(ForecastAlgorithm.EXP_SMOOTHING, 14.0, 6.0, 15)

        self.assertEqual(self.service.get_best_performing_method(self.scope(), AS_OF),
                         ForecastAlgorithm.EXP_SMOOTHING)

    def test_best_method_ignores_old_metrics(self):
        self._metric(ForecastAlgorithm.MOVING_AVERAGE, 20.0, 5.0, 1)
        self._metric(ForecastAlgorithm.EXP_SMOOTHING, 5.0, 4.0, 60)

        self.assertEqual(self.service.get_best_performing_method(self.scope(), AS_OF),
                         ForecastAlgorithm.MOVING_AVERAGE)

    def test_no_metrics(self):
        self.assertIsNone(self.service.get_best_performing_method(self.scope(), AS_OF))
        self.assertEqual(self.service.compare_forecast_methods(self.scope(), AS_OF), [])

    def test_compare_forecast_methods(self):
        self._metric(ForecastAlgorithm.MOVING_AVERAGE, 20.0, 5.0, 1)
        self._metric(ForecastAlgorithm.EXP_SMOOTHING, 10.0, 4.0, 8)
        self._metric(ForecastAlgorithm.EXP_SMOOTHING, 14.0, 6.0, 60)
        self._metric(ForecastAlgorithm.HOLT_WINTERS, None, 3.0, 20)

        comparison = self.service.compare_forecast_methods(self.scope(), AS_OF)

        self.assertEqual([c.method for c in comparison], [
            ForecastAlgorithm.EXP_SMOOTHING, ForecastAlgorithm.MOVING_AVERAGE, ForecastAlgorithm.HOLT_WINTERS
        ])
        self.assertAlmostEqual(comparison[0].avg_mape, 12.0)
        self.assertAlmostEqual(comparison[0].avg_rmse, 5.0)
        self.assertEqual(comparison[0].sample_size, 60)
        self.assertIsNone(comparison[2].avg_mape)


if __name__ == '__main__':
    unittest.main()

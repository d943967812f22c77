"""
Tests for the planning batch job.
"""
import unittest
from unittest.mock import patch

from demand_planning.models import Material, MaterialForecast, ReplenishmentSuggestion, ForecastStatus
from demand_planning.batch.planning_job import run_planning_job
from demand_planning.tests.fixtures import DatabaseTestCase, TENANT_ID, FACILITY_ID, AS_OF

STEPS = [
    'backfill_demand',
    'reconcile_forecasts',
    'measure_accuracy',
    'generate_forecasts',
    'update_planning_parameters',
    'generate_recommendations'
]


class TestPlanningJob(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.add_material('MAT-1', lead_time_days=5, last_cost=2.0)
        self.add_lot('MAT-1', available=5.0)
        self.add_history('MAT-1', [12.0, 8.0, 10.0, 10.0] * 15)

        patcher = patch('demand_planning.batch.planning_job.session_scope', self.session_scope)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_full_cycle(self):
        results = run_planning_job(TENANT_ID, FACILITY_ID, ['MAT-1'], as_of=AS_OF)

        self.assertTrue(results['success'])
        self.assertEqual(list(results['processes'].keys()), STEPS)
        self.assertEqual(results['materials'], 1)
        self.assertEqual(results['processes']['measure_accuracy']['materials_without_forecasts'], 1)
        self.assertEqual(results['processes']['generate_forecasts']['forecast_rows'], 30)
        self.assertEqual(results['processes']['generate_recommendations']['recommendations'], 1)

        active = self.session.query(MaterialForecast).filter(
            MaterialForecast.forecast_status == ForecastStatus.ACTIVE
        ).count()
        self.assertEqual(active, 30)

        suggestion = self.session.query(ReplenishmentSuggestion).one()
        self.assertEqual(suggestion.created_by, 'PLANNING_JOB')
        self.assertEqual(suggestion.vendor_lead_time_days, 5)

        material = self.session.get(Material, 'MAT-1')
        self.assertIsNotNone(material.reorder_point)
        self.assertEqual(material.updated_by, 'PLANNING_JOB')

    def test_active_materials_are_resolved(self):
        results = run_planning_job(TENANT_ID, FACILITY_ID, as_of=AS_OF)

        self.assertTrue(results['success'])
        self.assertEqual(results['materials'], 1)

    def test_no_materials(self):
        results = run_planning_job(TENANT_ID, 'PLANT-EMPTY', as_of=AS_OF)

        self.assertFalse(results['success'])
        self.assertIn('No active materials', results['error'])
        self.assertEqual(list(results['processes'].keys()), ['backfill_demand'])

    def test_failed_step_does_not_stop_the_job(self):
        with patch('demand_planning.batch.planning_job.generate_forecasts',
                   side_effect=RuntimeError('forecast engine down')):
            results = run_planning_job(TENANT_ID, FACILITY_ID, ['MAT-1'], as_of=AS_OF)

        self.assertFalse(results['success'])
        self.assertEqual(results['processes']['generate_forecasts'],
                         {'success': False, 'error': 'forecast engine down'})
        self.assertEqual(list(results['processes'].keys()), STEPS)
        self.assertTrue(results['processes']['update_planning_parameters']['success'])
        # Nothing was forecast, so there is nothing to replenish against
        self.assertEqual(results['processes']['generate_recommendations']['recommendations'], 0)
        self.assertIsNotNone(results['duration'])

    def test_run_is_tagged_in_batch_log(self):
        with self.assertLogs('batch', level='INFO') as logs:
            results = run_planning_job(TENANT_ID, FACILITY_ID, ['MAT-1'], as_of=AS_OF)

        self.assertEqual(len(results['run_id']), 8)
        prefix = f"[{results['run_id']} {TENANT_ID}/{FACILITY_ID}]"
        self.assertTrue(all(prefix in line for line in logs.output))
        self.assertIn('Running step generate_recommendations', logs.output[-2])
        self.assertIn('Completed batch process: planning_job', logs.output[-1])

    def test_failed_steps_are_named_in_batch_log(self):
        with patch('demand_planning.batch.planning_job.generate_forecasts',
                   side_effect=RuntimeError('forecast engine down')):
            with self.assertLogs('batch', level='ERROR') as logs:
                results = run_planning_job(TENANT_ID, FACILITY_ID, ['MAT-1'], as_of=AS_OF)

        self.assertIn('Error during generate_forecasts: forecast engine down', logs.output[0])
        self.assertIsNotNone(logs.records[0].exc_info)
        self.assertIn('Failed batch process: planning_job', logs.output[1])
        self.assertIn('Step generate_forecasts failed: forecast engine down', logs.output[2])
        self.assertEqual(len(logs.output), 3)
        self.assertTrue(all(results['run_id'] in line for line in logs.output))


if __name__ == '__main__':
    unittest.main()

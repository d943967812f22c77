"""
Tests for the safety stock service.
"""
import math
import unittest
from datetime import date
from unittest.mock import MagicMock

from demand_planning.models import Material, DemandHistory, CalculationMethod
from demand_planning.db.interface import PlanningDataSource, MaterialInfo, LeadTimeStatistics
from demand_planning.services.safety_stock_service import SafetyStockService
from demand_planning.exceptions import ValidationError, DatabaseError, SafetyStockError
from demand_planning.tests.fixtures import DatabaseTestCase, TENANT_ID, AS_OF


class TestLeadTimeStatistics(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.data_source = MagicMock(spec=PlanningDataSource)
        self.data_source.get_material_info.return_value = None
        self.service = SafetyStockService(self.session, self.data_source)

    def test_failure_falls_back_to_defaults(self):
        self.data_source.get_lead_time_statistics.side_effect = Exception('connection reset')

        self.assertEqual(self.service.get_lead_time_statistics(TENANT_ID, 'MAT-1', AS_OF), (14.0, 3.0))

    def test_no_purchase_history_falls_back_to_defaults(self):
        self.data_source.get_lead_time_statistics.return_value = None

        self.assertEqual(self.service.get_lead_time_statistics(TENANT_ID, 'MAT-1', AS_OF), (14.0, 3.0))

    def test_zero_values_fall_back_individually(self):
        self.data_source.get_lead_time_statistics.return_value = LeadTimeStatistics(9.0, 0.0, 1)

        self.assertEqual(self.service.get_lead_time_statistics(TENANT_ID, 'MAT-1', AS_OF), (9.0, 3.0))

    def test_observed_statistics(self):
        self.data_source.get_lead_time_statistics.return_value = LeadTimeStatistics(10.0, 2.0, 6)

        self.assertEqual(self.service.get_lead_time_statistics(TENANT_ID, 'MAT-1', AS_OF), (10.0, 2.0))
        since = self.data_source.get_lead_time_statistics.call_args[0][2]
        self.assertEqual(since, date(2023, 12, 4))

    def test_calculation_continues_after_lead_time_failure(self):
        self.data_source.get_lead_time_statistics.side_effect = Exception('timeout')
        self.add_history('MAT-1', [10.0] * 90)

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)

        # Constant demand with the default 3/14 lead time variability
        self.assertEqual(result.calculation_method, CalculationMethod.LEAD_TIME_VARIABILITY)
        self.assertAlmostEqual(result.safety_stock_quantity, 49.5)
        self.assertAlmostEqual(result.reorder_point, 189.5)
        self.assertAlmostEqual(result.economic_order_quantity, math.sqrt(14600.0))

    def test_failed_lead_time_query_leaves_session_usable(self):
        self.add_history('MAT-1', [10.0] * 90)

        def failing_query(tenant_id, material_id, since):
            # Missing tenant, facility and material fail the NOT NULL constraints on flush
            self.session.add(DemandHistory(demand_date=AS_OF, actual_demand_quantity=1.0))
            self.session.flush()

        self.data_source.get_lead_time_statistics.side_effect = failing_query

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)

        self.assertAlmostEqual(result.safety_stock_quantity, 49.5)
        self.assertEqual(self.session.query(DemandHistory).count(), 90)
        self.session.commit()


class TestCalculateSafetyStock(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.data_source = MagicMock(spec=PlanningDataSource)
        self.data_source.get_lead_time_statistics.return_value = LeadTimeStatistics(10.0, 0.5, 4)
        self.service = SafetyStockService(self.session, self.data_source)
        self.add_history('MAT-1', [10.0] * 90)

    def test_material_lead_time_and_cost(self):
        self.data_source.get_material_info.return_value = MaterialInfo('MAT-1', lead_time_days=9, standard_cost=400.0)

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)

        self.assertEqual(result.calculation_method, CalculationMethod.BASIC)
        self.assertAlmostEqual(result.safety_stock_quantity, 70.0)
        self.assertAlmostEqual(result.reorder_point, 160.0)
        self.assertAlmostEqual(result.economic_order_quantity, math.sqrt(3650.0))
        self.assertEqual(result.avg_lead_time_days, 9)

    def test_stored_safety_stock_sets_days_of_supply(self):
        self.data_source.get_material_info.return_value = MaterialInfo(
            'MAT-1', lead_time_days=9, standard_cost=400.0, safety_stock_quantity=40.0
        )

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)
        self.assertAlmostEqual(result.safety_stock_quantity, 40.0)

    def test_without_material_master(self):
        self.data_source.get_material_info.return_value = None

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)

        self.assertEqual(result.avg_lead_time_days, 14.0)
        self.assertAlmostEqual(result.economic_order_quantity, math.sqrt(14600.0))

    def test_without_demand_history(self):
        self.data_source.get_material_info.return_value = None

        result = self.service.calculate_safety_stock(self.scope('MAT-EMPTY'), as_of=AS_OF)

        self.assertEqual(result.safety_stock_quantity, 0.0)
        self.assertEqual(result.reorder_point, 0.0)
        self.assertEqual(result.economic_order_quantity, 0.0)

    def test_service_level(self):
        self.data_source.get_material_info.return_value = None

        result = self.service.calculate_safety_stock(self.scope(), service_level=0.99, as_of=AS_OF)
        self.assertEqual(result.z_score, 2.33)

        with self.assertRaises(ValidationError):
            self.service.calculate_safety_stock(self.scope(), service_level=1.5, as_of=AS_OF)

    def test_unexpected_error_is_wrapped(self):
        self.data_source.get_material_info.side_effect = RuntimeError('bad row')

        with self.assertRaises(SafetyStockError):
            self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)


class TestPlanningParameterWriteBack(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.service = SafetyStockService(self.session)

    def test_update_material(self):
        self.add_material('MAT-1')

        self.service.update_material_planning_parameters('MAT-1', 49.5, 189.5, 120.8, 'planner')

        material = self.session.get(Material, 'MAT-1')
        self.assertEqual(material.safety_stock_quantity, 49.5)
        self.assertEqual(material.reorder_point, 189.5)
        self.assertEqual(material.economic_order_quantity, 120.8)
        self.assertEqual(material.updated_by, 'planner')

    def test_update_missing_material(self):
        with self.assertRaises(DatabaseError):
            self.service.update_material_planning_parameters('MAT-404', 1.0, 2.0, 3.0)

    def test_calculation_uses_purchase_history(self):
        self.add_material('MAT-1', lead_time_days=7, standard_cost=100.0)
        self.add_history('MAT-1', [10.0] * 90)

        result = self.service.calculate_safety_stock(self.scope(), as_of=AS_OF)

        # No purchase orders, so lead time variability comes from the defaults
        self.assertEqual(result.calculation_method, CalculationMethod.LEAD_TIME_VARIABILITY)
        self.assertAlmostEqual(result.reorder_point, 70.0 + 49.5)


if __name__ == '__main__':
    unittest.main()

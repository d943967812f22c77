"""
Unit tests for the safety stock, reorder point and EOQ calculations.
"""
import math
import unittest

from demand_planning.core.safety_stock import (
    get_z_score,
    select_calculation_method,
    calculate_safety_stock,
    calculate_eoq,
    calculate_reorder_point,
    calculate_service_level,
    safety_stock_days_from_quantity
)
from demand_planning.models import CalculationMethod


class TestZScore(unittest.TestCase):

    def test_table_values(self):
        self.assertEqual(get_z_score(0.995), 2.33)
        self.assertEqual(get_z_score(0.99), 2.33)
        self.assertEqual(get_z_score(0.97), 1.65)
        self.assertEqual(get_z_score(0.95), 1.65)
        self.assertEqual(get_z_score(0.90), 1.28)
        self.assertEqual(get_z_score(0.85), 1.04)
        self.assertEqual(get_z_score(0.80), 0.84)

    def test_low_service_level_uses_default(self):
        self.assertEqual(get_z_score(0.5), 1.65)


class TestMethodSelection(unittest.TestCase):

    def test_selection_matrix(self):
        self.assertEqual(select_calculation_method(0.1, 0.05), CalculationMethod.BASIC)
        self.assertEqual(select_calculation_method(0.2, 0.05), CalculationMethod.DEMAND_VARIABILITY)
        self.assertEqual(select_calculation_method(0.1, 0.1), CalculationMethod.LEAD_TIME_VARIABILITY)
        self.assertEqual(select_calculation_method(0.5, 0.3), CalculationMethod.COMBINED_VARIABILITY)


class TestSafetyStockCalculation(unittest.TestCase):

    def test_basic_method(self):
        result = calculate_safety_stock('MAT-1', 10.0, 1.0, 14, 0.0, 0.0)

        self.assertEqual(result.calculation_method, CalculationMethod.BASIC)
        self.assertAlmostEqual(result.safety_stock_quantity, 70.0)
        self.assertAlmostEqual(result.reorder_point, 210.0)
        self.assertEqual(result.z_score, 1.65)

    def test_demand_variability_method(self):
        result = calculate_safety_stock('MAT-1', 10.0, 5.0, 16, 0.5, 0.05)

        self.assertEqual(result.calculation_method, CalculationMethod.DEMAND_VARIABILITY)
        self.assertAlmostEqual(result.safety_stock_quantity, 1.65 * 5.0 * 4.0)
        self.assertAlmostEqual(result.reorder_point, 160.0 + 33.0)

    def test_lead_time_variability_method(self):
        result = calculate_safety_stock('MAT-1', 10.0, 1.0, 14, 3.0, 0.2)

        self.assertEqual(result.calculation_method, CalculationMethod.LEAD_TIME_VARIABILITY)
        self.assertAlmostEqual(result.safety_stock_quantity, 49.5)

    def test_combined_variability_method(self):
        result = calculate_safety_stock('MAT-1', 10.0, 5.0, 16, 2.0, 0.125)

        self.assertEqual(result.calculation_method, CalculationMethod.COMBINED_VARIABILITY)
        self.assertAlmostEqual(result.safety_stock_quantity, 1.65 * math.sqrt(800.0))
        # Z of 1.65 maps back to about 95%
        self.assertAlmostEqual(result.attained_service_level, 0.9505, places=3)

    def test_higher_service_level_raises_safety_stock(self):
        low = calculate_safety_stock('MAT-1', 10.0, 5.0, 16, 2.0, 0.125, service_level=0.90)
        high = calculate_safety_stock('MAT-1', 10.0, 5.0, 16, 2.0, 0.125, service_level=0.99)
        self.assertGreater(high.safety_stock_quantity, low.safety_stock_quantity)

    def test_zero_demand(self):
        result = calculate_safety_stock('MAT-1', 0.0, 0.0, 14, 0.0, 0.0)

        self.assertEqual(result.safety_stock_quantity, 0.0)
        self.assertEqual(result.reorder_point, 0.0)
        self.assertEqual(result.economic_order_quantity, 0.0)
        self.assertIsNone(result.attained_service_level)

    def test_reorder_point(self):
        self.assertEqual(calculate_reorder_point(10.0, 7, 20.0), 90.0)


class TestEOQ(unittest.TestCase):

    def test_eoq(self):
        # sqrt(2 x 3650 x 50 / (100 x 0.25))
        self.assertAlmostEqual(calculate_eoq(3650.0, 100.0), math.sqrt(14600.0))

    def test_eoq_without_cost_or_demand(self):
        self.assertEqual(calculate_eoq(3650.0, 0.0), 0.0)
        self.assertEqual(calculate_eoq(0.0, 100.0), 0.0)

    def test_eoq_in_full_calculation(self):
        result = calculate_safety_stock('MAT-1', 10.0, 1.0, 14, 0.0, 0.0, unit_cost=100.0)
        self.assertAlmostEqual(result.economic_order_quantity, math.sqrt(14600.0))


class TestHelpers(unittest.TestCase):

    def test_safety_stock_days_from_quantity(self):
        self.assertEqual(safety_stock_days_from_quantity(35.0, 10.0), 4)
        self.assertEqual(safety_stock_days_from_quantity(30.0, 10.0), 3)
        self.assertEqual(safety_stock_days_from_quantity(None, 10.0), 7)
        self.assertEqual(safety_stock_days_from_quantity(50.0, 0.0), 7)
        self.assertEqual(safety_stock_days_from_quantity(1.0, 10.0, default_days=5), 5)

    def test_service_level(self):
        self.assertAlmostEqual(calculate_service_level(0.0, 10.0), 0.5)
        self.assertAlmostEqual(calculate_service_level(16.5, 10.0), 0.9505, places=3)
        self.assertIsNone(calculate_service_level(10.0, 0.0))


if __name__ == '__main__':
    unittest.main()

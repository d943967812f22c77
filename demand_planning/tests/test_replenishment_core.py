"""
Unit tests for the replenishment decision functions.
"""
import unittest
from datetime import date, timedelta

from demand_planning.core.replenishment import (
    sum_forecast_demand,
    calculate_stockout_date,
    should_recommend_replenishment,
    calculate_order_quantity,
    determine_urgency_level,
    calculate_order_date,
    build_suggestion_reason,
    plan_replenishment
)
from demand_planning.models import UrgencyLevel

AS_OF = date(2024, 6, 1)

def daily(quantity, days, as_of=AS_OF):
    return [(as_of + timedelta(days=i), quantity) for i in range(1, days + 1)]


class TestReplenishmentDecision(unittest.TestCase):

    def test_sum_forecast_demand_window(self):
        forecasts = daily(2.0, 90)
        self.assertEqual(sum_forecast_demand(forecasts, 30, AS_OF), 60.0)
        self.assertEqual(sum_forecast_demand(forecasts, 90, AS_OF), 180.0)

    def test_position_equal_to_reorder_point_is_not_replenished(self):
        self.assertFalse(should_recommend_replenishment(100.0, 0.0, 100.0, 90.0))
        self.assertIsNone(plan_replenishment(
            available_quantity=100.0,
            on_order_quantity=0.0,
            forecasts=daily(3.0, 90),
            safety_stock=10.0,
            reorder_point=100.0,
            economic_order_quantity=50.0,
            lead_time_days=7,
            as_of=AS_OF
        ))

    def test_position_below_reorder_point_is_replenished(self):
        self.assertTrue(should_recommend_replenishment(99.0, 0.0, 100.0, 90.0))

    def test_on_order_counts_towards_position(self):
        self.assertFalse(should_recommend_replenishment(50.0, 60.0, 100.0, 90.0))

    def test_position_below_30_day_demand_is_replenished(self):
        self.assertTrue(should_recommend_replenishment(80.0, 0.0, 50.0, 90.0))


class TestStockoutAndUrgency(unittest.TestCase):

    def test_stockout_date(self):
        # 50 - 10k drops below 20 on the fourth day
        self.assertEqual(calculate_stockout_date(50.0, daily(10.0, 30), 20.0), AS_OF + timedelta(days=4))

    def test_no_stockout(self):
        self.assertIsNone(calculate_stockout_date(1000.0, daily(1.0, 30), 20.0))

    def test_urgency_thresholds(self):
        self.assertEqual(determine_urgency_level(5, 100.0, 10.0), UrgencyLevel.CRITICAL)
        self.assertEqual(determine_urgency_level(7, 100.0, 10.0), UrgencyLevel.HIGH)
        self.assertEqual(determine_urgency_level(14, 100.0, 10.0), UrgencyLevel.MEDIUM)
        self.assertEqual(determine_urgency_level(30, 100.0, 10.0), UrgencyLevel.LOW)
        self.assertEqual(determine_urgency_level(None, 100.0, 10.0), UrgencyLevel.LOW)

    def test_below_safety_stock_is_critical(self):
        self.assertEqual(determine_urgency_level(None, 5.0, 10.0), UrgencyLevel.CRITICAL)
        self.assertEqual(determine_urgency_level(60, 5.0, 10.0), UrgencyLevel.CRITICAL)


class TestOrderSizing(unittest.TestCase):

    def test_covers_90_day_shortfall(self):
        self.assertEqual(calculate_order_quantity(10.0, 0.0, 500.0, 100.0), 490.0)

    def test_eoq_floor(self):
        self.assertEqual(calculate_order_quantity(10.0, 0.0, 500.0, 600.0), 600.0)

    def test_minimum_order_quantity(self):
        self.assertEqual(calculate_order_quantity(10.0, 0.0, 500.0, 100.0, minimum_order_quantity=1000.0), 1000.0)

    def test_order_multiple(self):
        self.assertEqual(calculate_order_quantity(10.0, 0.0, 500.0, 100.0, order_multiple=25.0), 500.0)
        self.assertEqual(calculate_order_quantity(10.0, 0.0, 500.0, 100.0, minimum_order_quantity=510.0,
                                                  order_multiple=25.0), 525.0)

    def test_order_date(self):
        self.assertEqual(calculate_order_date(AS_OF + timedelta(days=30), 14, AS_OF), AS_OF + timedelta(days=14))
        self.assertEqual(calculate_order_date(AS_OF + timedelta(days=10), 14, AS_OF), AS_OF)
        self.assertEqual(calculate_order_date(None, 14, AS_OF), AS_OF)

    def test_reason(self):
        self.assertEqual(build_suggestion_reason(500.0, 100.0, 90.0, None),
                         'Proactive replenishment based on forecast.')

        reason = build_suggestion_reason(50.0, 100.0, 90.0, 5)
        self.assertIn('below reorder point', reason)
        self.assertIn('insufficient for 30-day forecast', reason)
        self.assertIn('Projected stockout in 5 days', reason)


class TestPlanReplenishment(unittest.TestCase):

    def test_full_plan(self):
        plan = plan_replenishment(
            available_quantity=50.0,
            on_order_quantity=0.0,
            forecasts=daily(10.0, 90),
            safety_stock=20.0,
            reorder_point=160.0,
            economic_order_quantity=100.0,
            lead_time_days=3,
            as_of=AS_OF
        )

        self.assertIsNotNone(plan)
        self.assertEqual(plan.projected_stockout_date, AS_OF + timedelta(days=4))
        self.assertEqual(plan.days_until_stockout, 4)
        self.assertEqual(plan.urgency_level, UrgencyLevel.CRITICAL)
        self.assertEqual(plan.recommended_order_quantity, 850.0)
        self.assertEqual(plan.recommended_order_date, AS_OF)
        self.assertEqual(plan.recommended_delivery_date, AS_OF + timedelta(days=3))


if __name__ == '__main__':
    unittest.main()

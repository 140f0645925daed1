import unittest
from datetime import date

from roadtrip.models import Category, Day, OptimizationResult, Stop


class TestCategory(unittest.TestCase):
    def test_parse_labels(self):
        self.assertIs(Category.parse("Food"), Category.MEAL)
        self.assertIs(Category.parse(" lunch "), Category.MEAL)
        self.assertIs(Category.parse("Hotel"), Category.LODGING)
        self.assertIs(Category.parse("sightseeing"), Category.ATTRACTION)
        self.assertIs(Category.parse("Gas Station"), Category.OTHER)
        self.assertIs(Category.parse(None), Category.OTHER)
        self.assertIs(Category.parse(Category.MEAL), Category.MEAL)

    def test_stop_normalises_string_category(self):
        self.assertTrue(Stop(id="l", name="Lunch", category="meal").is_meal)
        self.assertTrue(Stop(id="d", name="Diner", category="Food").is_meal)
        hotel = Stop(id="h", name="Inn", category="Hotel")
        self.assertIs(hotel.category, Category.LODGING)
        self.assertFalse(hotel.is_meal)


class TestOptimizationResult(unittest.TestCase):
    def test_applied_and_improvement(self):
        a, b = Stop(id="a", name="A", order=0), Stop(id="b", name="B", order=1)
        day = Day(stops=(a, b), date=date(2026, 6, 1))
        result = OptimizationResult(original_order=(a, b), proposed_order=(b, a),
                                    total_distance_before=10.0, total_distance_after=7.5)
        self.assertEqual(result.improvement, 2.5)
        self.assertFalse(result.degraded)
        self.assertEqual([s.id for s in result.applied(day).stops], ["b", "a"])
        self.assertEqual([s.id for s in day.stops], ["a", "b"])


if __name__ == "__main__":
    unittest.main()

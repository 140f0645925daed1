import unittest
from datetime import time
from unittest import mock

from roadtrip.config import OptimizationConfig, get_osrm_config, parse_time_string
from roadtrip.errors import InvalidInput


class TestOptimizationConfig(unittest.TestCase):
    def test_defaults(self):
        config = OptimizationConfig()
        self.assertEqual(config.route_cache_capacity, 100)
        self.assertEqual(config.coordinate_cache_capacity, 200)
        self.assertEqual(config.route_cache_ttl_days, 7)
        self.assertEqual(config.coordinate_cache_ttl_days, 30)
        self.assertTrue(4 <= config.meal_window_hours <= 5)
        self.assertTrue(10 <= config.provider_timeout_seconds <= 15)

    def test_from_env(self):
        config = OptimizationConfig.from_env({
            "ROADTRIP_MEAL_WINDOW_HOURS": "5",
            "ROADTRIP_ROUTE_CACHE_CAPACITY": "10",
            "ROADTRIP_DAY_START": "07:30",
            "ROADTRIP_PREFETCH_MATRIX": "true",
            "ROADTRIP_FREE_STOP_ASSIGNMENT": "detour",
            "UNRELATED": "ignored",
        })
        self.assertEqual(config.meal_window_hours, 5.0)
        self.assertEqual(config.route_cache_capacity, 10)
        self.assertEqual(config.day_start, time(7, 30))
        self.assertTrue(config.prefetch_matrix)
        self.assertEqual(config.free_stop_assignment, "detour")

    def test_from_env_rejects_bad_numbers(self):
        with self.assertRaises(InvalidInput):
            OptimizationConfig.from_env({"ROADTRIP_PROVIDER_TIMEOUT_SECONDS": "soon"})

    def test_rejects_non_positive_values(self):
        with self.assertRaises(InvalidInput):
            OptimizationConfig(route_cache_capacity=0)
        with self.assertRaises(InvalidInput):
            OptimizationConfig(provider_retries=-1)

    def test_rejects_unknown_assignment(self):
        with self.assertRaises(InvalidInput):
            OptimizationConfig(free_stop_assignment="random")

    def test_day_start_string(self):
        self.assertEqual(OptimizationConfig(day_start="09:15").day_start, time(9, 15))
        with self.assertRaises(InvalidInput):
            parse_time_string("nine")

    def test_osrm_config_from_environment(self):
        with mock.patch.dict("os.environ", {"ROADTRIP_OSRM_URL": "http://localhost:5000"}):
            self.assertEqual(get_osrm_config()["base_url"], "http://localhost:5000")


if __name__ == "__main__":
    unittest.main()

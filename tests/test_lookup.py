import dataclasses
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from roadtrip.cache import RouteCache
from roadtrip.config import OptimizationConfig
from roadtrip.errors import OptimizationCancelled, ProviderUnavailable
from roadtrip.lookup import DistanceLookup
from roadtrip.routing import haversine_distance
from tests.fakes import EuclideanProvider, FailingProvider, FlakyProvider, SlowProvider

A = (35.0, 139.0)
B = (35.1, 139.2)
C = (35.3, 139.1)


class TestDistanceLookup(unittest.TestCase):
    def setUp(self):
        self.executor = ThreadPoolExecutor(max_workers=2)
        self.cache = RouteCache()
        self.config = OptimizationConfig(retry_backoff_seconds=0, provider_timeout_seconds=2)

    def tearDown(self):
        self.executor.shutdown(wait=False)

    def lookup(self, provider, **overrides):
        config = dataclasses.replace(self.config, **overrides)
        return DistanceLookup(provider, self.cache, config, self.executor)

    def test_miss_populates_cache(self):
        provider = EuclideanProvider()
        lookup = self.lookup(provider)
        leg = lookup.leg(A, B)
        self.assertFalse(leg.degraded)
        self.assertEqual(self.cache.get(A, B).distance, leg.distance)
        lookup.leg(A, B)
        self.assertEqual(len(provider.calls), 1)

    def test_cache_hit_skips_provider(self):
        self.cache.put(A, B, 12.0, 600.0)
        provider = EuclideanProvider()
        self.assertEqual(self.lookup(provider).distance(A, B), 12.0)
        self.assertEqual(provider.calls, [])

    def test_same_coordinate_is_free(self):
        provider = EuclideanProvider()
        self.assertEqual(self.lookup(provider).leg(A, A).distance, 0.0)
        self.assertEqual(provider.calls, [])

    def test_retry_recovers(self):
        provider = FlakyProvider(failures=1)
        lookup = self.lookup(provider, provider_retries=1)
        leg = lookup.leg(A, B)
        self.assertFalse(leg.degraded)
        self.assertEqual(provider.attempts, 2)
        self.assertEqual(lookup.degraded_pairs, [])

    def test_no_retry_falls_back(self):
        provider = FlakyProvider(failures=1)
        lookup = self.lookup(provider, provider_retries=0)
        self.assertTrue(lookup.leg(A, B).degraded)
        self.assertEqual(provider.attempts, 1)

    def test_fallback_penalty(self):
        lookup = self.lookup(FailingProvider(), provider_retries=1, fallback_penalty_km=50)
        leg = lookup.leg(A, B)
        straight = haversine_distance(A, B)
        self.assertTrue(leg.degraded)
        self.assertAlmostEqual(leg.distance, straight + 50)
        self.assertAlmostEqual(leg.duration, straight / 40.0 * 3600.0)

    def test_fallback_is_not_cached_and_listed_once(self):
        provider = FailingProvider()
        lookup = self.lookup(provider, provider_retries=1)
        lookup.leg(A, B)
        lookup.leg(A, B)
        self.assertIsNone(self.cache.get(A, B))
        self.assertEqual(lookup.degraded_pairs, [(A, B)])
        # the second lookup reuses the fallback without calling the provider
        self.assertEqual(provider.calls, 2)

    def test_timeout_falls_back(self):
        provider = SlowProvider(delay=0.5)
        lookup = self.lookup(provider, provider_timeout_seconds=0.05, provider_retries=0)
        self.assertTrue(lookup.leg(A, B).degraded)
        self.assertEqual(lookup.degraded_pairs, [(A, B)])

    def test_unexpected_exception_counts_as_unavailable(self):
        class Broken(EuclideanProvider):
            def distance_and_duration(self, origin, destination):
                raise KeyError("routes")

        lookup = self.lookup(Broken(), provider_retries=0)
        self.assertTrue(lookup.leg(A, B).degraded)

    def test_repeated_failures_stop_calling_provider(self):
        provider = FailingProvider(ProviderUnavailable)
        lookup = self.lookup(provider, provider_retries=1, max_consecutive_failures=3)
        lookup.leg(A, B)
        lookup.leg(B, C)
        lookup.leg(C, A)
        self.assertTrue(lookup.provider_down)
        self.assertEqual(provider.calls, 3)
        self.assertEqual(len(lookup.degraded_pairs), 3)

    def test_success_resets_failure_count(self):
        provider = FlakyProvider(failures=2)
        lookup = self.lookup(provider, provider_retries=0, max_consecutive_failures=3)
        lookup.leg(A, B)
        lookup.leg(B, C)
        self.assertFalse(lookup.leg(C, A).degraded)
        self.assertFalse(lookup.provider_down)

    def test_cancelled_lookup_raises(self):
        provider = EuclideanProvider()
        event = threading.Event()
        lookup = DistanceLookup(provider, self.cache, self.config, self.executor, event)
        self.cache.put(A, B, 1.0, 60.0)
        event.set()
        # cached answers are still served
        self.assertEqual(lookup.distance(A, B), 1.0)
        with self.assertRaises(OptimizationCancelled):
            lookup.leg(B, C)
        self.assertEqual(provider.calls, [])


if __name__ == "__main__":
    unittest.main()

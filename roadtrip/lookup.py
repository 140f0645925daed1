"""
Cached, time-bounded distance lookups for one optimisation run.

``DistanceLookup`` answers "how far from A to B" by checking the shared
``RouteCache`` first and otherwise asking the ``DistanceProvider`` on a
worker thread, waiting at most ``provider_timeout_seconds``. A failed
call is retried with a short backoff; when retries run out a fallback
leg (straight-line distance plus a fixed penalty) is used and the pair
is recorded as degraded. Fallback legs are kept for the rest of the run
but never written to the shared cache. After
``max_consecutive_failures`` failed calls in a row the provider is
skipped for the rest of the run.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Dict, List, Optional, Tuple

from roadtrip.cache import RouteCache
from roadtrip.config import OptimizationConfig
from roadtrip.errors import OptimizationCancelled, ProviderError, ProviderTimeout, ProviderUnavailable
from roadtrip.models import Coordinate, Leg
from roadtrip.routing import haversine_distance

logger = logging.getLogger(__name__)


class DistanceLookup:
    def __init__(
        self,
        provider,
        cache: Optional[RouteCache],
        config: OptimizationConfig,
        executor: Executor,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.config = config
        self.executor = executor
        self.cancel_event = cancel_event or threading.Event()
        self.degraded_pairs: List[Tuple[Coordinate, Coordinate]] = []
        self._fallbacks: Dict[tuple, Leg] = {}
        self._consecutive_failures = 0
        self.provider_down = False
        self.provider_calls = 0

    def distance(self, origin, destination) -> float:
        return self.leg(origin, destination).distance

    def leg(self, origin, destination) -> Leg:
        key = RouteCache.key(origin, destination)
        if key[0] == key[1]:
            return Leg(0.0, 0.0)
        if key in self._fallbacks:
            return self._fallbacks[key]
        if self.cache is not None:
            cached = self.cache.get(origin, destination)
            if cached is not None:
                return cached
        if self.provider is None or self.provider_down:
            return self._fallback(origin, destination, None)

        attempts = 1 + self.config.provider_retries
        last_error: Optional[ProviderError] = None
        for attempt in range(attempts):
            if self.cancel_event.is_set():
                raise OptimizationCancelled("Optimisation cancelled before lookup")
            try:
                leg = self._call(origin, destination)
            except ProviderError as exc:
                last_error = exc
                self._consecutive_failures += 1
                if self._consecutive_failures >= self.config.max_consecutive_failures:
                    logger.warning(
                        f"Routing provider failed {self._consecutive_failures} times in a row; "
                        "using fallback estimates for the rest of this run"
                    )
                    self.provider_down = True
                    break
            else:
                self._consecutive_failures = 0
                if self.cache is not None:
                    self.cache.put(origin, destination, leg.distance, leg.duration)
                return leg
            if attempt < attempts - 1:
                logger.debug(f"Retrying lookup {origin} -> {destination} after: {last_error}")
                # wait() returns early when the run is cancelled
                self.cancel_event.wait(self.config.retry_backoff_seconds)
        return self._fallback(origin, destination, last_error)

    def _call(self, origin, destination) -> Leg:
        self.provider_calls += 1
        future = self.executor.submit(self.provider.distance_and_duration, origin, destination)
        try:
            result = future.result(timeout=self.config.provider_timeout_seconds)
        except FutureTimeout as exc:
            future.cancel()
            raise ProviderTimeout(
                f"Lookup {origin} -> {destination} exceeded {self.config.provider_timeout_seconds}s"
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderUnavailable(f"Lookup {origin} -> {destination} failed: {exc}") from exc
        distance, duration = result[0], result[1]
        return Leg(float(distance), float(duration))

    def _fallback(self, origin, destination, error: Optional[ProviderError]) -> Leg:
        straight = haversine_distance(origin, destination)
        leg = Leg(
            straight + self.config.fallback_penalty_km,
            straight / self.config.fallback_speed_kmh * 3600.0,
            degraded=True,
        )
        self._fallbacks[RouteCache.key(origin, destination)] = leg
        self.degraded_pairs.append((Coordinate(*origin), Coordinate(*destination)))
        if error is not None:
            logger.warning(f"Using fallback estimate for {origin} -> {destination}: {error}")
        return leg

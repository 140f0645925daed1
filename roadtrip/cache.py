"""
In-memory caches used by the route optimiser.

``RouteCache`` stores travel distance and duration per directional
coordinate pair, ``CoordinateCache`` stores geocoded coordinates per
location text. Both expire entries after a TTL, hold a bounded number of
entries (evicting the oldest insertion first) and guard mutation with a
lock so concurrent optimisations can share them.

Example usage:

    routes = RouteCache(capacity=100, ttl=timedelta(days=7))
    routes.put((35.6586, 139.7454), (35.6812, 139.7671), 2.9, 540.0)
    leg = routes.get((35.6586, 139.7454), (35.6812, 139.7671))
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from datetime import timedelta
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from roadtrip.config import OptimizationConfig
from roadtrip.errors import GeocodeNotFound
from roadtrip.models import Coordinate, Leg

logger = logging.getLogger(__name__)

KEY_PRECISION = 5  # ~1 m at the equator


class _ExpiringCache:
    """Insertion-ordered mapping with a TTL and a size bound."""

    def __init__(self, capacity: int, ttl: timedelta, clock: Callable[[], float] = time.time):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.ttl_seconds = ttl.total_seconds()
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def _put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = (value, self._clock())
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted oldest cache entry {evicted!r}")

    def purge_expired(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl_seconds]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def info(self) -> Dict[str, Any]:
        """Cache information for monitoring."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _normalise_coordinate(coord) -> Tuple[float, float]:
    lat, lon = coord
    return round(float(lat), KEY_PRECISION), round(float(lon), KEY_PRECISION)


class RouteCache(_ExpiringCache):
    """Distance/duration cache keyed by an ordered ``(from, to)`` pair.

    Keys are directional: the backend may route A to B differently from
    B to A (one-way streets), so a lookup never answers the reverse pair.
    """

    def __init__(self, capacity: int = 100, ttl: timedelta = timedelta(days=7),
                 clock: Callable[[], float] = time.time):
        super().__init__(capacity, ttl, clock)

    @classmethod
    def from_config(cls, config: OptimizationConfig, clock: Callable[[], float] = time.time) -> "RouteCache":
        return cls(config.route_cache_capacity, timedelta(days=config.route_cache_ttl_days), clock)

    @staticmethod
    def key(origin, destination) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        return _normalise_coordinate(origin), _normalise_coordinate(destination)

    def get(self, origin, destination) -> Optional[Leg]:
        leg = self._get(self.key(origin, destination))
        if leg is not None:
            logger.debug(f"Route cache hit {origin} -> {destination}")
        return leg

    def put(self, origin, destination, distance: float, duration: float) -> None:
        self._put(self.key(origin, destination), Leg(float(distance), float(duration)))

    def __contains__(self, pair) -> bool:
        origin, destination = pair
        with self._lock:
            entry = self._entries.get(self.key(origin, destination))
            return entry is not None and self._clock() - entry[1] <= self.ttl_seconds


class CoordinateCache(_ExpiringCache):
    """Geocoded coordinates keyed by normalised location text.

    ``resolve`` consults the injected geocoder on a miss. Concurrent misses
    on the same text may both reach the geocoder; the last write wins.
    """

    def __init__(self, geocoder=None, capacity: int = 200, ttl: timedelta = timedelta(days=30),
                 clock: Callable[[], float] = time.time):
        super().__init__(capacity, ttl, clock)
        self.geocoder = geocoder

    @classmethod
    def from_config(cls, config: OptimizationConfig, geocoder=None,
                    clock: Callable[[], float] = time.time) -> "CoordinateCache":
        return cls(geocoder, config.coordinate_cache_capacity,
                   timedelta(days=config.coordinate_cache_ttl_days), clock)

    @staticmethod
    def key(text: str) -> str:
        return (text or "").strip().lower()

    def get(self, text: str) -> Optional[Coordinate]:
        return self._get(self.key(text))

    def put(self, text: str, coordinate) -> None:
        lat, lon = coordinate
        self._put(self.key(text), Coordinate(float(lat), float(lon)))

    def resolve(self, text: str) -> Coordinate:
        """Return the coordinate for ``text``, geocoding it on a miss.

        Raises:
            GeocodeNotFound: if the text is blank, no geocoder is
                configured, or the geocoder cannot resolve it.
        """
        key = self.key(text)
        if not key:
            raise GeocodeNotFound("Empty location text")
        cached = self.get(text)
        if cached is not None:
            logger.debug(f"Using cached coordinates for {text!r}")
            return cached
        if self.geocoder is None:
            raise GeocodeNotFound(f"No geocoder configured to resolve {text!r}")
        lat, lon = self.geocoder.resolve(text)
        coordinate = Coordinate(float(lat), float(lon))
        self._put(key, coordinate)
        logger.info(f"Geocoded {text!r} to {coordinate[0]:.5f}, {coordinate[1]:.5f}")
        return coordinate

"""
RoadTrip route optimisation package.

This package reorders the stops of a single trip day to shorten travel
while keeping stops with fixed times in chronological order. Components
include distance lookup, geocoding, caching, scheduling, constraint
checking and meal suggestions.

Modules:
    models       – Stop, Day and result data types.
    config       – OptimizationConfig and environment loading.
    cache        – TTL and size bounded route and coordinate caches.
    routing      – Distance providers backed by OSRM or Haversine estimates.
    geocode      – Geocoders resolving location text via Nominatim.
    lookup       – Cached, time-bounded distance lookups with fallbacks.
    schedule     – Arrival/departure timelines for a visiting order.
    constraints  – Fixed-time constraint checks.
    meals        – Pluggable meal insertion policies.
    optimisation – Anchored nearest neighbour optimiser.

The heuristics here produce good orders quickly but do not guarantee an
optimal tour.
"""

from roadtrip.cache import CoordinateCache, RouteCache
from roadtrip.config import OptimizationConfig
from roadtrip.errors import (
    GeocodeNotFound,
    InvalidInput,
    OptimizationCancelled,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    RoadTripError,
)
from roadtrip.models import Category, Coordinate, Day, OptimizationResult, Stop
from roadtrip.optimisation import OptimizationTask, RouteOptimizer, optimize

__all__ = [
    "Category",
    "Coordinate",
    "CoordinateCache",
    "Day",
    "GeocodeNotFound",
    "InvalidInput",
    "OptimizationCancelled",
    "OptimizationConfig",
    "OptimizationResult",
    "OptimizationTask",
    "ProviderError",
    "ProviderTimeout",
    "ProviderUnavailable",
    "RoadTripError",
    "RouteCache",
    "RouteOptimizer",
    "Stop",
    "optimize",
]

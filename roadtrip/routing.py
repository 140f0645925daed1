"""
Distance providers for RoadTrip.

This module wraps network calls to OSRM (Open Source Routing Machine)
to look up the travel distance and duration between two coordinates.
A Haversine provider with mode-specific speed factors serves as an
offline alternative and as the basis for fallback estimates when the
routing backend fails.

Example usage:

    provider = OSRMDistanceProvider(profile="driving", timeout=12)
    leg = provider.distance_and_duration((35.6586, 139.7454), (35.6895, 139.6917))
    print(leg.distance, leg.duration)  # km, seconds

Distances are always kilometres and durations seconds.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import requests

from roadtrip.config import get_osrm_config
from roadtrip.errors import ProviderError, ProviderTimeout, ProviderUnavailable
from roadtrip.models import Leg

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
MODE_SPEEDS_KMH = {"walk": 5.0, "drive": 40.0}


def haversine_distance(coord1: Tuple[float, float], coord2: Tuple[float, float]) -> float:
    """Compute the great‑circle distance between two coordinates in kilometers."""
    lat1, lon1 = coord1
    lat2, lon2 = coord2
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def compute_haversine_matrix(coords: Sequence[Tuple[float, float]], speed_kmh: float) -> Tuple[List[List[float]], List[List[float]]]:
    """Compute distance and duration matrices using the Haversine formula.

    Args:
        coords: List of (lat, lon) tuples.
        speed_kmh: Assumed constant travel speed in km/h.

    Returns:
        Tuple of (distance_matrix_km, duration_matrix_s).
    """
    n = len(coords)
    dist_matrix = [[0.0] * n for _ in range(n)]
    dur_matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            dist = haversine_distance(coords[i], coords[j])
            dist_matrix[i][j] = dist
            dur_matrix[i][j] = dist / speed_kmh * 3600.0
    return dist_matrix, dur_matrix


class DistanceProvider:
    """Interface for anything that can measure travel between two points.

    Implementations raise ``ProviderTimeout`` or ``ProviderUnavailable``
    on failure. They may also offer ``matrix(coords)`` returning
    ``(distance_matrix_km, duration_matrix_s)`` for bulk lookups.
    """

    def distance_and_duration(self, origin: Tuple[float, float], destination: Tuple[float, float]) -> Leg:
        raise NotImplementedError


class HaversineDistanceProvider(DistanceProvider):
    """Straight-line estimate at a constant speed. Never fails."""

    def __init__(self, mode: str = "drive", speed_kmh: Optional[float] = None):
        self.speed_kmh = speed_kmh if speed_kmh is not None else MODE_SPEEDS_KMH.get(mode, MODE_SPEEDS_KMH["drive"])

    def distance_and_duration(self, origin, destination) -> Leg:
        dist = haversine_distance(origin, destination)
        return Leg(dist, dist / self.speed_kmh * 3600.0)

    def matrix(self, coords):
        return compute_haversine_matrix(coords, self.speed_kmh)


class OSRMDistanceProvider(DistanceProvider):
    """Distance lookups against an OSRM server.

    The public demo server is rate limited; run your own OSRM instance
    and point ``ROADTRIP_OSRM_URL`` at it for anything beyond testing.
    """

    def __init__(self, base_url: Optional[str] = None, profile: Optional[str] = None,
                 timeout: float = 12.0, session: Optional[requests.Session] = None):
        cfg = get_osrm_config()
        self.base_url = (base_url or cfg["base_url"]).rstrip("/")
        self.profile = profile or cfg["profile"]
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, service: str, coords: Sequence[Tuple[float, float]], params: dict) -> dict:
        # OSRM expects lon,lat order and semicolon separated list
        locs = ";".join([f"{lon},{lat}" for lat, lon in coords])
        url = f"{self.base_url}/{service}/v1/{self.profile}/{locs}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ProviderTimeout(f"OSRM {service} request timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"OSRM {service} request failed: {exc}") from exc
        if resp.status_code != 200:
            raise ProviderUnavailable(f"OSRM {service} returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderUnavailable(f"OSRM {service} returned invalid JSON") from exc
        if data.get("code") != "Ok":
            raise ProviderUnavailable(f"OSRM {service} error: {data.get('code')} {data.get('message', '')}".strip())
        return data

    def distance_and_duration(self, origin, destination) -> Leg:
        data = self._get("route", [origin, destination], {"overview": "false"})
        routes = data.get("routes") or []
        if not routes:
            raise ProviderUnavailable(f"OSRM found no route from {origin} to {destination}")
        route = routes[0]
        # OSRM returns distances in meters and durations in seconds
        return Leg(route["distance"] / 1000.0, float(route["duration"]))

    def matrix(self, coords: Sequence[Tuple[float, float]]) -> Tuple[List[List[float]], List[List[float]]]:
        """Call the OSRM table service for all ordered pairs of ``coords``.

        Unroutable pairs come back as ``inf``.
        """
        if not coords:
            return [], []
        data = self._get("table", coords, {"annotations": "distance,duration"})
        dist_matrix = [[d / 1000.0 if d is not None else float('inf') for d in row] for row in data.get("distances", [])]
        dur_matrix = [[t if t is not None else float('inf') for t in row] for row in data.get("durations", [])]
        return dist_matrix, dur_matrix


def warm_route_cache(cache, provider, coords: Sequence[Tuple[float, float]]) -> int:
    """Fill ``cache`` with every ordered pair of ``coords`` using one matrix call.

    Returns the number of pairs stored. Pairs already cached and pairs the
    backend could not route are skipped. A provider without ``matrix``
    or a failing matrix call stores nothing; per-pair lookups then take
    over.
    """
    matrix = getattr(provider, "matrix", None)
    unique = list(dict.fromkeys(tuple(c) for c in coords))
    if matrix is None or len(unique) < 2:
        return 0
    missing = [(i, j) for i in range(len(unique)) for j in range(len(unique))
               if i != j and (unique[i], unique[j]) not in cache]
    if not missing:
        return 0
    try:
        dist_matrix, dur_matrix = matrix(unique)
    except ProviderError as exc:
        logger.warning(f"Matrix prefetch failed, falling back to pairwise lookups: {exc}")
        return 0
    stored = 0
    for i, j in missing:
        dist, dur = dist_matrix[i][j], dur_matrix[i][j]
        if math.isfinite(dist) and math.isfinite(dur):
            cache.put(unique[i], unique[j], dist, dur)
            stored += 1
    logger.info(f"Prefetched {stored} route legs for {len(unique)} locations")
    return stored

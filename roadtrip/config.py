"""Configuration for the route optimisation engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import time
from typing import Dict, Optional

from dotenv import load_dotenv

from roadtrip.errors import InvalidInput

ENV_PREFIX = "ROADTRIP_"
ASSIGNMENT_MODES = ("position", "detour")


def parse_time_string(t: str) -> time:
    """Parse a HH:MM formatted time string into a datetime.time object."""
    try:
        h, m = map(int, t.strip().split(":"))
        return time(hour=h, minute=m)
    except (ValueError, AttributeError) as exc:
        raise InvalidInput(f"Invalid time of day {t!r}, expected HH:MM") from exc


@dataclass
class OptimizationConfig:
    meal_window_hours: float = 4.5
    route_cache_ttl_days: float = 7.0
    coordinate_cache_ttl_days: float = 30.0
    route_cache_capacity: int = 100
    coordinate_cache_capacity: int = 200
    provider_timeout_seconds: float = 12.0
    provider_retries: int = 1
    retry_backoff_seconds: float = 0.5
    fallback_penalty_km: float = 50.0
    fallback_speed_kmh: float = 40.0
    max_consecutive_failures: int = 3
    tie_epsilon_km: float = 1e-6
    anchor_tolerance_minutes: float = 0.0
    day_start: time = time(8, 0)
    free_stop_assignment: str = "position"
    prefetch_matrix: bool = False

    def __post_init__(self):
        positive = (
            "meal_window_hours",
            "route_cache_ttl_days",
            "coordinate_cache_ttl_days",
            "route_cache_capacity",
            "coordinate_cache_capacity",
            "provider_timeout_seconds",
            "fallback_speed_kmh",
            "max_consecutive_failures",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise InvalidInput(f"{name} must be positive, got {getattr(self, name)!r}")
        non_negative = (
            "provider_retries",
            "retry_backoff_seconds",
            "fallback_penalty_km",
            "tie_epsilon_km",
            "anchor_tolerance_minutes",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise InvalidInput(f"{name} must not be negative, got {getattr(self, name)!r}")
        if self.free_stop_assignment not in ASSIGNMENT_MODES:
            raise InvalidInput(
                f"free_stop_assignment must be one of {', '.join(ASSIGNMENT_MODES)}"
            )
        if isinstance(self.day_start, str):
            self.day_start = parse_time_string(self.day_start)

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "OptimizationConfig":
        """Build a config from ``ROADTRIP_*`` environment variables.

        ``.env`` is loaded first when no explicit mapping is given, so
        ``ROADTRIP_MEAL_WINDOW_HOURS=5`` in either place overrides the
        default meal window.
        """
        if env is None:
            load_dotenv()
            env = os.environ
        values = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        return cls(**values)


def _coerce(name: str, raw: str, default):
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as exc:
        raise InvalidInput(f"{ENV_PREFIX}{name.upper()} has invalid value {raw!r}") from exc
    if isinstance(default, time):
        return parse_time_string(raw)
    return raw.strip()


def get_osrm_config():
    """Get OSRM routing backend configuration."""
    load_dotenv()
    return {
        "base_url": os.getenv("ROADTRIP_OSRM_URL", "https://router.project-osrm.org"),
        "profile": os.getenv("ROADTRIP_OSRM_PROFILE", "driving"),
    }


def get_nominatim_user_agent():
    """Get the user agent sent to Nominatim."""
    load_dotenv()
    return os.getenv("ROADTRIP_NOMINATIM_USER_AGENT", "roadtrip_optimizer")

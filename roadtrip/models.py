"""
Data model for the RoadTrip optimisation engine.

Stops and days are immutable. The optimiser never changes the ``Day`` it
is given; it returns an ``OptimizationResult`` holding renumbered copies
of the stops, and the caller decides whether to apply it.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple


class Coordinate(NamedTuple):
    """A (latitude, longitude) pair in decimal degrees."""

    lat: float
    lon: float

    def is_valid(self) -> bool:
        if not (math.isfinite(self.lat) and math.isfinite(self.lon)):
            return False
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lon <= 180.0


class Category(Enum):
    MEAL = "meal"
    ATTRACTION = "attraction"
    LODGING = "lodging"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "Category":
        """Map a category label from the trip data onto a ``Category``.

        The planner stores free-form labels such as ``"Food"`` or
        ``"Hotel"``; anything unrecognised becomes ``OTHER``.
        """
        if isinstance(value, Category):
            return value
        label = str(value or "").strip().lower()
        if label in ("meal", "food", "restaurant", "breakfast", "lunch", "dinner", "coffee"):
            return cls.MEAL
        if label in ("attraction", "sight", "sightseeing"):
            return cls.ATTRACTION
        if label in ("lodging", "hotel", "motel", "campground"):
            return cls.LODGING
        return cls.OTHER


@dataclass(frozen=True)
class Stop:
    id: str
    name: str
    coordinate: Optional[Coordinate] = None
    category: Category = Category.OTHER
    fixed_time: Optional[time] = None
    visit_duration: timedelta = timedelta(hours=1)
    order: int = 0
    location: Optional[str] = None

    def __post_init__(self):
        # accept the planner's free-form labels ("Food", "Hotel", ...)
        if not isinstance(self.category, Category):
            object.__setattr__(self, "category", Category.parse(self.category))

    @property
    def is_anchor(self) -> bool:
        return self.fixed_time is not None

    @property
    def is_meal(self) -> bool:
        return self.category is Category.MEAL


@dataclass(frozen=True)
class Day:
    stops: Tuple[Stop, ...]
    date: date
    start_coordinate: Optional[Coordinate] = None
    start_time: Optional[time] = None

    def at(self, clock: time) -> datetime:
        """Combine a time of day with this day's date."""
        return datetime.combine(self.date, clock)

    def with_stops(self, stops) -> "Day":
        return dataclasses.replace(self, stops=tuple(stops))


class Leg(NamedTuple):
    """Travel between two coordinates: distance in km, duration in seconds."""

    distance: float
    duration: float
    degraded: bool = False


@dataclass(frozen=True)
class MealSuggestion:
    index: int
    at: datetime
    since_last_meal: timedelta


@dataclass(frozen=True)
class Violation:
    kind: str  # "out_of_order" or "unreachable"
    stop_id: str
    message: str
    lateness: timedelta = timedelta(0)


@dataclass
class OptimizationResult:
    original_order: Tuple[Stop, ...]
    proposed_order: Tuple[Stop, ...]
    total_distance_before: float = 0.0
    total_distance_after: float = 0.0
    meal_suggestions: List[MealSuggestion] = field(default_factory=list)
    degraded_pairs: List[Tuple[Coordinate, Coordinate]] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_pairs)

    @property
    def improvement(self) -> float:
        """Distance saved by the proposed order, in km."""
        return self.total_distance_before - self.total_distance_after

    @property
    def proposed_ids(self) -> List[str]:
        return [stop.id for stop in self.proposed_order]

    def applied(self, day: Day) -> Day:
        """Return a copy of ``day`` with the proposed order in place."""
        return day.with_stops(self.proposed_order)

"""
Schedule calculation utilities for RoadTrip.

This module turns a visiting order into a timeline: arrival and
departure times for each stop given travel durations and visit
durations. Anchored stops (with a fixed time) are waited for when
reached early and flagged as late when reached after their fixed time.
The constraint checker and meal policies both read this timeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from roadtrip.models import Leg, Stop

LegFn = Callable[[Tuple[float, float], Tuple[float, float]], Leg]


@dataclass
class StopSchedule:
    index: int
    stop: Stop
    arrival: datetime
    departure: datetime
    status: str  # "ok", "wait", "late"
    lateness: timedelta = timedelta(0)


def schedule_stops(
    stops: Sequence[Stop],
    leg: LegFn,
    day_start: datetime,
    start_coordinate: Optional[Tuple[float, float]] = None,
) -> List[StopSchedule]:
    """Generate a timeline for a day's stops in the given order.

    Args:
        stops: Stops in visiting order.
        leg: Callable returning the travel ``Leg`` between two coordinates.
        day_start: When the day begins at ``start_coordinate``.
        start_coordinate: Where the day begins. ``None`` means the first
            resolved stop is reached without travel.

    Returns:
        A list of ``StopSchedule`` objects, one per stop, in order.
        Stops without a coordinate add their visit duration but no travel.
    """
    current_time = day_start
    current_coord = start_coordinate
    schedule: List[StopSchedule] = []
    for idx, stop in enumerate(stops):
        if stop.coordinate is not None:
            if current_coord is not None:
                current_time += timedelta(seconds=leg(current_coord, stop.coordinate).duration)
            current_coord = stop.coordinate
        arrival_time = current_time
        status = "ok"
        lateness = timedelta(0)
        if stop.fixed_time is not None:
            fixed_dt = datetime.combine(day_start.date(), stop.fixed_time)
            if arrival_time < fixed_dt:
                # Early: wait for the fixed start
                arrival_time = fixed_dt
                status = "wait"
            elif arrival_time > fixed_dt:
                status = "late"
                lateness = arrival_time - fixed_dt
        departure_time = arrival_time + stop.visit_duration
        schedule.append(StopSchedule(index=idx, stop=stop, arrival=arrival_time, departure=departure_time,
                                     status=status, lateness=lateness))
        current_time = departure_time
    return schedule

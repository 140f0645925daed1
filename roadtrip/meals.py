"""
Meal insertion policies.

A policy reads a timeline (see ``roadtrip.schedule``) and suggests where
a meal stop could be added. Suggestions are advisory and the timeline is
never modified. ``RouteOptimizer`` accepts any object with a ``scan``
method, so the rolling-window rule below can be swapped out.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from roadtrip.models import MealSuggestion
from roadtrip.schedule import StopSchedule


class MealInsertionPolicy:
    def scan(self, timeline: Sequence[StopSchedule], day_start: Optional[datetime] = None) -> List[MealSuggestion]:
        raise NotImplementedError


class RollingWindowMealPolicy(MealInsertionPolicy):
    """Suggest a meal whenever more than ``window`` passes without one.

    The clock starts at the day start and restarts when a meal stop ends.
    A suggestion is placed before the first stop whose visit would end
    beyond the window. It is timed at the end of the preceding stop, or
    at the moment the window runs out when that comes first (a single
    stop longer than the window), so no suggestion is ever later than
    ``window`` after the last meal.
    """

    def __init__(self, window: timedelta = timedelta(hours=4.5)):
        if window <= timedelta(0):
            raise ValueError("meal window must be positive")
        self.window = window

    @classmethod
    def hours(cls, hours: float) -> "RollingWindowMealPolicy":
        return cls(timedelta(hours=hours))

    def scan(self, timeline: Sequence[StopSchedule], day_start: Optional[datetime] = None) -> List[MealSuggestion]:
        if not timeline:
            return []
        last_meal = day_start if day_start is not None else timeline[0].arrival
        previous_end = last_meal
        suggestions: List[MealSuggestion] = []
        for entry in timeline:
            if entry.stop.is_meal:
                last_meal = entry.departure
            elif entry.departure - last_meal > self.window and previous_end > last_meal:
                at = min(previous_end, last_meal + self.window)
                suggestions.append(MealSuggestion(entry.index, at, at - last_meal))
                # assume the suggested meal is taken
                last_meal = at
            previous_end = entry.departure

        end = timeline[-1].departure
        if end - last_meal > self.window:
            at = min(end, last_meal + self.window)
            suggestions.append(MealSuggestion(len(timeline), at, at - last_meal))
        return suggestions

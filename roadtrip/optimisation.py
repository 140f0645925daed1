"""
Route optimisation for a single trip day.

``RouteOptimizer.optimize`` proposes a new visiting order for a day's
stops. Stops with a fixed time (anchors) keep their chronological order;
the free stops between each pair of anchors are ordered with the nearest
neighbour heuristic, starting from the coordinate that bounds the run.
The input day is never modified: the result carries renumbered copies of
the stops along with distance totals, meal suggestions, fixed-time
violations and the pairs that had to use fallback distance estimates.

Example usage:

    with RouteOptimizer(provider=OSRMDistanceProvider()) as optimizer:
        task = optimizer.submit(day)
        result = task.result(timeout=120)
        if result.improvement > 0:
            day = result.applied(day)

The heuristic does not guarantee an optimal tour.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from datetime import time, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from roadtrip.cache import CoordinateCache, RouteCache
from roadtrip.config import OptimizationConfig
from roadtrip.constraints import ConstraintChecker
from roadtrip.errors import GeocodeNotFound, InvalidInput, OptimizationCancelled
from roadtrip.lookup import DistanceLookup
from roadtrip.meals import MealInsertionPolicy, RollingWindowMealPolicy
from roadtrip.models import Coordinate, Day, OptimizationResult, Stop
from roadtrip.routing import DistanceProvider, HaversineDistanceProvider, warm_route_cache
from roadtrip.schedule import schedule_stops

logger = logging.getLogger(__name__)

DistanceFn = Callable[[Tuple[float, float], Tuple[float, float]], float]


def select_nearest(
    current: Tuple[float, float],
    candidates: Sequence[Stop],
    distance: DistanceFn,
    epsilon: float = 1e-6,
) -> Stop:
    """Return the candidate closest to ``current``.

    Candidates within ``epsilon`` of the best distance resolve to the one
    appearing first in ``candidates``.
    """
    best: Optional[Stop] = None
    best_distance = math.inf
    for stop in candidates:
        d = distance(current, stop.coordinate)
        if best is None or d < best_distance - epsilon:
            best, best_distance = stop, d
    return best


def nearest_neighbor(
    origin: Optional[Tuple[float, float]],
    stops: Sequence[Stop],
    distance: DistanceFn,
    epsilon: float = 1e-6,
) -> Tuple[Stop, ...]:
    """Construct a visiting order using the nearest neighbor heuristic.

    Args:
        origin: Coordinate the route starts from. ``None`` starts the route
            at the first stop in ``stops``.
        stops: Stops with coordinates, in tie-break priority order.
        distance: Callable returning the distance between two coordinates.
        epsilon: Distances closer than this count as equal.

    Returns:
        A new tuple containing every stop exactly once.
    """
    if not stops:
        return ()
    unvisited = {stop.id for stop in stops}
    route: List[Stop] = []
    current = origin
    if current is None:
        route.append(stops[0])
        unvisited.discard(stops[0].id)
        current = stops[0].coordinate
    while unvisited:
        # choose the nearest unvisited stop
        candidates = [stop for stop in stops if stop.id in unvisited]
        next_stop = select_nearest(current, candidates, distance, epsilon)
        route.append(next_stop)
        unvisited.discard(next_stop.id)
        current = next_stop.coordinate
    return tuple(route)


def path_distance(stops: Sequence[Stop], distance: DistanceFn,
                  start: Optional[Tuple[float, float]] = None) -> float:
    """Sum the distances between consecutive resolved stops, from ``start``."""
    total = 0.0
    current = start
    for stop in stops:
        if stop.coordinate is None:
            continue
        if current is not None:
            total += distance(current, stop.coordinate)
        current = stop.coordinate
    return total


def renumber(stops: Sequence[Stop]) -> Tuple[Stop, ...]:
    return tuple(stop if stop.order == i else dataclasses.replace(stop, order=i)
                 for i, stop in enumerate(stops))


def _check_coordinate(coord, what: str) -> None:
    try:
        valid = Coordinate(*coord).is_valid()
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise InvalidInput(f"{what} has an invalid coordinate {coord!r}")


def _report_progress(progress: Optional[Callable[[float], None]], value: float) -> None:
    logger.debug(f"Optimisation progress {value:.0%}")
    if progress is not None:
        progress(value)


def validate_day(day: Day, start_coordinate=None) -> None:
    """Raise ``InvalidInput`` if ``day`` cannot be optimised."""
    if not isinstance(day, Day):
        raise InvalidInput(f"Expected a Day, got {type(day).__name__}")
    for coord in (start_coordinate, day.start_coordinate):
        if coord is not None:
            _check_coordinate(coord, "Start location")
    seen = set()
    for stop in day.stops:
        if not isinstance(stop, Stop):
            raise InvalidInput(f"Expected Stop objects, got {type(stop).__name__}")
        if not stop.id:
            raise InvalidInput(f"Stop {stop.name!r} has no id")
        if stop.id in seen:
            raise InvalidInput(f"Duplicate stop id {stop.id!r}")
        seen.add(stop.id)
        if not isinstance(stop.visit_duration, timedelta) or stop.visit_duration < timedelta(0):
            raise InvalidInput(f"Stop {stop.id!r} has a negative or invalid visit duration")
        if stop.fixed_time is not None and not isinstance(stop.fixed_time, time):
            raise InvalidInput(f"Stop {stop.id!r} has an invalid fixed time {stop.fixed_time!r}")
        if stop.coordinate is not None:
            _check_coordinate(stop.coordinate, f"Stop {stop.id!r}")


class OptimizationTask:
    """Handle for an optimisation running in the background.

    ``cancel`` stops the run from issuing new distance lookups; lookups
    already in flight finish normally. ``progress`` moves from 0.0 to 1.0
    as the run passes coordinate resolution (0.2), distance lookup setup
    (0.5), ordering (0.7) and completion.
    """

    def __init__(self, future: Optional[Future], cancel_event: threading.Event,
                 on_progress: Optional[Callable[[float], None]] = None):
        self._future = future
        self._cancel_event = cancel_event
        self._on_progress = on_progress
        self.progress = 0.0

    def _report(self, value: float) -> None:
        self.progress = value
        if self._on_progress is not None:
            self._on_progress(value)

    def cancel(self) -> bool:
        if self._future.done():
            return False
        self._cancel_event.set()
        self._future.cancel()
        return True

    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> OptimizationResult:
        """Wait for the result.

        Raises:
            OptimizationCancelled: if the task was cancelled.
            concurrent.futures.TimeoutError: if ``timeout`` elapses first.
        """
        try:
            return self._future.result(timeout)
        except CancelledError as exc:
            raise OptimizationCancelled("Optimisation cancelled before it started") from exc

    def add_done_callback(self, fn: Callable[["OptimizationTask"], None]) -> None:
        self._future.add_done_callback(lambda _: fn(self))


class RouteOptimizer:
    """Reorders a day's stops to shorten travel while keeping anchors in order.

    Caches are injected so several optimisers (or several concurrent runs
    of one optimiser) can share them. When none is given, the optimiser
    creates a private ``RouteCache`` sized by the config.
    """

    def __init__(
        self,
        provider: Optional[DistanceProvider] = None,
        route_cache: Optional[RouteCache] = None,
        coordinate_cache: Optional[CoordinateCache] = None,
        config: Optional[OptimizationConfig] = None,
        meal_policy: Optional[MealInsertionPolicy] = None,
        max_workers: int = 2,
        lookup_workers: int = 4,
    ):
        self.config = config or OptimizationConfig()
        self.provider = provider or HaversineDistanceProvider()
        self.route_cache = route_cache if route_cache is not None else RouteCache.from_config(self.config)
        self.coordinate_cache = coordinate_cache
        self.meal_policy = meal_policy
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="roadtrip-optimize")
        self._lookup_executor = ThreadPoolExecutor(max_workers=lookup_workers, thread_name_prefix="roadtrip-lookup")

    def __enter__(self) -> "RouteOptimizer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self, wait: bool = False) -> None:
        """Shut down worker threads.

        With ``wait=False`` (the default, used by the context manager) the
        call returns at once and queued lookups are dropped. Threads stuck
        in a provider call keep running, and ``concurrent.futures`` joins
        them at interpreter exit, so a provider that never returns will
        hold up shutdown. Providers should carry their own I/O timeout, as
        ``OSRMDistanceProvider`` does. ``wait=True`` blocks until running
        optimisations finish.
        """
        self._executor.shutdown(wait=wait)
        self._lookup_executor.shutdown(wait=wait, cancel_futures=not wait)

    def submit(
        self,
        day: Day,
        start_coordinate: Optional[Tuple[float, float]] = None,
        config: Optional[OptimizationConfig] = None,
        callback: Optional[Callable[[OptimizationTask], None]] = None,
        progress: Optional[Callable[[float], None]] = None,
    ) -> OptimizationTask:
        """Run ``optimize`` on a background thread and return a task handle.

        ``progress`` is called from the worker thread with each new
        progress value; ``task.progress`` holds the latest one.
        """
        cancel_event = threading.Event()
        task = OptimizationTask(None, cancel_event, progress)
        task._future = self._executor.submit(self.optimize, day, start_coordinate, config,
                                             cancel_event, task._report)
        if callback is not None:
            task.add_done_callback(callback)
        return task

    def optimize(
        self,
        day: Day,
        start_coordinate: Optional[Tuple[float, float]] = None,
        config: Optional[OptimizationConfig] = None,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[Callable[[float], None]] = None,
    ) -> OptimizationResult:
        """Propose a visiting order for ``day``.

        Args:
            day: The day to optimise. It is not modified.
            start_coordinate: Where the day begins. Defaults to
                ``day.start_coordinate``.
            config: Overrides the optimiser's config for this call.
            cancel_event: Set it to stop the run from issuing new lookups.
            progress: Called with 0.2 once coordinates are resolved, 0.5 once
                distance lookups are ready (after any matrix prefetch), 0.7
                once the stops are ordered and 1.0 when the result is built.

        Returns:
            An ``OptimizationResult``.

        Raises:
            InvalidInput: if the day is structurally invalid.
            OptimizationCancelled: if ``cancel_event`` is set during the run.
        """
        config = config or self.config
        validate_day(day, start_coordinate)
        start = start_coordinate if start_coordinate is not None else day.start_coordinate
        if start is not None:
            start = Coordinate(*start)
        cancel_event = cancel_event or threading.Event()
        original = tuple(day.stops)
        if not original:
            _report_progress(progress, 1.0)
            return OptimizationResult(original_order=original, proposed_order=original)

        stops, unresolved = self._resolve_coordinates(original)
        _report_progress(progress, 0.2)
        lookup = DistanceLookup(self.provider, self.route_cache, config, self._lookup_executor, cancel_event)
        if config.prefetch_matrix and self.route_cache is not None:
            coords = [s.coordinate for s in stops if s.coordinate is not None]
            warm_route_cache(self.route_cache, self.provider, ([start] if start else []) + coords)
        _report_progress(progress, 0.5)

        proposed = renumber(self._order_stops(stops, start, lookup, config))
        self._check_cancelled(cancel_event)
        _report_progress(progress, 0.7)

        before = path_distance(stops, lookup.distance, start)
        after = path_distance(proposed, lookup.distance, start)

        day_start = day.at(day.start_time or config.day_start)
        checker = ConstraintChecker(lookup.leg, day_start, start,
                                    timedelta(minutes=config.anchor_tolerance_minutes))
        violations = checker.validate(proposed)
        meal_policy = self.meal_policy or RollingWindowMealPolicy.hours(config.meal_window_hours)
        meals = meal_policy.scan(schedule_stops(proposed, lookup.leg, day_start, start), day_start)

        result = OptimizationResult(
            original_order=original,
            proposed_order=proposed,
            total_distance_before=before,
            total_distance_after=after,
            meal_suggestions=meals,
            degraded_pairs=list(lookup.degraded_pairs),
            violations=violations,
            unresolved=unresolved,
        )
        logger.info(
            f"Optimised {day.date}: {len(original)} stops, {before:.1f} km -> {after:.1f} km, "
            f"{len(result.degraded_pairs)} degraded pairs, {lookup.provider_calls} provider calls"
        )
        _report_progress(progress, 1.0)
        return result

    def _resolve_coordinates(self, stops: Sequence[Stop]) -> Tuple[Tuple[Stop, ...], List[str]]:
        resolved: List[Stop] = []
        unresolved: List[str] = []
        for stop in stops:
            if stop.coordinate is not None:
                resolved.append(stop if isinstance(stop.coordinate, Coordinate)
                                else dataclasses.replace(stop, coordinate=Coordinate(*stop.coordinate)))
                continue
            if stop.location and self.coordinate_cache is not None:
                try:
                    coordinate = self.coordinate_cache.resolve(stop.location)
                except GeocodeNotFound as exc:
                    logger.warning(f"Could not optimize {stop.name!r}: {exc}")
                else:
                    resolved.append(dataclasses.replace(stop, coordinate=coordinate))
                    continue
            unresolved.append(stop.id)
            resolved.append(stop)
        return tuple(resolved), unresolved

    def _order_stops(self, stops: Tuple[Stop, ...], start: Optional[Coordinate],
                     lookup: DistanceLookup, config: OptimizationConfig) -> List[Stop]:
        # tie-break priority: original ``order``, then position in the day
        ranked = sorted(stops, key=lambda s: s.order)
        anchors = sorted((s for s in ranked if s.is_anchor), key=lambda s: s.fixed_time)

        # Coordinate each run starts from: the start, then each anchor (or
        # the last known coordinate when an anchor is unresolved).
        origins: List[Optional[Coordinate]] = [start]
        for anchor in anchors:
            origins.append(anchor.coordinate if anchor.coordinate is not None else origins[-1])
        ends: List[Optional[Coordinate]] = [a.coordinate for a in anchors] + [None]

        if config.free_stop_assignment == "detour":
            runs = self._assign_by_detour(ranked, origins, ends, lookup)
        else:
            runs = self._assign_by_position(stops, len(anchors))
        priority: Dict[str, int] = {s.id: i for i, s in enumerate(ranked)}

        ordered: List[Stop] = []
        for k, run in enumerate(runs):
            run = sorted(run, key=lambda s: priority[s.id])
            ordered.extend(nearest_neighbor(origins[k], run, lookup.distance, config.tie_epsilon_km))
            if k < len(anchors):
                ordered.append(anchors[k])

        # Unresolved free stops keep their original position
        for index, stop in enumerate(stops):
            if not stop.is_anchor and stop.coordinate is None:
                ordered.insert(min(index, len(ordered)), stop)
        return ordered

    @staticmethod
    def _assign_by_position(stops: Sequence[Stop], anchor_count: int) -> List[List[Stop]]:
        """A free stop joins the run after the last anchor preceding it in the day."""
        runs: List[List[Stop]] = [[] for _ in range(anchor_count + 1)]
        seen_anchors = 0
        for stop in stops:
            if stop.is_anchor:
                seen_anchors += 1
            elif stop.coordinate is not None:
                runs[seen_anchors].append(stop)
        return runs

    @staticmethod
    def _assign_by_detour(ranked: Sequence[Stop], origins, ends, lookup: DistanceLookup) -> List[List[Stop]]:
        """A free stop joins the run where inserting it adds the least distance."""
        runs: List[List[Stop]] = [[] for _ in origins]
        for stop in ranked:
            if stop.is_anchor or stop.coordinate is None:
                continue
            best_run, best_cost = 0, math.inf
            for k, (prev, nxt) in enumerate(zip(origins, ends)):
                cost = 0.0
                if prev is not None:
                    cost += lookup.distance(prev, stop.coordinate)
                if nxt is not None:
                    cost += lookup.distance(stop.coordinate, nxt)
                    if prev is not None:
                        cost -= lookup.distance(prev, nxt)
                if cost < best_cost - lookup.config.tie_epsilon_km:
                    best_run, best_cost = k, cost
            runs[best_run].append(stop)
        return runs

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise OptimizationCancelled("Optimisation cancelled")


def optimize(
    day: Day,
    start_coordinate: Optional[Tuple[float, float]] = None,
    config: Optional[OptimizationConfig] = None,
    **kwargs,
) -> OptimizationResult:
    """Optimise ``day`` with a short-lived ``RouteOptimizer``.

    Keyword arguments (``provider``, ``route_cache``, ``coordinate_cache``,
    ``meal_policy``) are passed to the optimiser.
    """
    with RouteOptimizer(config=config, **kwargs) as optimizer:
        return optimizer.optimize(day, start_coordinate)

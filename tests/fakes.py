import dataclasses
import math
import threading
import time
from datetime import date, time as clock_time, timedelta

from roadtrip.errors import GeocodeNotFound, ProviderTimeout
from roadtrip.models import Category, Coordinate, Day, Leg, Stop
from roadtrip.routing import DistanceProvider

DAY = date(2026, 6, 1)


def euclid(a, b):
    return math.hypot(a[0] - b[0], a[1] - b[1])


class EuclideanProvider(DistanceProvider):
    """Planar distance between coordinates, one minute of travel per unit."""

    def __init__(self, seconds_per_unit=60.0):
        self.seconds_per_unit = seconds_per_unit
        self.calls = []
        self._lock = threading.Lock()

    def distance_and_duration(self, origin, destination):
        with self._lock:
            self.calls.append((tuple(origin), tuple(destination)))
        d = euclid(origin, destination)
        return Leg(d, d * self.seconds_per_unit)


class FailingProvider(DistanceProvider):
    def __init__(self, error=ProviderTimeout):
        self.error = error
        self.calls = 0

    def distance_and_duration(self, origin, destination):
        self.calls += 1
        raise self.error(f"cannot route {origin} -> {destination}")


class FlakyProvider(EuclideanProvider):
    """Fails the first ``failures`` calls, then behaves like EuclideanProvider."""

    def __init__(self, failures, error=ProviderTimeout):
        super().__init__()
        self.failures = failures
        self.error = error
        self.attempts = 0

    def distance_and_duration(self, origin, destination):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error("temporary failure")
        return super().distance_and_duration(origin, destination)


class SlowProvider(EuclideanProvider):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def distance_and_duration(self, origin, destination):
        time.sleep(self.delay)
        return super().distance_and_duration(origin, destination)


class BlockingProvider(EuclideanProvider):
    """Blocks the first call until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def distance_and_duration(self, origin, destination):
        if not self.started.is_set():
            self.started.set()
            self.release.wait(5)
        return super().distance_and_duration(origin, destination)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def advance(self, seconds):
        self.now += seconds

    def __call__(self):
        return self.now


class FakeGeocoder:
    def __init__(self, places):
        self.places = {k.lower(): Coordinate(*v) for k, v in places.items()}
        self.calls = []

    def resolve(self, text):
        self.calls.append(text)
        try:
            return self.places[text.strip().lower()]
        except KeyError:
            raise GeocodeNotFound(f"No location found for {text!r}")


def stop(stop_id, coord=None, fixed=None, minutes=60, order=0, category=Category.ATTRACTION, location=None):
    fixed_time = None
    if fixed is not None:
        h, m = map(int, fixed.split(":"))
        fixed_time = clock_time(h, m)
    return Stop(
        id=stop_id,
        name=stop_id,
        coordinate=Coordinate(*coord) if coord is not None else None,
        category=category,
        fixed_time=fixed_time,
        visit_duration=timedelta(minutes=minutes),
        order=order,
        location=location,
    )


def make_day(stops, start=(0.0, 0.0), start_time=None):
    numbered = [dataclasses.replace(s, order=i) for i, s in enumerate(stops)]
    return Day(
        stops=tuple(numbered),
        date=DAY,
        start_coordinate=Coordinate(*start) if start is not None else None,
        start_time=start_time,
    )

"""
Fixed-time constraint checks for a proposed visiting order.

Violations are informational. The optimiser attaches them to its result
so the caller can warn about them; nothing here rejects an order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from roadtrip.models import Stop, Violation
from roadtrip.schedule import LegFn, schedule_stops

logger = logging.getLogger(__name__)


class ConstraintChecker:
    def __init__(
        self,
        leg: LegFn,
        day_start: datetime,
        start_coordinate: Optional[Tuple[float, float]] = None,
        tolerance: timedelta = timedelta(0),
    ):
        self.leg = leg
        self.day_start = day_start
        self.start_coordinate = start_coordinate
        self.tolerance = tolerance

    def validate(self, order: Sequence[Stop]) -> List[Violation]:
        """Return every anchor that is out of order or cannot be reached in time.

        An anchor is out of order when an anchor with a later fixed time is
        scheduled before it. It is unreachable when the timeline built from
        the previous anchor (or the day start) arrives later than its fixed
        time plus the tolerance.
        """
        violations: List[Violation] = []
        latest: Optional[Stop] = None
        for stop in order:
            if not stop.is_anchor:
                continue
            if latest is not None and stop.fixed_time < latest.fixed_time:
                violations.append(Violation(
                    kind="out_of_order",
                    stop_id=stop.id,
                    message=(f"{stop.name} at {stop.fixed_time:%H:%M} is scheduled after "
                             f"{latest.name} at {latest.fixed_time:%H:%M}"),
                ))
            if latest is None or stop.fixed_time >= latest.fixed_time:
                latest = stop

        for entry in schedule_stops(order, self.leg, self.day_start, self.start_coordinate):
            if entry.status == "late" and entry.lateness > self.tolerance:
                minutes = entry.lateness.total_seconds() / 60.0
                violations.append(Violation(
                    kind="unreachable",
                    stop_id=entry.stop.id,
                    message=f"{entry.stop.name} is reached {minutes:.0f} min after {entry.stop.fixed_time:%H:%M}",
                    lateness=entry.lateness,
                ))
        if violations:
            logger.info(f"Found {len(violations)} fixed-time violations")
        return violations

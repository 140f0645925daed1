"""
Exception types for the RoadTrip optimisation engine.

Provider and geocoder failures are absorbed by the optimiser and turned
into degraded or flagged results. ``InvalidInput`` is the only error a
caller of ``optimize`` is expected to handle.
"""

from __future__ import annotations


class RoadTripError(Exception):
    """Base class for all errors raised by this package."""


class ProviderError(RoadTripError):
    """A distance lookup failed."""


class ProviderTimeout(ProviderError):
    """A distance lookup did not complete within the configured timeout."""


class ProviderUnavailable(ProviderError):
    """The routing backend could not be reached or returned an error."""


class GeocodeNotFound(RoadTripError):
    """Free-form location text could not be resolved to a coordinate."""


class InvalidInput(RoadTripError, ValueError):
    """The day or configuration passed in is structurally invalid."""


class OptimizationCancelled(RoadTripError):
    """The optimisation was cancelled before it completed."""

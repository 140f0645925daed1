"""
Geocoding utilities for RoadTrip.

This module provides a thin wrapper around the `geopy` library to
convert free‑form location text into geographic coordinates. It uses
OpenStreetMap's Nominatim service via geopy's API. Caching lives in
``roadtrip.cache.CoordinateCache``, which calls ``resolve`` on a miss.

Example usage:

    from roadtrip.geocode import NominatimGeocoder
    lat, lon = NominatimGeocoder().resolve("Tokyo Tower")

``resolve`` raises ``GeocodeNotFound`` if the text cannot be geocoded.
"""

from __future__ import annotations

import logging
from typing import Optional

from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

from roadtrip.config import get_nominatim_user_agent
from roadtrip.errors import GeocodeNotFound
from roadtrip.models import Coordinate

logger = logging.getLogger(__name__)


class Geocoder:
    """Interface for resolving location text to a coordinate."""

    def resolve(self, text: str) -> Coordinate:
        raise NotImplementedError


class NominatimGeocoder(Geocoder):
    def __init__(self, user_agent: Optional[str] = None, timeout: float = 10, retry_timeout: float = 20,
                 client=None):
        # Provide a custom user agent to comply with Nominatim's usage policy.
        self.client = client or Nominatim(user_agent=user_agent or get_nominatim_user_agent())
        self.timeout = timeout
        self.retry_timeout = retry_timeout

    def resolve(self, text: str) -> Coordinate:
        """Geocode ``text`` and return its coordinate.

        If a timeout or service error occurs, the request is retried once
        with a longer timeout.

        Raises:
            GeocodeNotFound: if no result is found or both attempts fail.
        """
        try:
            location = self.client.geocode(text, timeout=self.timeout)
        except (GeocoderTimedOut, GeocoderServiceError) as exc:
            logger.warning(f"Geocoding {text!r} failed ({exc}), retrying once")
            try:
                location = self.client.geocode(text, timeout=self.retry_timeout)
            except (GeocoderTimedOut, GeocoderServiceError) as retry_exc:
                raise GeocodeNotFound(f"Geocoding {text!r} failed: {retry_exc}") from retry_exc
        if not location:
            raise GeocodeNotFound(f"No location found for {text!r}")
        return Coordinate(location.latitude, location.longitude)

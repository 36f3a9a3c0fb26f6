"""
Geocoding client (Geoapify).

Turns free-text addresses into coordinates (for `--near` queries and for seeding
records that only carry an address) and coordinates back into a formatted
address. Raw API responses are cached on disk; an expired entry is served when
the upstream call fails.
"""

from __future__ import annotations

import logging
from typing import Any

from immidir.config.settings import Settings
from immidir.core.cache import FileCache
from immidir.core.geo import GeoPoint
from immidir.core.http import get_json

logger = logging.getLogger(__name__)


def _first_feature(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    features = payload.get("features") or []
    if not isinstance(features, list) or not features:
        return None
    first = features[0]
    return first if isinstance(first, dict) else None


class GeocodingClient:
    """Fetches and caches Geoapify geocode/reverse lookups."""

    def __init__(self, settings: Settings, cache: FileCache):
        self._settings = settings
        self._cache = cache

    def _fetch(self, namespace: str, cache_key: str, url: str, params: dict[str, Any]) -> Any | None:
        api_key = self._settings.geocoding.api_key
        if not api_key:
            logger.warning("GEOAPIFY_API_KEY is not set; skipping %s lookup.", namespace)
            return None

        def builder() -> Any:
            logger.info("Fetching %s for %s", namespace, cache_key)
            return get_json(
                url,
                params={**params, "apiKey": api_key},
                timeout_seconds=self._settings.geocoding.http_timeout_seconds,
            )

        return self._cache.get_or_set(
            namespace,
            cache_key,
            builder,
            ttl_seconds=int(self._settings.geocoding.cache_ttl_seconds),
            stale_if_error=True,
        )

    def geocode(self, text: str) -> GeoPoint | None:
        """Best match for a free-text address, or None when nothing matches."""
        text = (text or "").strip()
        if not text:
            return None
        payload = self._fetch("geocode", text.lower(), self._settings.geocoding.search_url, {"text": text})
        feature = _first_feature(payload)
        if feature is None:
            return None
        try:
            lon, lat = feature["geometry"]["coordinates"][:2]
            return GeoPoint(lat=float(lat), lon=float(lon))
        except (KeyError, TypeError, ValueError):
            logger.warning("Unexpected geocode payload shape for %r", text)
            return None

    def reverse_geocode(self, lat: float, lon: float) -> str | None:
        """Formatted address nearest to `(lat, lon)`, or None."""
        payload = self._fetch(
            "reverse_geocode",
            f"{lat:.5f}:{lon:.5f}",
            self._settings.geocoding.reverse_url,
            {"lat": lat, "lon": lon},
        )
        feature = _first_feature(payload)
        if feature is None:
            return None
        formatted = (feature.get("properties") or {}).get("formatted")
        return formatted if isinstance(formatted, str) and formatted else None

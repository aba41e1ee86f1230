"""
openrouteservice (Pelias) geocoding client.

* ``autocomplete`` -- ``GET /geocode/autocomplete?text=...`` with an
  optional ``focus.point`` to rank nearby places first.
* ``reverse``      -- ``GET /geocode/reverse?point.lat=..&point.lon=..``,
  label of the first feature.

Labels are requested in ``language`` (``Accept-Language``).  Any transport
error, timeout or non-2xx answer raises ``GeocodingUnavailable``; a
suggestion with unusable coordinates is dropped.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from src.domain.entities import Location, PlaceSuggestion
from src.domain.exceptions import GeocodingUnavailable

logger = logging.getLogger(__name__)


class ORSGeocodingClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 8.0,
        language: str = "ar,en",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.language = language
        self._http = http_client

    async def autocomplete(
        self, text: str, focus: Optional[Location] = None
    ) -> list[PlaceSuggestion]:
        params = {"api_key": self.api_key, "text": text}
        if focus is not None:
            params["focus.point.lat"] = str(focus.lat)
            params["focus.point.lon"] = str(focus.lng)

        data = await self._get_json("/geocode/autocomplete", params)
        suggestions = []
        for feature in data.get("features") or []:
            label = (feature.get("properties") or {}).get("label")
            coords = (feature.get("geometry") or {}).get("coordinates")
            if not label or not coords:
                continue
            try:
                location = Location.from_lng_lat(coords)
            except (IndexError, TypeError, ValueError):
                logger.warning("Skipping suggestion %r with bad coordinates %r", label, coords)
                continue
            suggestions.append(PlaceSuggestion(label=label, location=location))
        return suggestions

    async def reverse(self, point: Location) -> Optional[str]:
        params = {
            "api_key": self.api_key,
            "point.lat": str(point.lat),
            "point.lon": str(point.lng),
            "size": "1",
        }
        data = await self._get_json("/geocode/reverse", params)
        features = data.get("features") or []
        if not features:
            return None
        return (features[0].get("properties") or {}).get("label")

    async def _get_json(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Accept-Language": self.language}
        try:
            if self._http is not None:
                response = await self._http.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise GeocodingUnavailable(
                f"Geocoding request timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise GeocodingUnavailable(f"Network error: {exc}") from exc

        if response.status_code == 403:
            logger.error("Geocoding API key rejected")
            raise GeocodingUnavailable("Geocoding API key is invalid")
        if response.status_code >= 400:
            raise GeocodingUnavailable(
                f"Geocoding failed with status {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GeocodingUnavailable("Geocoding answered with invalid JSON") from exc

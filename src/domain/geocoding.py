"""Address lookup helpers; geocoding failures never block routing or pricing."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .entities import Location, PlaceSuggestion, format_coordinates
from .exceptions import GeocodingUnavailable

logger = logging.getLogger(__name__)


class GeocodingClient(Protocol):
    async def autocomplete(
        self, text: str, focus: Optional[Location] = None
    ) -> list[PlaceSuggestion]: ...

    async def reverse(self, point: Location) -> Optional[str]:
        """Best-effort label, ``None`` if the service knows nothing here."""
        ...


async def resolve_address(client: GeocodingClient, point: Location) -> str:
    """Reverse-geocode *point*, substituting a coordinate literal on failure."""
    try:
        label = await client.reverse(point)
    except GeocodingUnavailable as exc:
        logger.warning("Reverse geocoding failed, using placeholder: %s", exc)
        return format_coordinates(point)
    return label or format_coordinates(point)

"""
Error taxonomy for route resolution, pricing, trip lifecycle and dispatch.

``retriable`` tells the caller whether trying the same request again later
can succeed without changing its inputs.
"""

from __future__ import annotations


class RideHailingError(Exception):
    """Base class for every domain error."""

    retriable: bool = False


# ── Routing / geocoding ───────────────────────────────────────────────


class RoutingServiceUnavailable(RideHailingError):
    """Routing collaborator timed out or answered with a transport error."""

    retriable = True


class NoRouteFound(RideHailingError):
    """No drivable route between the points, even after snapping."""


class GeocodingUnavailable(RideHailingError):
    """Geocoding collaborator failed; callers substitute a placeholder."""

    retriable = True


# ── Pricing configuration ─────────────────────────────────────────────


class UnknownVehicleClass(RideHailingError, KeyError):
    """The vehicle class has no multiplier, i.e. it is not offered."""

    def __init__(self, vehicle_class):
        super().__init__(vehicle_class)
        self.vehicle_class = vehicle_class

    def __str__(self) -> str:
        return f"Vehicle class not offered: {self.vehicle_class}"


class ConfigUnavailable(RideHailingError):
    """Pricing settings could not be loaded; quoting is blocked."""

    retriable = True


class ConfigSchemaOutdated(ConfigUnavailable):
    """Settings storage is on an older schema than this code expects."""

    retriable = False


class InvalidConfig(RideHailingError):
    """A settings update carried out-of-range or unknown values."""


# ── Trip lifecycle ────────────────────────────────────────────────────


class TripNotFound(RideHailingError):
    pass


class InvalidTransition(RideHailingError):
    """Requested status change is not an edge of the trip graph."""

    def __init__(self, from_status, to_status, message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message
            or f"Cannot transition from {_name(from_status)} to {_name(to_status)}"
        )


class TripAlreadyTerminal(InvalidTransition):
    """Trip is Completed or Cancelled; nothing may follow."""

    def __init__(self, from_status, to_status):
        super().__init__(
            from_status,
            to_status,
            f"Trip is already {_name(from_status)}; cannot move to {_name(to_status)}",
        )


# ── Dispatch ──────────────────────────────────────────────────────────


class NoDriversAvailable(RideHailingError):
    """Every candidate declined or timed out."""

    retriable = True


def _name(status) -> str:
    return getattr(status, "value", str(status))

"""
Fare Pricing Engine
===================

Formula
-------
Price = round((Base_Fare + Distance_km x Per_Km_Fare) x Vehicle_Multiplier)

* Rounding is to the nearest whole currency unit, ties away from zero.
* ``distance = 0`` (pickup == dropoff) prices as ``round(Base_Fare x Multiplier)``.
* All arithmetic is done in :class:`~decimal.Decimal` so the same inputs
  always give the same integer, whatever float noise the inputs carry.

The ``PricingConfig`` is an immutable snapshot.  ``PricingConfigCache``
holds the current one and swaps it wholesale on refresh; nothing ever
mutates a snapshot in place.

Complexity: O(1) per quote, O(k) for ``quote_all`` over k vehicle classes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping, Optional, Protocol

from .enums import VehicleClass
from .exceptions import ConfigUnavailable, InvalidConfig, UnknownVehicleClass

logger = logging.getLogger(__name__)

FareQuote = Mapping[VehicleClass, int]

_ONE = Decimal("1")
_THOUSAND = Decimal("1000")
_HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so 1.2 becomes Decimal("1.2"), not its binary expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidConfig(f"Not a number: {value!r}") from exc


def round_half_away(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


# ── Snapshot ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PricingConfig:
    base_fare: Decimal
    per_km_fare: Decimal
    commission_percent: Decimal
    vehicle_multipliers: Mapping[VehicleClass, Decimal] = field(
        default_factory=lambda: MappingProxyType({})
    )
    manager_contact: str = ""

    def __post_init__(self) -> None:
        # Freeze the multiplier mapping so a shared snapshot cannot drift
        object.__setattr__(
            self,
            "vehicle_multipliers",
            MappingProxyType(dict(self.vehicle_multipliers)),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PricingConfig":
        """Validate raw settings values and build a snapshot."""
        base_fare = to_decimal(data["base_fare"])
        per_km_fare = to_decimal(data["per_km_fare"])
        commission = to_decimal(data.get("commission_percent", 0))
        if base_fare < 0:
            raise InvalidConfig("base_fare must be >= 0")
        if per_km_fare < 0:
            raise InvalidConfig("per_km_fare must be >= 0")
        if not 0 <= commission <= 100:
            raise InvalidConfig("commission_percent must be within [0, 100]")

        multipliers: dict[VehicleClass, Decimal] = {}
        for key, raw in (data.get("vehicle_multipliers") or {}).items():
            try:
                vehicle_class = VehicleClass(key)
            except ValueError as exc:
                raise InvalidConfig(f"Unknown vehicle class: {key!r}") from exc
            multiplier = to_decimal(raw)
            if multiplier <= 0:
                raise InvalidConfig(f"Multiplier for {key} must be > 0")
            multipliers[vehicle_class] = multiplier

        return cls(
            base_fare=base_fare,
            per_km_fare=per_km_fare,
            commission_percent=commission,
            vehicle_multipliers=multipliers,
            manager_contact=str(data.get("manager_contact") or ""),
        )

    def multiplier(self, vehicle_class: VehicleClass) -> Decimal:
        try:
            return self.vehicle_multipliers[vehicle_class]
        except KeyError:
            raise UnknownVehicleClass(vehicle_class) from None

    def offered_classes(self) -> list[VehicleClass]:
        return [vc for vc in VehicleClass if vc in self.vehicle_multipliers]


# ── Refresh boundary ──────────────────────────────────────────────────


class PricingConfigProvider(Protocol):
    async def get(self) -> PricingConfig: ...


class PricingConfigCache:
    """
    Read-only holder of the current snapshot.

    Readers call :meth:`current`; only :meth:`refresh` (or :meth:`replace`
    after a successful settings write) swaps the reference.
    """

    def __init__(self, provider: Optional[PricingConfigProvider] = None):
        self._provider = provider
        self._snapshot: Optional[PricingConfig] = None
        self._refresh_lock = asyncio.Lock()

    def current(self) -> PricingConfig:
        if self._snapshot is None:
            raise ConfigUnavailable("Pricing settings have not been loaded")
        return self._snapshot

    async def load(self) -> PricingConfig:
        """Return the snapshot, fetching it on first use."""
        if self._snapshot is None:
            return await self.refresh()
        return self._snapshot

    async def refresh(self) -> PricingConfig:
        if self._provider is None:
            raise ConfigUnavailable("No pricing settings provider configured")
        async with self._refresh_lock:
            snapshot = await self._provider.get()
            self.replace(snapshot)
        return snapshot

    def replace(self, snapshot: PricingConfig) -> None:
        self._snapshot = snapshot
        logger.info(
            "Pricing snapshot replaced (base=%s, per_km=%s, classes=%d)",
            snapshot.base_fare,
            snapshot.per_km_fare,
            len(snapshot.vehicle_multipliers),
        )


# ── Calculator ────────────────────────────────────────────────────────


class FareCalculator:
    """Pure fare computation; holds no state of its own."""

    @staticmethod
    def quote(
        distance_meters: float,
        vehicle_class: VehicleClass,
        config: PricingConfig,
    ) -> int:
        if distance_meters < 0:
            raise ValueError("distance_meters must be >= 0")
        multiplier = config.multiplier(vehicle_class)
        distance_km = to_decimal(distance_meters) / _THOUSAND
        raw = (config.base_fare + distance_km * config.per_km_fare) * multiplier
        return round_half_away(raw)

    @classmethod
    def quote_all(
        cls, distance_meters: float, config: PricingConfig
    ) -> dict[VehicleClass, int]:
        """Quote every offered vehicle class; classes without a multiplier are skipped."""
        return {
            vehicle_class: cls.quote(distance_meters, vehicle_class, config)
            for vehicle_class in config.offered_classes()
        }

    @staticmethod
    def commission(price: int, config: PricingConfig) -> int:
        """The app's cut of a fare."""
        return round_half_away(to_decimal(price) * config.commission_percent / _HUNDRED)

    @classmethod
    def driver_earnings(cls, price: int, config: PricingConfig) -> int:
        return price - cls.commission(price, config)

"""
Trip lifecycle state machine.

Edges live in :data:`src.domain.enums.TRIP_TRANSITIONS`; nothing here
compares status strings ad hoc.  Every transition is validated *before*
the trip is touched, so a rejected request leaves it exactly as it was.

Each ``TripStateMachine`` owns one ``Trip`` and serialises transitions on
it with an ``asyncio.Lock``.  Side effects are not performed here: every
successful transition returns a ``TripEvent`` listing who should be told
what, and the caller hands it to a notifier.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from .entities import Trip, utcnow
from .enums import (
    TERMINAL_STATUSES,
    TRIP_TRANSITIONS,
    CancellationReason,
    TripStatus,
)
from .exceptions import InvalidTransition, TripAlreadyTerminal, TripNotFound
from .pricing import FareCalculator, PricingConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    user_id: str
    message: str


@dataclass(frozen=True)
class TripEvent:
    trip_id: str
    from_status: TripStatus
    to_status: TripStatus
    notifications: tuple[Notification, ...] = ()
    occurred_at: datetime = field(default_factory=utcnow)


def check_transition(current: TripStatus, target: TripStatus) -> None:
    """Raise unless ``current -> target`` is an edge of the trip graph."""
    if current in TERMINAL_STATUSES:
        raise TripAlreadyTerminal(current, target)
    if target not in TRIP_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)


class TripStateMachine:
    def __init__(self, trip: Trip):
        self.trip = trip
        self._lock = asyncio.Lock()

    @property
    def status(self) -> TripStatus:
        return self.trip.status

    @property
    def is_terminal(self) -> bool:
        return self.trip.status in TERMINAL_STATUSES

    def can_transition(self, target: TripStatus) -> bool:
        try:
            check_transition(self.trip.status, target)
        except InvalidTransition:
            return False
        return True

    # ── Triggers ──────────────────────────────────────────────────────

    async def schedule(self, scheduled_at: datetime) -> TripEvent:
        async with self._lock:
            check_transition(self.trip.status, TripStatus.SCHEDULED)
            self.trip.scheduled_at = scheduled_at
            return self._commit(
                TripStatus.SCHEDULED,
                Notification(
                    self.trip.customer_id,
                    f"Your trip is scheduled for {scheduled_at.isoformat()}.",
                ),
            )

    async def accept(self, driver_id: str) -> TripEvent:
        if not driver_id:
            raise ValueError("driver_id is required to accept a trip")
        async with self._lock:
            check_transition(self.trip.status, TripStatus.ACCEPTED)
            self.trip.driver_id = driver_id
            self.trip.accepted_at = utcnow()
            return self._commit(
                TripStatus.ACCEPTED,
                Notification(
                    self.trip.customer_id,
                    "Your trip was accepted. The driver is on the way.",
                ),
                Notification(driver_id, "New trip assigned. Head to the pickup point."),
            )

    async def driver_arrived(self) -> TripEvent:
        async with self._lock:
            check_transition(self.trip.status, TripStatus.DRIVER_ARRIVED)
            self.trip.arrived_at = utcnow()
            return self._commit(
                TripStatus.DRIVER_ARRIVED,
                Notification(self.trip.customer_id, "Your driver has arrived."),
            )

    async def start(self) -> TripEvent:
        async with self._lock:
            check_transition(self.trip.status, TripStatus.IN_PROGRESS)
            self.trip.started_at = utcnow()
            return self._commit(
                TripStatus.IN_PROGRESS,
                Notification(self.trip.customer_id, "Your trip has started."),
            )

    async def complete(
        self,
        final_price: Optional[int] = None,
        pricing: Optional[PricingConfig] = None,
    ) -> TripEvent:
        """End the trip.  ``final_price`` defaults to the quoted price."""
        if final_price is not None and final_price < 0:
            raise ValueError("final_price must be >= 0")
        async with self._lock:
            check_transition(self.trip.status, TripStatus.COMPLETED)
            price = self.trip.quoted_price if final_price is None else final_price
            self.trip.final_price = price
            self.trip.completed_at = utcnow()

            notes = [
                Notification(self.trip.customer_id, f"Trip completed. Fare: {price}.")
            ]
            if self.trip.driver_id and pricing is not None:
                earnings = FareCalculator.driver_earnings(price, pricing)
                notes.append(
                    Notification(
                        self.trip.driver_id,
                        f"Trip completed. Fare: {price}, your earnings: {earnings}.",
                    )
                )
            return self._commit(TripStatus.COMPLETED, *notes)

    async def cancel(
        self, reason: CancellationReason = CancellationReason.CUSTOMER
    ) -> TripEvent:
        async with self._lock:
            check_transition(self.trip.status, TripStatus.CANCELLED)
            self.trip.cancellation_reason = reason
            self.trip.cancelled_at = utcnow()

            notes = [Notification(self.trip.customer_id, "Your trip was cancelled.")]
            if self.trip.driver_id:
                notes.append(
                    Notification(self.trip.driver_id, "The trip was cancelled.")
                )
            return self._commit(TripStatus.CANCELLED, *notes)

    # ── Internals ─────────────────────────────────────────────────────

    def _commit(self, target: TripStatus, *notifications: Notification) -> TripEvent:
        previous = self.trip.status
        self.trip.status = target
        logger.info(
            "Trip %s: %s -> %s", self.trip.id, previous.value, target.value
        )
        return TripEvent(
            trip_id=self.trip.id,
            from_status=previous,
            to_status=target,
            notifications=tuple(notifications),
        )


class TripRegistry:
    """One state machine per trip id, the single writer for that trip."""

    def __init__(self) -> None:
        self._machines: dict[str, TripStateMachine] = {}

    def register(self, trip: Trip) -> TripStateMachine:
        machine = self._machines.get(trip.id)
        if machine is None:
            machine = TripStateMachine(trip)
            self._machines[trip.id] = machine
        return machine

    def get(self, trip_id: str) -> TripStateMachine:
        try:
            return self._machines[trip_id]
        except KeyError:
            raise TripNotFound(f"Trip {trip_id} not found") from None

    def __contains__(self, trip_id: str) -> bool:
        return trip_id in self._machines

    def __iter__(self) -> Iterator[TripStateMachine]:
        return iter(list(self._machines.values()))

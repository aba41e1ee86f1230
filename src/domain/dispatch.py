"""
Dispatch Coordinator
====================

Offers a trip to one candidate driver at a time and binds the first one
who accepts through the trip's state machine.

* The trip stays ``REQUESTED`` (or ``SCHEDULED``) while an offer is out;
  the driver is only written onto the trip by ``TripStateMachine.accept``.
  A decline or timeout therefore leaves no driver behind.
* Candidate order is whatever the caller passes in.  No ranking is done
  here; plug a real matcher in front of ``dispatch`` to change that.
* Callers that persist trips pass a ``bind`` callback so the accept is
  applied to a freshly reloaded trip under their own lock.  Nothing needs
  to be held while the driver is thinking; if the trip moved on in the
  meantime (e.g. it was cancelled) the bind raises ``InvalidTransition``.
* ``SimulatedDriverResponder`` reproduces the fixed-delay acceptance the
  product currently runs with.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional, Protocol

from .entities import Trip
from .enums import OfferOutcome, TripStatus
from .exceptions import InvalidTransition, NoDriversAvailable
from .notifications import NotificationDispatcher
from .state_machine import TripEvent, TripStateMachine

logger = logging.getLogger(__name__)

# Writes the accepting driver onto the trip; returns the ACCEPTED event
Binder = Callable[[str], Awaitable[TripEvent]]


class DriverResponder(Protocol):
    async def respond(self, trip: Trip, driver_id: str) -> bool:
        """True to accept, False to decline.  May block until the driver answers."""
        ...


class SimulatedDriverResponder:
    def __init__(self, delay_seconds: float = 5.0, accept: bool = True):
        self.delay_seconds = delay_seconds
        self.accept = accept

    async def respond(self, trip: Trip, driver_id: str) -> bool:
        await asyncio.sleep(self.delay_seconds)
        return self.accept


class DispatchCoordinator:
    def __init__(
        self,
        responder: DriverResponder,
        offer_timeout_seconds: float = 30.0,
        notifications: Optional[NotificationDispatcher] = None,
    ):
        self.responder = responder
        self.offer_timeout_seconds = offer_timeout_seconds
        self.notifications = notifications or NotificationDispatcher()
        self.pending_offers: dict[str, str] = {}  # trip id -> driver id

    async def offer(
        self,
        machine: TripStateMachine,
        candidate_driver_id: str,
        bind: Optional[Binder] = None,
    ) -> OfferOutcome:
        trip = machine.trip
        if not machine.can_transition(TripStatus.ACCEPTED):
            raise InvalidTransition(trip.status, TripStatus.ACCEPTED)
        if trip.id in self.pending_offers:
            raise InvalidTransition(
                trip.status,
                TripStatus.ACCEPTED,
                f"Trip {trip.id} already has an offer out to "
                f"{self.pending_offers[trip.id]}",
            )

        self.pending_offers[trip.id] = candidate_driver_id
        self.notifications.send(candidate_driver_id, "New trip request nearby.")
        try:
            accepted = await asyncio.wait_for(
                self.responder.respond(trip, candidate_driver_id),
                timeout=self.offer_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Offer for trip %s to driver %s timed out", trip.id, candidate_driver_id
            )
            return OfferOutcome.TIMED_OUT
        finally:
            self.pending_offers.pop(trip.id, None)

        if not accepted:
            logger.warning(
                "Driver %s declined trip %s", candidate_driver_id, trip.id
            )
            return OfferOutcome.DECLINED

        event = await (bind or machine.accept)(candidate_driver_id)
        self.notifications.publish(event)
        return OfferOutcome.ACCEPTED

    async def dispatch(
        self,
        machine: TripStateMachine,
        candidate_driver_ids: Iterable[str],
        bind: Optional[Binder] = None,
    ) -> str:
        """Offer to each candidate in turn; return the driver who accepted."""
        for driver_id in candidate_driver_ids:
            outcome = await self.offer(machine, driver_id, bind)
            if outcome is OfferOutcome.ACCEPTED:
                return driver_id

        logger.info("No driver accepted trip %s", machine.trip.id)
        raise NoDriversAvailable(
            "No drivers are available right now. Please try again shortly."
        )

"""
Trip endpoints
==============

POST /api/v1/trips                      -- request a trip (201; SCHEDULED if scheduled_at)
GET  /api/v1/trips?customer_id=         -- a customer's trips, newest first
GET  /api/v1/trips/{trip_id}            -- trip status and price
POST /api/v1/trips/{trip_id}/dispatch   -- offer to candidate drivers in order
POST /api/v1/trips/{trip_id}/accept     -- driver accepts
POST /api/v1/trips/{trip_id}/arrive     -- driver is at the pickup point
POST /api/v1/trips/{trip_id}/start      -- driver starts the trip
POST /api/v1/trips/{trip_id}/complete   -- driver ends the trip
POST /api/v1/trips/{trip_id}/cancel     -- customer / driver cancels

Every transition runs under the trip's distributed lock and commits before
the lock is released, so concurrent requests on one trip are serialised.
Dispatch is the exception: no lock is held while an offer is out, and the
accepting driver is bound under the lock after re-reading the trip.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import Services, get_db, get_services
from src.api.middleware import limiter
from src.api.routes.quotes import open_session
from src.api.schemas import (
    AcceptRequest,
    CancelRequest,
    CompleteRequest,
    DispatchRequest,
    DispatchResponse,
    TripCreateRequest,
    TripResponse,
)
from src.domain.enums import OfferOutcome, UserRole
from src.domain.exceptions import TripNotFound
from src.domain.state_machine import TripEvent, TripStateMachine
from src.infrastructure.repositories import TripRepository, UserRepository

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Request a trip",
)
@limiter.limit("100/minute")
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    if await UserRepository(db).get_by_id(body.customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    session = await open_session(services, body.customer_id, body)
    machine = await session.request_trip(body.vehicle_class, body.scheduled_at)
    await TripRepository(db).add(machine.trip)
    return TripResponse.from_trip(machine.trip)


@router.get(
    "",
    response_model=list[TripResponse],
    summary="List a customer's trips, newest first",
)
@limiter.limit("100/minute")
async def list_trips(
    request: Request,
    customer_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    trips = await TripRepository(db).list_for_customer(customer_id)
    return [TripResponse.from_trip(t) for t in trips]


@router.get(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Get trip status and price",
)
@limiter.limit("100/minute")
async def get_trip(
    request: Request,
    trip_id: str,
    db: AsyncSession = Depends(get_db),
):
    trip = await TripRepository(db).get(trip_id)
    if trip is None:
        raise TripNotFound(f"Trip {trip_id} not found")
    return TripResponse.from_trip(trip)


@router.post(
    "/{trip_id}/dispatch",
    response_model=DispatchResponse,
    summary="Offer the trip to candidate drivers, one at a time",
    responses={
        404: {"description": "Trip or candidate driver not found"},
        409: {"description": "No candidate accepted, or the trip moved on"},
        422: {"description": "A candidate is not a driver"},
    },
)
@limiter.limit("100/minute")
async def dispatch_trip(
    request: Request,
    trip_id: str,
    body: DispatchRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await _require_drivers(db, body.candidate_driver_ids)
    repo = TripRepository(db)
    machine = await _load(repo, trip_id)
    # offers can take a while; don't sit in an open transaction meanwhile
    await db.rollback()
    bound: list[TripStateMachine] = []

    async def bind(driver_id: str) -> TripEvent:
        async with services.trip_lock(trip_id):
            current = await _load(repo, trip_id, refresh=True)
            # raises if the trip was cancelled or taken while the driver decided
            event = await current.accept(driver_id)
            await repo.save(current.trip)
            await db.commit()
        bound.append(current)
        return event

    # NoDriversAvailable leaves the trip untouched for another round
    driver_id = await services.dispatcher.dispatch(
        machine, body.candidate_driver_ids, bind
    )
    return DispatchResponse(
        outcome=OfferOutcome.ACCEPTED,
        driver_id=driver_id,
        trip=TripResponse.from_trip(bound[-1].trip),
    )


@router.post(
    "/{trip_id}/accept",
    response_model=TripResponse,
    summary="Driver accepts",
    responses={
        404: {"description": "Trip or driver not found"},
        422: {"description": "The user is not a driver"},
    },
)
@limiter.limit("100/minute")
async def accept_trip(
    request: Request,
    trip_id: str,
    body: AcceptRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await _require_drivers(db, [body.driver_id])
    return await _transition(
        db, services, trip_id, lambda m: m.accept(body.driver_id)
    )


@router.post(
    "/{trip_id}/arrive", response_model=TripResponse, summary="Driver has arrived"
)
@limiter.limit("100/minute")
async def driver_arrived(
    request: Request,
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _transition(db, services, trip_id, lambda m: m.driver_arrived())


@router.post("/{trip_id}/start", response_model=TripResponse, summary="Start the trip")
@limiter.limit("100/minute")
async def start_trip(
    request: Request,
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _transition(db, services, trip_id, lambda m: m.start())


@router.post(
    "/{trip_id}/complete", response_model=TripResponse, summary="Complete the trip"
)
@limiter.limit("100/minute")
async def complete_trip(
    request: Request,
    trip_id: str,
    body: CompleteRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    pricing = await services.pricing.load()
    return await _transition(
        db,
        services,
        trip_id,
        lambda m: m.complete(final_price=body.final_price, pricing=pricing),
    )


@router.post(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel a trip",
    description="Allowed while the trip is REQUESTED, SCHEDULED or ACCEPTED.",
)
@limiter.limit("100/minute")
async def cancel_trip(
    request: Request,
    trip_id: str,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _transition(db, services, trip_id, lambda m: m.cancel(body.reason))


# ── Internals ─────────────────────────────────────────────────────────


async def _load(
    repo: TripRepository, trip_id: str, refresh: bool = False
) -> TripStateMachine:
    trip = await repo.get(trip_id, refresh=refresh)
    if trip is None:
        raise TripNotFound(f"Trip {trip_id} not found")
    return TripStateMachine(trip)


async def _require_drivers(db: AsyncSession, driver_ids: Iterable[str]) -> None:
    users = UserRepository(db)
    for driver_id in driver_ids:
        user = await users.get_by_id(driver_id)
        if user is None:
            raise HTTPException(status_code=404, detail=f"Driver {driver_id} not found")
        if user.role != UserRole.DRIVER:
            raise HTTPException(
                status_code=422, detail=f"User {driver_id} is not a driver"
            )


async def _transition(
    db: AsyncSession,
    services: Services,
    trip_id: str,
    trigger: Callable[[TripStateMachine], Awaitable[TripEvent]],
) -> TripResponse:
    async with services.trip_lock(trip_id):
        repo = TripRepository(db)
        machine = await _load(repo, trip_id)
        event = await trigger(machine)
        await repo.save(machine.trip)
        await db.commit()
    services.notifications.publish(event)
    return TripResponse.from_trip(machine.trip)

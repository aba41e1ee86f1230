"""Unit tests for trip lifecycle transitions."""

import copy
from datetime import datetime, timedelta, timezone

import pytest

from src.domain.enums import (
    TERMINAL_STATUSES,
    TRIP_TRANSITIONS,
    CancellationReason,
    TripStatus,
)
from src.domain.exceptions import InvalidTransition, TripAlreadyTerminal, TripNotFound
from src.domain.state_machine import (
    TripRegistry,
    TripStateMachine,
    check_transition,
)
from tests.conftest import make_config, make_trip


async def _drive_to(machine: TripStateMachine, status: TripStatus) -> None:
    """Walk a fresh machine along the main path up to *status*."""
    path = [
        (TripStatus.ACCEPTED, lambda: machine.accept("driver-1")),
        (TripStatus.DRIVER_ARRIVED, machine.driver_arrived),
        (TripStatus.IN_PROGRESS, machine.start),
        (TripStatus.COMPLETED, machine.complete),
    ]
    if status is TripStatus.REQUESTED:
        return
    if status is TripStatus.SCHEDULED:
        await machine.schedule(datetime.now(timezone.utc) + timedelta(hours=2))
        return
    if status is TripStatus.CANCELLED:
        await machine.cancel()
        return
    for target, trigger in path:
        await trigger()
        if target is status:
            return


_TRIGGERS = {
    TripStatus.ACCEPTED: lambda m: m.accept("driver-2"),
    TripStatus.SCHEDULED: lambda m: m.schedule(datetime.now(timezone.utc)),
    TripStatus.DRIVER_ARRIVED: lambda m: m.driver_arrived(),
    TripStatus.IN_PROGRESS: lambda m: m.start(),
    TripStatus.COMPLETED: lambda m: m.complete(),
    TripStatus.CANCELLED: lambda m: m.cancel(),
}


class TestTripStateMachine:
    def test_initial_status_is_requested(self):
        machine = TripStateMachine(make_trip())
        assert machine.status == TripStatus.REQUESTED
        assert machine.trip.driver_id is None

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_full_lifecycle(self):
        machine = TripStateMachine(make_trip())
        await machine.accept("driver-1")
        await machine.driver_arrived()
        await machine.start()
        event = await machine.complete()

        assert machine.status == TripStatus.COMPLETED
        assert machine.trip.final_price == machine.trip.quoted_price
        assert machine.trip.completed_at is not None
        assert event.from_status == TripStatus.IN_PROGRESS
        assert event.to_status == TripStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_accept_binds_driver(self):
        machine = TripStateMachine(make_trip())
        event = await machine.accept("driver-1")

        assert machine.trip.driver_id == "driver-1"
        assert machine.trip.accepted_at is not None
        assert {n.user_id for n in event.notifications} == {"customer-1", "driver-1"}

    @pytest.mark.asyncio
    async def test_accept_requires_driver(self):
        machine = TripStateMachine(make_trip())
        with pytest.raises(ValueError):
            await machine.accept("")
        assert machine.status == TripStatus.REQUESTED

    @pytest.mark.asyncio
    async def test_scheduled_then_accepted(self):
        machine = TripStateMachine(make_trip())
        when = datetime.now(timezone.utc) + timedelta(days=1)
        await machine.schedule(when)
        assert machine.status == TripStatus.SCHEDULED
        assert machine.trip.scheduled_at == when
        assert machine.trip.driver_id is None

        await machine.accept("driver-1")
        assert machine.status == TripStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self):
        machine = TripStateMachine(make_trip())
        await machine.accept("driver-1")
        event = await machine.cancel(CancellationReason.DRIVER)

        assert machine.status == TripStatus.CANCELLED
        assert machine.trip.cancellation_reason == CancellationReason.DRIVER
        assert {n.user_id for n in event.notifications} == {"customer-1", "driver-1"}

    @pytest.mark.asyncio
    async def test_complete_with_distinct_final_price(self):
        machine = TripStateMachine(make_trip())
        await _drive_to(machine, TripStatus.IN_PROGRESS)
        await machine.complete(final_price=5200)
        assert machine.trip.final_price == 5200

    @pytest.mark.asyncio
    async def test_complete_reports_driver_earnings(self):
        machine = TripStateMachine(make_trip(quoted_price=4500))
        await _drive_to(machine, TripStatus.IN_PROGRESS)
        event = await machine.complete(pricing=make_config())

        driver_note = next(n for n in event.notifications if n.user_id == "driver-1")
        assert "3825" in driver_note.message

    # ── Invalid transitions ───────────────────────────────────────

    @pytest.mark.asyncio
    async def test_in_progress_to_accepted_rejected(self):
        machine = TripStateMachine(make_trip())
        await _drive_to(machine, TripStatus.IN_PROGRESS)

        with pytest.raises(InvalidTransition) as exc_info:
            await machine.accept("driver-9")

        assert exc_info.value.from_status == TripStatus.IN_PROGRESS
        assert exc_info.value.to_status == TripStatus.ACCEPTED
        assert machine.status == TripStatus.IN_PROGRESS
        assert machine.trip.driver_id == "driver-1"

    @pytest.mark.asyncio
    async def test_requested_to_completed_rejected(self):
        machine = TripStateMachine(make_trip())
        with pytest.raises(InvalidTransition):
            await machine.complete()
        assert machine.trip.final_price is None

    @pytest.mark.asyncio
    async def test_in_progress_cannot_be_cancelled(self):
        machine = TripStateMachine(make_trip())
        await _drive_to(machine, TripStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransition):
            await machine.cancel()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES))
    async def test_terminal_states_reject_everything(self, terminal):
        machine = TripStateMachine(make_trip())
        await _drive_to(machine, terminal)
        for target, trigger in _TRIGGERS.items():
            with pytest.raises(TripAlreadyTerminal):
                await trigger(machine)
        assert machine.status == terminal

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source", list(TripStatus))
    async def test_every_missing_edge_leaves_trip_unchanged(self, source):
        machine = TripStateMachine(make_trip())
        await _drive_to(machine, source)

        for target, trigger in _TRIGGERS.items():
            if target in TRIP_TRANSITIONS[source]:
                continue
            before = copy.deepcopy(machine.trip)
            with pytest.raises(InvalidTransition):
                await trigger(machine)
            assert machine.trip == before

    def test_check_transition_table(self):
        check_transition(TripStatus.REQUESTED, TripStatus.SCHEDULED)
        with pytest.raises(InvalidTransition):
            check_transition(TripStatus.DRIVER_ARRIVED, TripStatus.CANCELLED)
        with pytest.raises(TripAlreadyTerminal):
            check_transition(TripStatus.CANCELLED, TripStatus.REQUESTED)

    def test_graph_only_moves_forward(self):
        order = [
            TripStatus.REQUESTED,
            TripStatus.SCHEDULED,
            TripStatus.ACCEPTED,
            TripStatus.DRIVER_ARRIVED,
            TripStatus.IN_PROGRESS,
            TripStatus.COMPLETED,
        ]
        for source, targets in TRIP_TRANSITIONS.items():
            for target in targets - {TripStatus.CANCELLED}:
                assert order.index(target) > order.index(source)


class TestTripRegistry:
    def test_one_machine_per_trip(self):
        registry = TripRegistry()
        trip = make_trip()
        assert registry.register(trip) is registry.register(trip)
        assert trip.id in registry

    def test_unknown_trip(self):
        with pytest.raises(TripNotFound):
            TripRegistry().get("missing")

"""
Concurrency safety tests.

Demonstrates:
1. Concurrent transitions on one trip: exactly one wins, the rest are rejected.
2. The distributed trip lock refuses a second holder.
3. Notification delivery never blocks or breaks a transition.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.domain.enums import TripStatus
from src.domain.exceptions import InvalidTransition
from src.domain.notifications import NotificationDispatcher
from src.domain.state_machine import TripStateMachine
from src.infrastructure.locks import DistributedLock, LockNotAcquired, trip_lock
from src.infrastructure.notifier import RedisNotifier
from tests.conftest import RecordingNotifier, make_trip


class TestTripConcurrency:
    """Single-writer guarantee of the state machine."""

    @pytest.mark.asyncio
    async def test_concurrent_accepts_bind_one_driver(self):
        machine = TripStateMachine(make_trip())
        results = await asyncio.gather(
            *(machine.accept(f"driver-{i}") for i in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, InvalidTransition)]
        assert len(winners) == 1
        assert len(losers) == 4
        assert machine.status == TripStatus.ACCEPTED
        assert machine.trip.driver_id == winners[0].notifications[1].user_id

    @pytest.mark.asyncio
    async def test_cancel_racing_accept(self):
        machine = TripStateMachine(make_trip())
        accept, cancel = await asyncio.gather(
            machine.accept("driver-1"), machine.cancel(), return_exceptions=True
        )
        # accept runs first; cancel from ACCEPTED is still a valid edge
        assert accept.to_status == TripStatus.ACCEPTED
        assert cancel.to_status == TripStatus.CANCELLED
        assert machine.status == TripStatus.CANCELLED


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "trip:abc", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:trip:abc", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "trip:abc", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_polls_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[False, False, True])

        lock = DistributedLock(
            mock_redis, "trip:abc", wait_seconds=1.0, poll_interval=0.01
        )
        assert await lock.acquire() is True
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "trip:abc", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "trip:abc", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass

    def test_trip_lock_key(self):
        lock = trip_lock(AsyncMock(), "abc", ttl_seconds=3)
        assert lock.key == "lock:trip:abc"
        assert lock.wait_seconds == 3


class TestNotificationDelivery:
    @pytest.mark.asyncio
    async def test_events_are_delivered(self):
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher(notifier)
        machine = TripStateMachine(make_trip())

        dispatcher.publish(await machine.accept("driver-1"))
        await dispatcher.drain()

        assert {user for user, _ in notifier.sent} == {"customer-1", "driver-1"}

    @pytest.mark.asyncio
    async def test_failed_delivery_is_dropped(self):
        notifier = AsyncMock()
        notifier.notify = AsyncMock(side_effect=ConnectionError("redis down"))
        dispatcher = NotificationDispatcher(notifier)
        machine = TripStateMachine(make_trip())

        dispatcher.publish(await machine.accept("driver-1"))
        await dispatcher.drain()

        assert machine.status == TripStatus.ACCEPTED
        assert notifier.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_redis_notifier_publishes_json(self):
        mock_redis = AsyncMock()
        await RedisNotifier(mock_redis).notify("driver-1", "New trip request nearby.")

        channel, payload = mock_redis.publish.await_args.args
        assert channel == "notifications:driver-1"
        assert json.loads(payload)["message"] == "New trip request nearby."

    def test_without_notifier_nothing_is_scheduled(self):
        # no running loop needed when there is nobody to notify
        NotificationDispatcher().send("customer-1", "hello")

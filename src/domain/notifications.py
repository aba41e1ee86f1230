"""
Fire-and-forget delivery of ``TripEvent`` notifications.

The core never waits on delivery: ``publish`` schedules a background task
and returns.  Delivery errors are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from .state_machine import TripEvent

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, user_id: str, message: str) -> None: ...


class NotificationDispatcher:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier
        self._tasks: set[asyncio.Task] = set()

    def publish(self, event: Optional[TripEvent]) -> None:
        if event is None or self.notifier is None:
            return
        for note in event.notifications:
            self.send(note.user_id, note.message)

    def send(self, user_id: str, message: str) -> None:
        if self.notifier is None:
            return
        task = asyncio.create_task(self._deliver(user_id, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _deliver(self, user_id: str, message: str) -> None:
        try:
            await self.notifier.notify(user_id, message)
        except Exception:
            logger.warning("Notification to %s failed", user_id, exc_info=True)

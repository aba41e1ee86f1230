"""
Last-request-wins gating for debounced lookups.

Every call to :meth:`LatestRequestGate.run` takes a ticket from a
monotonically increasing counter.  After the optional debounce delay, and
again after the lookup completes, the ticket is compared with the latest
one issued; a result is committed only while its ticket is still the
latest.  Older in-flight results are discarded, whatever order they
arrive in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestRequestGate:
    def __init__(self, name: str, debounce_seconds: float = 0.0):
        self.name = name
        self.debounce_seconds = debounce_seconds
        self._latest = 0

    @property
    def latest_ticket(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, ticket: int) -> bool:
        return ticket == self._latest

    async def run(
        self,
        fetch: Callable[[], Awaitable[T]],
        commit: Callable[[T], None],
    ) -> bool:
        """Fetch and commit unless superseded.  Returns True if committed."""
        ticket = self.issue()
        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
            if not self.is_current(ticket):
                logger.debug("%s #%d debounced away", self.name, ticket)
                return False

        result = await fetch()
        if not self.is_current(ticket):
            logger.debug(
                "%s #%d is stale (latest #%d); discarding", self.name, ticket, self._latest
            )
            return False

        commit(result)
        return True

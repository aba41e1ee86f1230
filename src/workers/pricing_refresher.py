"""
Background Pricing Refresh Worker
=================================

Runs every ``PRICING_REFRESH_INTERVAL_SECONDS`` (default 60 s).

Each cycle reads the settings row and swaps the ``PricingConfigCache``
snapshot wholesale.  A failed cycle keeps the previous snapshot: quotes
keep working on the last good settings until the next successful refresh.
"""

from __future__ import annotations

import asyncio
import logging

from src.domain.exceptions import ConfigUnavailable
from src.domain.pricing import PricingConfigCache

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_refresh_loop(cache: PricingConfigCache, interval_seconds: float) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(cache, interval_seconds))
    logger.info("Pricing refresher started (interval=%ss)", interval_seconds)


async def stop_refresh_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Pricing refresher stopped")


async def run_refresh_cycle(cache: PricingConfigCache) -> bool:
    """Refresh once.  True on success, False if the settings are unusable."""
    try:
        await cache.refresh()
    except ConfigUnavailable as exc:
        logger.error("Pricing settings unavailable: %s", exc)
        return False
    return True


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(cache: PricingConfigCache, interval_seconds: float) -> None:
    """Periodic loop: refresh then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_refresh_cycle(cache)
        except Exception:
            logger.exception("Unhandled error in pricing refresh cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(_stop_event.wait(), timeout=interval_seconds)
            break
        except asyncio.TimeoutError:
            pass  # next cycle

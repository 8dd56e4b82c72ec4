from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from storyvote.game_registry import GameRegistry


logger = logging.getLogger(__name__)


async def run_sweeper(registry: GameRegistry, *, interval_seconds: float, ttl: timedelta | None = None) -> None:
    """Periodically drop expired games until cancelled."""

    logger.info("game sweeper started (every %.0fs)", interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        removed = registry.sweep_expired(ttl=ttl)
        if removed:
            logger.debug("sweeper removed games: %s", ", ".join(removed))

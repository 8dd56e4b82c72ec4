from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from storyvote import __version__
from storyvote.api.routes import router
from storyvote.channels import ChannelBroker
from storyvote.config import Settings, settings_from_env
from storyvote.core.events import EventPublisher
from storyvote.game_registry import GameRegistry
from storyvote.lobby import Lobby
from storyvote.stories import load_story_catalog
from storyvote.sweeper import run_sweeper

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> None:
    """Build the process-wide collaborators once and hang them off `app.state`."""

    broker = ChannelBroker()
    publisher = EventPublisher(broker)

    app.state.settings = settings
    app.state.catalog = load_story_catalog(
        path=settings.stories_path,
        default_story_id=settings.default_story_id,
        strict=settings.strict_stories,
    )
    app.state.broker = broker
    app.state.publisher = publisher
    app.state.registry = GameRegistry(
        max_players=settings.max_players,
        ttl=settings.game_ttl,
        publisher=publisher,
    )
    app.state.lobby = Lobby(publisher=publisher)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or settings_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_app_state(app, settings)
        sweeper = asyncio.create_task(
            run_sweeper(app.state.registry, interval_seconds=settings.sweep_interval_seconds)
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="storyvote", version=__version__, lifespan=lifespan)
    app.include_router(router)

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": "storyvote", "version": __version__}

    return app


_settings = settings_from_env()

# Configure logging
logging.basicConfig(level=_settings.log_level)

app = create_app(_settings)

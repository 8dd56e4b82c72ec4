from __future__ import annotations

from fastapi import Request

from storyvote.game_registry import GameRegistry
from storyvote.lobby import Lobby
from storyvote.stories import StoryCatalog


def get_registry(request: Request) -> GameRegistry:
    return request.app.state.registry


def get_catalog(request: Request) -> StoryCatalog:
    return request.app.state.catalog


def get_lobby(request: Request) -> Lobby:
    return request.app.state.lobby

"""Error kinds raised by the game core.

All of them are `ValueError`s so callers that only care about "the request was
rejected" can keep catching `ValueError`. Each kind carries the HTTP status the
API layer answers with.
"""

from __future__ import annotations


class GameError(ValueError):
    status_code: int = 400


class NotFound(GameError):
    status_code = 404


class DuplicatePlayer(GameError):
    status_code = 409


class GameFull(GameError):
    status_code = 409


class GameNotJoinable(GameError):
    status_code = 409


class GameAlreadyFinished(GameError):
    status_code = 409


class UnknownPlayer(GameError):
    status_code = 422


class UnknownChoice(GameError):
    status_code = 422


class InvalidStoryState(GameError):
    """A choice points at a scene that does not exist in its story."""

    status_code = 500


class InvalidState(GameError):
    status_code = 500

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path


DEFAULT_MAX_PLAYERS = 4
DEFAULT_GAME_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class Settings:
    max_players: int = DEFAULT_MAX_PLAYERS
    game_ttl_seconds: int = DEFAULT_GAME_TTL_SECONDS
    sweep_interval_seconds: float = 600.0
    default_story_id: str = "story-1"
    # None => <project root>/assets/stories.json
    stories_path: Path | None = None
    strict_stories: bool = False
    # Per-connection queue of pending realtime frames.
    outbox_size: int = 100
    log_level: str = "INFO"

    @property
    def game_ttl(self) -> timedelta:
        return timedelta(seconds=self.game_ttl_seconds)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def settings_from_env() -> Settings:
    stories_path = os.environ.get("STORYVOTE_STORIES_PATH", "").strip()
    max_players = _env_int("STORYVOTE_MAX_PLAYERS", DEFAULT_MAX_PLAYERS)
    if max_players < 1:
        raise RuntimeError("STORYVOTE_MAX_PLAYERS must be >= 1")

    return Settings(
        max_players=max_players,
        game_ttl_seconds=_env_int("STORYVOTE_GAME_TTL_SECONDS", DEFAULT_GAME_TTL_SECONDS),
        sweep_interval_seconds=float(_env_int("STORYVOTE_SWEEP_INTERVAL_SECONDS", 600)),
        default_story_id=os.environ.get("STORYVOTE_DEFAULT_STORY_ID", "story-1"),
        stories_path=Path(stories_path) if stories_path else None,
        strict_stories=_env_flag("STORYVOTE_STRICT_STORIES"),
        outbox_size=_env_int("STORYVOTE_OUTBOX_SIZE", 100),
        log_level=os.environ.get("STORYVOTE_LOG_LEVEL", "INFO").upper(),
    )

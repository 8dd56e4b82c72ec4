from __future__ import annotations

import os
from collections.abc import Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

TEST_STORIES = Path(__file__).resolve().parent / "assets" / "stories.json"


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI we don't auto-load `.env` so local STORYVOTE_* overrides can't leak in.
    """

    if os.environ.get("CI"):
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


class RecordingConnection:
    """Broker connection that keeps every frame it is handed."""

    def __init__(self, connection_id: str, *, fail: bool = False) -> None:
        self.connection_id = connection_id
        self.fail = fail
        self.received: list[dict[str, Any]] = []

    def deliver(self, message: Mapping[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("transport gone")
        self.received.append(dict(message))

    def types(self) -> list[str]:
        return [m["type"] for m in self.received]


@pytest.fixture()
def make_connection():
    def _make(connection_id: str, *, fail: bool = False) -> RecordingConnection:
        return RecordingConnection(connection_id, fail=fail)

    return _make


@pytest.fixture(scope="session")
def catalog():
    from storyvote.stories import load_story_catalog

    return load_story_catalog(path=TEST_STORIES, strict=True)


@pytest.fixture()
def client() -> Generator[Any, None, None]:
    """TestClient over a fresh app wired to the hermetic test stories."""

    from fastapi.testclient import TestClient

    from storyvote.config import Settings
    from storyvote.main import create_app

    settings = Settings(
        max_players=2,
        stories_path=TEST_STORIES,
        strict_stories=True,
        sweep_interval_seconds=3600,
    )
    with TestClient(create_app(settings)) as c:
        yield c

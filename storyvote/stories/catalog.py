from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from storyvote.api.models import Choice, Scene, Story
from storyvote.errors import NotFound


logger = logging.getLogger(__name__)

DEFAULT_STORY_ID = "story-1"


class StoryLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class StoryCatalog:
    """Read-only set of stories, loaded once at startup.

    Stories are frozen pydantic models, so sessions share them without copying.
    """

    by_id: dict[str, Story]
    default_story_id: str = DEFAULT_STORY_ID

    @staticmethod
    def from_stories(stories: list[Story], *, default_story_id: str = DEFAULT_STORY_ID) -> "StoryCatalog":
        by_id: dict[str, Story] = {}
        for story in stories:
            if story.id in by_id:
                raise StoryLoadError(f"Duplicate story id: {story.id}")
            _check_story(story)
            by_id[story.id] = story
        return StoryCatalog(by_id=by_id, default_story_id=default_story_id)

    def load_story(self, story_id: str | None = None) -> Story:
        sid = story_id or self.default_story_id
        story = self.by_id.get(sid)
        if story is None:
            raise NotFound(f"Story not found: {sid}")
        return story

    def stories(self) -> list[Story]:
        return list(self.by_id.values())

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and item in self.by_id


def _check_story(story: Story) -> None:
    scene_ids: set[str] = set()
    for scene in story.scenes:
        if scene.id in scene_ids:
            raise StoryLoadError(f"Duplicate scene id in story {story.id}: {scene.id}")
        scene_ids.add(scene.id)

        choice_ids = scene.choice_ids()
        if len(set(choice_ids)) != len(choice_ids):
            raise StoryLoadError(f"Duplicate choice id in scene {story.id}/{scene.id}")

    # Dangling targets are not fatal here; the session reports them when a vote lands on one.
    for scene in story.scenes:
        for choice in scene.choices:
            if choice.target_scene_id is not None and choice.target_scene_id not in scene_ids:
                logger.warning(
                    "Story %s: choice %s/%s targets unknown scene %s",
                    story.id,
                    scene.id,
                    choice.id,
                    choice.target_scene_id,
                )


def _read_stories_json(path: Path) -> list[Story]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise StoryLoadError(f"Story file not found: {path}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoryLoadError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, list) or not data:
        raise StoryLoadError(f"Expected a non-empty list of stories in {path}")

    try:
        return [Story.model_validate(item) for item in data]
    except ValidationError as e:
        raise StoryLoadError(f"Invalid story definition in {path}: {e}") from e


def _fallback_stories() -> list[Story]:
    """Tiny built-in story used when no story file is available."""

    return [
        Story(
            id=DEFAULT_STORY_ID,
            title="The Crossroads",
            scenes=(
                Scene(
                    id="scene-1",
                    title="A Fork in the Road",
                    text="The path splits beneath an old oak. Left drops toward the river, right climbs into the hills.",
                    choices=(
                        Choice(id="left", text="Take the river path", target_scene_id="scene-2"),
                        Choice(id="right", text="Climb into the hills", target_scene_id="scene-3"),
                    ),
                ),
                Scene(
                    id="scene-2",
                    title="The River",
                    text="A ferryman waits at the bank, humming to himself.",
                    choices=(
                        Choice(id="board", text="Board the ferry", target_scene_id="scene-4"),
                        Choice(id="swim", text="Swim across"),
                    ),
                ),
                Scene(
                    id="scene-3",
                    title="The Hills",
                    text="Wind howls through the heather. A shepherd's hut stands empty.",
                    choices=(
                        Choice(id="rest", text="Rest in the hut", target_scene_id="scene-4"),
                        Choice(id="press-on", text="Press on through the night", target_scene_id="scene-4"),
                    ),
                ),
                Scene(
                    id="scene-4",
                    title="Home",
                    text="By some road or other, you make it home.",
                ),
            ),
        )
    ]


def load_story_catalog(
    *,
    path: Path | None = None,
    root: Path | None = None,
    default_story_id: str = DEFAULT_STORY_ID,
    strict: bool | None = None,
) -> StoryCatalog:
    """Load the story catalog from a JSON file.

    `path` wins over `root`; with neither, `<project root>/assets/stories.json` is used.
    Missing or broken files fall back to the built-in story unless strict mode is on
    (argument, or STORYVOTE_STRICT_STORIES=1).
    """

    if strict is None:
        strict = os.getenv("STORYVOTE_STRICT_STORIES", "").strip().lower() in {"1", "true", "yes"}

    if path is None:
        # project root is three levels up from this file: storyvote/stories/catalog.py
        base = root if root is not None else Path(__file__).resolve().parents[2]
        path = base / "assets" / "stories.json"

    try:
        catalog = StoryCatalog.from_stories(_read_stories_json(path), default_story_id=default_story_id)
    except StoryLoadError as e:
        if strict:
            raise
        logger.warning("Falling back to built-in story: %s", e)
        catalog = StoryCatalog.from_stories(_fallback_stories(), default_story_id=DEFAULT_STORY_ID)
        logger.info("Loaded %d built-in stories", len(catalog.by_id))
        return catalog

    logger.info("Loaded %d stories from %s", len(catalog.by_id), path)
    return catalog

"""Static story content: loaded once at startup, shared read-only by every session."""

from storyvote.stories.catalog import StoryCatalog, StoryLoadError, load_story_catalog

__all__ = ["StoryCatalog", "StoryLoadError", "load_story_catalog"]

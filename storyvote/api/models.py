from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Choice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    # None => picking this choice ends the game without moving.
    target_scene_id: str | None = None


class Scene(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    text: str
    choices: tuple[Choice, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return not self.choices

    def choice(self, choice_id: str) -> Choice | None:
        return next((c for c in self.choices if c.id == choice_id), None)

    def choice_ids(self) -> list[str]:
        return [c.id for c in self.choices]


class Story(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    scenes: tuple[Scene, ...] = Field(..., min_length=1)

    @property
    def first_scene(self) -> Scene:
        return self.scenes[0]

    def scene(self, scene_id: str) -> Scene | None:
        return next((s for s in self.scenes if s.id == scene_id), None)


class Player(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class GameStatus(StrEnum):
    waiting = "WAITING"
    playing = "PLAYING"
    finished = "FINISHED"


class GameView(BaseModel):
    id: str
    story_id: str
    created_at: datetime
    status: GameStatus
    scene: Scene
    players: list[Player]
    # player id -> choice id, current round only.
    votes: dict[str, str] = Field(default_factory=dict)
    max_players: int


class GameSummary(BaseModel):
    id: str
    story_id: str
    created_at: datetime
    status: GameStatus
    player_count: int
    max_players: int


class GameJoinable(BaseModel):
    id: str
    created_at: datetime
    player_count: int
    max_players: int


class StorySummary(BaseModel):
    id: str
    title: str
    scene_count: int


class GameCreateRequest(BaseModel):
    story_id: str | None = None


class GameIdResponse(BaseModel):
    game_id: str


class JoinRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)


class JoinResponse(BaseModel):
    game_id: str
    player_id: str


class VoteRequest(BaseModel):
    player_id: str
    choice_id: str


class GameListResponse(BaseModel):
    games: list[GameSummary]


class JoinableListResponse(BaseModel):
    games: list[GameJoinable]


class StoryListResponse(BaseModel):
    stories: list[StorySummary]


class ChatRequest(BaseModel):
    author: str = Field(..., min_length=1, max_length=64)
    text: str = Field(..., min_length=1, max_length=4000)


class ChatEntry(BaseModel):
    seq: int
    author: str
    text: str
    created_at: datetime


class TodoRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)


class TodoEntry(BaseModel):
    seq: int
    text: str
    created_at: datetime


class WsCommand(BaseModel):
    action: Literal["subscribe", "unsubscribe", "ping"]
    channel: str | None = None

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from storyvote.api.models import ChatEntry, GameJoinable, Player, Scene, TodoEntry
from storyvote.channels import LOBBY_CHANNEL, ChannelBroker, game_channel


class SceneUpdateData(BaseModel):
    scene: Scene
    votes: dict[str, str] = Field(default_factory=dict)


class GameFinishedData(BaseModel):
    scene_id: str


class VoteUpdateData(BaseModel):
    votes: dict[str, str]


class RosterUpdate(BaseModel):
    type: Literal["roster-update"] = "roster-update"
    data: list[Player]


class SceneUpdate(BaseModel):
    type: Literal["scene-update"] = "scene-update"
    data: SceneUpdateData


class GameFinished(BaseModel):
    type: Literal["game-finished"] = "game-finished"
    data: GameFinishedData


class VoteUpdate(BaseModel):
    type: Literal["vote-update"] = "vote-update"
    data: VoteUpdateData


class LobbyGames(BaseModel):
    type: Literal["lobby-games"] = "lobby-games"
    data: list[GameJoinable]


class ChatMessage(BaseModel):
    type: Literal["chat:message"] = "chat:message"
    data: ChatEntry


class TodoCreated(BaseModel):
    type: Literal["todo:create"] = "todo:create"
    data: TodoEntry


ChannelMessage = Annotated[
    Union[RosterUpdate, SceneUpdate, GameFinished, VoteUpdate, LobbyGames, ChatMessage, TodoCreated],
    Field(discriminator="type"),
]

channel_message_adapter: TypeAdapter[ChannelMessage] = TypeAdapter(ChannelMessage)


def parse_channel_message(raw: dict[str, object]) -> ChannelMessage:
    """Parse a wire frame back into its typed variant (clients and tests)."""

    return channel_message_adapter.validate_python(raw)


class EventPublisher:
    """Turns session and lobby changes into channel messages.

    Game-specific traffic goes to the game's own channel; lobby traffic goes to
    the shared lobby channel.
    """

    def __init__(self, broker: ChannelBroker) -> None:
        self._broker = broker

    def _send(self, channel: str, message: BaseModel) -> int:
        return self._broker.publish(channel, message.model_dump(mode="json"))

    def roster_changed(self, game_id: str, players: list[Player]) -> int:
        return self._send(game_channel(game_id), RosterUpdate(data=players))

    def votes_changed(self, game_id: str, votes: dict[str, str]) -> int:
        return self._send(game_channel(game_id), VoteUpdate(data=VoteUpdateData(votes=dict(votes))))

    def scene_changed(self, game_id: str, scene: Scene) -> int:
        return self._send(game_channel(game_id), SceneUpdate(data=SceneUpdateData(scene=scene, votes={})))

    def game_finished(self, game_id: str, scene_id: str) -> int:
        return self._send(game_channel(game_id), GameFinished(data=GameFinishedData(scene_id=scene_id)))

    def joinable_games_changed(self, games: list[GameJoinable]) -> int:
        return self._send(LOBBY_CHANNEL, LobbyGames(data=games))

    def chat_posted(self, entry: ChatEntry) -> int:
        return self._send(LOBBY_CHANNEL, ChatMessage(data=entry))

    def todo_created(self, entry: TodoEntry) -> int:
        return self._send(LOBBY_CHANNEL, TodoCreated(data=entry))

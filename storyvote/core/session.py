from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from storyvote.api.models import (
    Choice,
    GameJoinable,
    GameStatus,
    GameSummary,
    GameView,
    Player,
    Scene,
    Story,
)
from storyvote.core.fsm import SessionFSM
from storyvote.core.tally import tally
from storyvote.errors import (
    DuplicatePlayer,
    GameAlreadyFinished,
    GameFull,
    GameNotJoinable,
    InvalidState,
    InvalidStoryState,
    UnknownChoice,
    UnknownPlayer,
)


@dataclass(frozen=True, slots=True)
class Progress:
    """Outcome of `GameSession.try_progress`.

    - `progressed`: the round closed and a winner was applied.
    - `winner`: the winning choice, when progressed.
    - `scene`: the current scene after the call.
    - `finished`: the game reached an end in this call.
    """

    progressed: bool
    scene: Scene
    winner: Choice | None = None
    finished: bool = False


class GameSession:
    """One playthrough of a story.

    Mutating methods expect the caller to hold `self.lock`; `GameRegistry` does
    this so that a vote and the progression check see the same vote set.
    """

    def __init__(self, *, game_id: str, story: Story, created_at: datetime, max_players: int) -> None:
        self.id = game_id
        self.story = story
        self.created_at = created_at
        self.max_players = max_players
        self.current_scene_id = story.first_scene.id
        self.players: dict[str, Player] = {}
        self.votes: dict[str, str] = {}
        self.lock = threading.RLock()
        # Set by the registry once the session has been dropped.
        self.closed = False

        self._fsm = SessionFSM()
        if story.first_scene.is_terminal:
            self._fsm.finish()

    @property
    def status(self) -> GameStatus:
        return self._fsm.status

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def is_joinable(self) -> bool:
        return self.status == GameStatus.waiting and not self.is_full

    def current_scene(self) -> Scene:
        scene = self.story.scene(self.current_scene_id)
        if scene is None:
            raise InvalidState(f"Invalid scene state: {self.current_scene_id}")
        return scene

    def players_list(self) -> list[Player]:
        return list(self.players.values())

    def add_player(self, player: Player) -> None:
        if player.id in self.players:
            raise DuplicatePlayer("Player already exists")
        if self.status != GameStatus.waiting:
            raise GameNotJoinable(f"Game is not accepting players (status {self.status.value})")
        if self.is_full:
            raise GameFull("Game is full")
        self.players[player.id] = player

    def cast_vote(self, player_id: str, choice_id: str) -> None:
        if self.status == GameStatus.finished:
            raise GameAlreadyFinished("Game is finished")
        if player_id not in self.players:
            raise UnknownPlayer("Player not found")
        scene = self.current_scene()
        if scene.choice(choice_id) is None:
            raise UnknownChoice(f"Choice {choice_id!r} is not available in scene {self.current_scene_id!r}")

        # A vote that closes the round must resolve before anything is recorded.
        votes = {**self.votes, player_id: choice_id}
        if self._all_voted(votes):
            self._resolve(scene, votes)

        self.votes[player_id] = choice_id
        if self.status == GameStatus.waiting:
            self._fsm.begin()

    def all_voted(self) -> bool:
        return self._all_voted(self.votes)

    def _all_voted(self, votes: dict[str, str]) -> bool:
        return bool(self.players) and all(pid in votes for pid in self.players)

    def _resolve(self, scene: Scene, votes: dict[str, str]) -> tuple[Choice, Scene | None]:
        """Winning choice for `votes` and the scene it leads to (None for an ending)."""

        winner_id = tally(votes, scene.choice_ids())
        winner = scene.choice(winner_id)
        if winner is None:
            raise InvalidState(f"Winning choice {winner_id!r} is not in scene {scene.id!r}")
        if winner.target_scene_id is None:
            return winner, None

        target = self.story.scene(winner.target_scene_id)
        if target is None:
            raise InvalidStoryState(
                f"Choice {winner.id!r} in scene {scene.id!r} targets unknown scene {winner.target_scene_id!r}"
            )
        return winner, target

    def try_progress(self) -> Progress:
        scene = self.current_scene()
        if self.status == GameStatus.finished or not self.all_voted():
            return Progress(progressed=False, scene=scene)

        winner, target = self._resolve(scene, self.votes)
        if target is None:
            self.votes.clear()
            self._fsm.finish()
            return Progress(progressed=True, scene=scene, winner=winner, finished=True)

        self.current_scene_id = target.id
        self.votes.clear()
        if target.is_terminal:
            self._fsm.finish()
        return Progress(progressed=True, scene=target, winner=winner, finished=target.is_terminal)

    def snapshot(self) -> GameView:
        return GameView(
            id=self.id,
            story_id=self.story.id,
            created_at=self.created_at,
            status=self.status,
            scene=self.current_scene(),
            players=self.players_list(),
            votes=dict(self.votes),
            max_players=self.max_players,
        )

    def summary(self) -> GameSummary:
        return GameSummary(
            id=self.id,
            story_id=self.story.id,
            created_at=self.created_at,
            status=self.status,
            player_count=len(self.players),
            max_players=self.max_players,
        )

    def joinable(self) -> GameJoinable:
        return GameJoinable(
            id=self.id,
            created_at=self.created_at,
            player_count=len(self.players),
            max_players=self.max_players,
        )

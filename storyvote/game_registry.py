from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from storyvote.api.models import GameJoinable, GameSummary, GameView, Player, Story
from storyvote.config import DEFAULT_GAME_TTL_SECONDS, DEFAULT_MAX_PLAYERS
from storyvote.core.events import EventPublisher
from storyvote.core.session import GameSession
from storyvote.errors import NotFound


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class JoinResult:
    game_id: str
    player_id: str


class GameRegistry:
    """Owns every live game session in this process.

    Locking:
      - `_lock` guards the id -> session map only.
      - each session's own lock guards its roster/votes/scene/status.
    The registry lock is never held while waiting on a session lock.
    """

    def __init__(
        self,
        *,
        max_players: int = DEFAULT_MAX_PLAYERS,
        ttl: timedelta = timedelta(seconds=DEFAULT_GAME_TTL_SECONDS),
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        if max_players < 1:
            raise ValueError("max_players must be >= 1")
        self.max_players = max_players
        self.ttl = ttl
        self._publisher = publisher
        self._clock = clock
        self._games: dict[str, GameSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)

    def _sessions(self) -> list[GameSession]:
        with self._lock:
            return list(self._games.values())

    def create_game(self, story: Story, *, max_players: int | None = None) -> str:
        if max_players is None:
            max_players = self.max_players
        elif max_players < 1:
            raise ValueError("max_players must be >= 1")

        game_id = str(uuid4())
        session = GameSession(
            game_id=game_id,
            story=story,
            created_at=self._clock(),
            max_players=max_players,
        )
        with self._lock:
            self._games[game_id] = session

        logger.info("created game %s (story %s)", game_id, story.id)
        self._publish_joinable()
        return game_id

    def get_game(self, game_id: str) -> GameSession:
        with self._lock:
            session = self._games.get(game_id)
        if session is None:
            raise NotFound("Game not found")
        return session

    def has_game(self, game_id: str) -> bool:
        with self._lock:
            return game_id in self._games

    def view_game(self, game_id: str) -> GameView:
        session = self.get_game(game_id)
        with session.lock:
            _require_open(session)
            return session.snapshot()

    def list_games(self) -> list[GameSummary]:
        out: list[GameSummary] = []
        for session in self._sessions():
            with session.lock:
                if not session.closed:
                    out.append(session.summary())
        return out

    def list_joinable_games(self) -> list[GameJoinable]:
        out: list[GameJoinable] = []
        for session in self._sessions():
            with session.lock:
                if not session.closed and session.is_joinable:
                    out.append(session.joinable())
        return out

    def add_player_to(self, game_id: str, player: Player) -> GameView:
        session = self.get_game(game_id)
        with session.lock:
            _require_open(session)
            session.add_player(player)
            view = session.snapshot()
            if self._publisher is not None:
                self._publisher.roster_changed(game_id, view.players)

        logger.info("player %s joined game %s (%d/%d)", player.id, game_id, len(view.players), view.max_players)
        self._publish_joinable()
        return view

    def join_game(self, game_id: str, player_name: str) -> JoinResult:
        # Every join mints a fresh player id, so the same person can join twice.
        player = Player(id=str(uuid4()), name=player_name)
        self.add_player_to(game_id, player)
        return JoinResult(game_id=game_id, player_id=player.id)

    def cast_vote(self, game_id: str, player_id: str, choice_id: str) -> GameView:
        session = self.get_game(game_id)
        with session.lock:
            _require_open(session)
            session.cast_vote(player_id, choice_id)
            progress = session.try_progress()

            view = session.snapshot()
            if self._publisher is not None:
                if not progress.progressed:
                    self._publisher.votes_changed(game_id, view.votes)
                elif progress.finished:
                    self._publisher.scene_changed(game_id, progress.scene)
                    self._publisher.game_finished(game_id, progress.scene.id)
                else:
                    self._publisher.scene_changed(game_id, progress.scene)

        if progress.progressed:
            logger.info(
                "game %s progressed via %s to %s%s",
                game_id,
                progress.winner.id if progress.winner else "?",
                progress.scene.id,
                " (finished)" if progress.finished else "",
            )
        return view

    def remove_game(self, game_id: str) -> None:
        with self._lock:
            session = self._games.get(game_id)
        if session is None:
            return

        if self._drop(session):
            logger.info("removed game %s", game_id)
            self._publish_joinable()

    def sweep_expired(self, now: datetime | None = None, ttl: timedelta | None = None) -> list[str]:
        """Remove every session whose `created_at + ttl` is before `now`."""

        now = now or self._clock()
        ttl = ttl if ttl is not None else self.ttl

        candidates = [s for s in self._sessions() if s.created_at + ttl < now]
        removed = [s.id for s in candidates if self._drop(s)]

        if removed:
            logger.info("swept %d expired games", len(removed))
            self._publish_joinable()
        return removed

    def _drop(self, session: GameSession) -> bool:
        # Session lock first so an in-flight join/vote completes before removal.
        with session.lock:
            if session.closed:
                return False
            with self._lock:
                if self._games.get(session.id) is session:
                    del self._games[session.id]
            session.closed = True
            return True

    def _publish_joinable(self) -> None:
        if self._publisher is not None:
            self._publisher.joinable_games_changed(self.list_joinable_games())


def _require_open(session: GameSession) -> None:
    if session.closed:
        raise NotFound("Game not found")

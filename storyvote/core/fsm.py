from __future__ import annotations

from statemachine import State, StateMachine

from storyvote.api.models import GameStatus


class SessionFSM(StateMachine):
    """Lifecycle guard for a game session.

    - waiting -> playing on the first accepted vote
    - waiting/playing -> finished when the story reaches an end
    The session applies the actual mutations; the FSM only guards transitions.
    """

    waiting = State(GameStatus.waiting.value, value=GameStatus.waiting.value, initial=True)
    playing = State(GameStatus.playing.value, value=GameStatus.playing.value)
    finished = State(GameStatus.finished.value, value=GameStatus.finished.value, final=True)

    begin = waiting.to(playing)
    finish = waiting.to(finished) | playing.to(finished)

    @property
    def status(self) -> GameStatus:
        return GameStatus(str(self.current_state.value))

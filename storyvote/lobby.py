from __future__ import annotations

import threading
from datetime import UTC, datetime

from storyvote.api.models import ChatEntry, TodoEntry
from storyvote.core.events import EventPublisher


def _now() -> datetime:
    return datetime.now(tz=UTC)


class Lobby:
    """Shared lobby: an append-only chat log and todo list.

    New entries are broadcast on the lobby channel when a publisher is set.
    """

    def __init__(self, *, publisher: EventPublisher | None = None) -> None:
        self._publisher = publisher
        self._chat: list[ChatEntry] = []
        self._todos: list[TodoEntry] = []
        self._lock = threading.Lock()

    def post_chat(self, author: str, text: str) -> ChatEntry:
        with self._lock:
            seq = (self._chat[-1].seq + 1) if self._chat else 1
            entry = ChatEntry(seq=seq, author=author, text=text, created_at=_now())
            self._chat.append(entry)
            if self._publisher is not None:
                self._publisher.chat_posted(entry)
        return entry

    def chat_log(self, *, limit: int | None = None) -> list[ChatEntry]:
        with self._lock:
            entries = list(self._chat)
        return entries[-limit:] if limit else entries

    def add_todo(self, text: str) -> TodoEntry:
        with self._lock:
            seq = (self._todos[-1].seq + 1) if self._todos else 1
            entry = TodoEntry(seq=seq, text=text, created_at=_now())
            self._todos.append(entry)
            if self._publisher is not None:
                self._publisher.todo_created(entry)
        return entry

    def todos(self) -> list[TodoEntry]:
        with self._lock:
            return list(self._todos)

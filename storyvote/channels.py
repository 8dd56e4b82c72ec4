from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Protocol


logger = logging.getLogger(__name__)

LOBBY_CHANNEL = "lobby"
GAME_CHANNEL_PREFIX = "game:"  # + {game_id}


def game_channel(game_id: str) -> str:
    return f"{GAME_CHANNEL_PREFIX}{game_id}"


class Connection(Protocol):
    """Transport side of a subscriber.

    `deliver` must not block. It may raise when the transport is gone or
    backed up; the broker then drops the connection.
    """

    connection_id: str

    def deliver(self, message: Mapping[str, Any]) -> None: ...


class ChannelBroker:
    """In-process pub/sub keyed by channel name.

    Contract:
      - register a transport with `add_connection(connection)`.
      - relate it to channels with `subscribe` / `unsubscribe`.
      - fan out JSON-serializable dicts with `publish(channel, message)`.

    The broker never looks inside messages. Subscriptions may exist for a
    connection id with no registered transport; publishes skip those.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_channel: dict[str, set[str]] = defaultdict(set)
        self._by_connection: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def add_connection(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.connection_id] = connection

    def subscribe(self, connection_id: str, channel: str) -> None:
        with self._lock:
            self._by_channel[channel].add(connection_id)
            self._by_connection[connection_id].add(channel)
        logger.debug("connection %s subscribed to %s", connection_id, channel)

    def unsubscribe(self, connection_id: str, channel: str | None = None) -> None:
        with self._lock:
            self._unsubscribe_locked(connection_id, channel)
        logger.debug("connection %s unsubscribed from %s", connection_id, channel or "all channels")

    def _unsubscribe_locked(self, connection_id: str, channel: str | None) -> None:
        channels = self._by_connection.get(connection_id)
        if not channels:
            return

        targets = [channel] if channel is not None else list(channels)
        for ch in targets:
            if ch not in channels:
                continue
            channels.discard(ch)
            members = self._by_channel.get(ch)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    self._by_channel.pop(ch, None)

        if not channels:
            self._by_connection.pop(connection_id, None)

    def remove_connection(self, connection_id: str) -> None:
        with self._lock:
            self._unsubscribe_locked(connection_id, None)
            self._connections.pop(connection_id, None)

    def subscribers(self, channel: str) -> set[str]:
        with self._lock:
            return set(self._by_channel.get(channel, ()))

    def channels_for(self, connection_id: str) -> set[str]:
        with self._lock:
            return set(self._by_connection.get(connection_id, ()))

    def publish(self, channel: str, message: Mapping[str, Any]) -> int:
        """Deliver `message` to every subscriber of `channel`.

        Returns the number of connections that accepted it. Never raises for
        delivery problems.
        """

        with self._lock:
            targets = [
                self._connections[cid] for cid in self._by_channel.get(channel, ()) if cid in self._connections
            ]

        if not targets:
            return 0

        delivered = 0
        dead: list[str] = []
        for conn in targets:
            try:
                conn.deliver(message)
            except Exception:
                logger.warning("dropping connection %s after failed delivery on %s", conn.connection_id, channel)
                dead.append(conn.connection_id)
            else:
                delivered += 1

        for cid in dead:
            self.remove_connection(cid)

        return delivered

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from storyvote.channels import ChannelBroker
from storyvote.realtime import ConnectionClosed, OutboxFull, QueuedWebSocketConnection


class FakeWebSocket:
    """Stands in for a FastAPI WebSocket; optionally stalls or fails on send."""

    def __init__(self, *, stall: bool = False, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None
        self._stall = stall
        self._fail = fail
        self._release = asyncio.Event()

    async def send_json(self, data: dict[str, Any]) -> None:
        if self._fail:
            raise RuntimeError("socket gone")
        if self._stall:
            await self._release.wait()
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code


async def _wait_for(predicate: Callable[[], bool]) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def test_frames_are_sent_in_delivery_order() -> None:
    async def _run() -> list[dict[str, Any]]:
        ws = FakeWebSocket()
        conn = QueuedWebSocketConnection(ws, outbox_size=10)  # type: ignore[arg-type]
        conn.start()
        for i in range(5):
            conn.deliver({"type": "n", "data": i})
        # deliver only enqueues; nothing has been sent before the loop runs
        assert ws.sent == []
        await _wait_for(lambda: len(ws.sent) == 5)
        await conn.close()
        return ws.sent

    sent = asyncio.run(_run())
    assert [m["data"] for m in sent] == [0, 1, 2, 3, 4]


def test_full_outbox_drops_connection_and_closes_socket() -> None:
    async def _run() -> None:
        broker = ChannelBroker()
        ws = FakeWebSocket(stall=True)
        conn = QueuedWebSocketConnection(ws, outbox_size=2, connection_id="slow")  # type: ignore[arg-type]
        conn.start()
        broker.add_connection(conn)
        broker.subscribe("slow", "game:1")

        delivered = [broker.publish("game:1", {"type": "n", "data": i}) for i in range(5)]

        assert delivered == [1, 1, 0, 0, 0]
        assert broker.subscribers("game:1") == set()
        assert conn.closed is True

        await _wait_for(lambda: ws.close_code is not None)
        assert ws.close_code == 1013
        await conn.close()

    asyncio.run(_run())


def test_deliver_after_overflow_raises() -> None:
    async def _run() -> None:
        conn = QueuedWebSocketConnection(FakeWebSocket(stall=True), outbox_size=1)  # type: ignore[arg-type]
        conn.deliver({"type": "a", "data": None})
        with pytest.raises(OutboxFull):
            conn.deliver({"type": "b", "data": None})
        with pytest.raises(ConnectionClosed):
            conn.deliver({"type": "c", "data": None})
        await conn.close()

    asyncio.run(_run())


def test_deliver_from_another_thread() -> None:
    async def _run() -> None:
        ws = FakeWebSocket()
        conn = QueuedWebSocketConnection(ws, outbox_size=10)  # type: ignore[arg-type]
        conn.start()

        def _publish_from_worker() -> None:
            for i in range(3):
                conn.deliver({"type": "n", "data": i})

        await asyncio.to_thread(_publish_from_worker)
        await _wait_for(lambda: len(ws.sent) == 3)
        assert [m["data"] for m in ws.sent] == [0, 1, 2]
        await conn.close()

    asyncio.run(_run())


def test_overflow_from_another_thread_closes_socket() -> None:
    async def _run() -> None:
        ws = FakeWebSocket(stall=True)
        conn = QueuedWebSocketConnection(ws, outbox_size=1)  # type: ignore[arg-type]
        conn.start()

        def _flood() -> None:
            # One frame in flight plus one queued; the third cannot fit.
            for i in range(3):
                try:
                    conn.deliver({"type": "n", "data": i})
                except ConnectionClosed:
                    break

        await asyncio.to_thread(_flood)
        await _wait_for(lambda: ws.close_code is not None)

        assert conn.closed is True
        assert ws.close_code == 1013
        with pytest.raises(ConnectionClosed):
            conn.deliver({"type": "late", "data": None})
        await conn.close()

    asyncio.run(_run())


def test_send_failure_stops_sender_and_broker_drops_it() -> None:
    async def _run() -> None:
        broker = ChannelBroker()
        conn = QueuedWebSocketConnection(FakeWebSocket(fail=True), connection_id="gone")  # type: ignore[arg-type]
        conn.start()
        broker.add_connection(conn)
        broker.subscribe("gone", "lobby")

        assert broker.publish("lobby", {"type": "x", "data": 1}) == 1
        await _wait_for(lambda: conn.closed)

        assert broker.publish("lobby", {"type": "x", "data": 2}) == 0
        assert broker.subscribers("lobby") == set()
        await conn.close()

    asyncio.run(_run())

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from fastapi import WebSocket, status


logger = logging.getLogger(__name__)


class ConnectionClosed(RuntimeError):
    pass


class OutboxFull(ConnectionClosed):
    pass


class QueuedWebSocketConnection:
    """Broker-facing adapter for one WebSocket.

    `deliver` only enqueues; a single sender task drains the queue, so frames
    reach the client in publish order and a slow client never blocks publishers.
    A client that lets its queue fill up is treated as dead: the sender stops and
    the socket is closed with 1013 (try again later).
    """

    def __init__(self, websocket: WebSocket, *, outbox_size: int = 100, connection_id: str | None = None) -> None:
        self.connection_id = connection_id or uuid4().hex
        self._websocket = websocket
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=outbox_size)
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._sender: asyncio.Task[None] | None = None
        self._abort: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._sender = self._loop.create_task(self._drain())

    def deliver(self, message: Mapping[str, Any]) -> None:
        if self._closed:
            raise ConnectionClosed(self.connection_id)

        frame = dict(message)
        if _running_loop() is self._loop:
            self._enqueue(frame)
        else:
            self._loop.call_soon_threadsafe(self._enqueue_or_close, frame)

    def _enqueue(self, frame: dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionClosed(self.connection_id)
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as e:
            logger.warning("outbox full for connection %s; closing", self.connection_id)
            self._closed = True
            self._abort = self._loop.create_task(self._close_socket(status.WS_1013_TRY_AGAIN_LATER))
            raise OutboxFull(self.connection_id) from e

    def _enqueue_or_close(self, frame: dict[str, Any]) -> None:
        # Runs on the loop via call_soon_threadsafe; the publisher has already returned.
        try:
            self._enqueue(frame)
        except ConnectionClosed:
            pass

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await self._websocket.send_json(frame)
            except Exception:
                logger.info("send failed on connection %s; stopping sender", self.connection_id)
                self._closed = True
                return

    async def _close_socket(self, code: int) -> None:
        await self._stop_sender()
        try:
            await self._websocket.close(code=code)
        except Exception:
            logger.info("close failed on connection %s", self.connection_id)

    async def _stop_sender(self) -> None:
        if self._sender is None:
            return
        sender, self._sender = self._sender, None
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        self._closed = True
        if self._abort is not None:
            await self._abort
            self._abort = None
        await self._stop_sender()


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None

"""Websocket connections with reconnection, a send queue and a handler interface."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from arbfinder.exchange.traits import (
    ArbFinderError,
    ExchangeConfig,
    WebSocketError,
    WebSocketHandler,
)

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (WebSocketException, OSError, asyncio.TimeoutError)


class WebSocketConnection:
    """One websocket connection to an exchange."""

    def __init__(self, config: ExchangeConfig) -> None:
        self.url = config.websocket_url
        self._ws = None
        self._connected = False
        self._reconnect_attempts = 0
        self._max_reconnect_attempts = config.reconnect_attempts
        self._reconnect_delay = config.reconnect_delay_ms / 1000.0
        self._last_ping: float | None = None
        self._last_pong: float | None = None
        self._outgoing: asyncio.Queue[str] | None = None
        self._closing: asyncio.Event | None = None
        self._handler: WebSocketHandler | None = None

    async def connect(self) -> None:
        logger.info("Connecting to WebSocket: %s", self.url)
        parsed = urlparse(self.url)
        if not parsed.scheme or not parsed.netloc:
            raise WebSocketError(f"Invalid WebSocket URL: {self.url!r}")
        try:
            self._ws = await websockets.connect(self.url)
        except _TRANSPORT_ERRORS as exc:
            logger.error("Failed to connect to WebSocket: %s", exc)
            raise WebSocketError(f"Connection failed: {exc}") from exc
        self._connected = True
        self._reconnect_attempts = 0
        logger.info("WebSocket connected")

    async def disconnect(self) -> None:
        logger.info("Disconnecting WebSocket")
        if self._closing is not None:
            self._closing.set()
        await self._close_stream()
        self._connected = False
        self._reconnect_attempts = 0

    def is_connected(self) -> bool:
        return self._connected

    async def send_message(self, message: str) -> None:
        if self._ws is None:
            raise WebSocketError("Not connected")
        try:
            await self._ws.send(message)
        except _TRANSPORT_ERRORS as exc:
            raise WebSocketError(f"Failed to send message: {exc}") from exc
        logger.debug("Sent WebSocket message: %s", message)

    async def send_ping(self) -> None:
        """Send a ping; the pong time is recorded when the peer answers."""
        if self._ws is None:
            raise WebSocketError("Not connected")
        try:
            pong_waiter = await self._ws.ping()
        except _TRANSPORT_ERRORS as exc:
            raise WebSocketError(f"Failed to send ping: {exc}") from exc
        self._last_ping = time.monotonic()
        pong_waiter.add_done_callback(self._on_pong_received)
        logger.debug("Sent WebSocket ping")

    def last_pong_latency(self) -> float | None:
        """Seconds between the last ping and the pong that followed it."""
        if self._last_ping is None or self._last_pong is None:
            return None
        if self._last_pong > self._last_ping:
            return self._last_pong - self._last_ping
        return None

    def queue_message(self, message: str) -> None:
        """Queue a message to be sent by the running handler loop."""
        if self._outgoing is None:
            raise WebSocketError("Message queue is not running")
        self._outgoing.put_nowait(message)

    async def run_with_handler(self, handler: WebSocketHandler) -> None:
        """Receive messages into ``handler`` until ``disconnect`` is called.

        Reconnects whenever the connection drops and raises once the configured
        number of consecutive reconnection attempts has failed.
        """
        self._outgoing = asyncio.Queue()
        self._closing = asyncio.Event()
        self._handler = handler
        recv_task: asyncio.Future | None = None
        queue_task = asyncio.ensure_future(self._outgoing.get())
        close_task = asyncio.ensure_future(self._closing.wait())
        try:
            while not self._closing.is_set():
                if not self._connected:
                    if recv_task is not None:
                        recv_task.cancel()
                        recv_task = None
                    try:
                        await self._reconnect(handler)
                    except ArbFinderError as exc:
                        logger.error("Failed to reconnect: %s", exc)
                        if self._reconnect_attempts >= self._max_reconnect_attempts:
                            raise WebSocketError("Max reconnection attempts reached") from exc
                        await asyncio.sleep(self._reconnect_delay)
                        continue

                if recv_task is None:
                    recv_task = asyncio.ensure_future(self._ws.recv())

                done, _ = await asyncio.wait(
                    {recv_task, queue_task, close_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if close_task in done:
                    logger.info("Received close signal")
                    break
                if queue_task in done:
                    message = queue_task.result()
                    queue_task = asyncio.ensure_future(self._outgoing.get())
                    try:
                        await self.send_message(message)
                    except WebSocketError as exc:
                        logger.error("Failed to send queued message: %s", exc)
                if recv_task in done:
                    finished, recv_task = recv_task, None
                    await self._handle_received(finished, handler)
        finally:
            for task in (recv_task, queue_task, close_task):
                if task is not None and not task.done():
                    task.cancel()
            self._outgoing = None
            self._closing = None
            self._handler = None

    async def _handle_received(self, finished: asyncio.Future, handler: WebSocketHandler) -> None:
        try:
            message = finished.result()
        except ConnectionClosedOK as exc:
            logger.warning("Received WebSocket close: %s", exc)
            self._connected = False
            try:
                await handler.on_disconnect()
            except ArbFinderError as handler_exc:
                logger.error("Error handling message: %s", handler_exc)
            return
        except (ConnectionClosed, *_TRANSPORT_ERRORS) as exc:
            logger.error("WebSocket error: %s", exc)
            self._connected = False
            try:
                await handler.on_error(WebSocketError(str(exc)))
            except ArbFinderError as handler_exc:
                logger.error("Handler error: %s", handler_exc)
            return

        if isinstance(message, bytes):
            text = message.decode("utf-8", errors="replace")
            logger.debug("Received binary WebSocket message: %s", text)
        else:
            text = message
            logger.debug("Received WebSocket message: %s", text)
        try:
            await handler.on_message(text)
        except ArbFinderError as exc:
            logger.error("Error handling message: %s", exc)

    async def _reconnect(self, handler: WebSocketHandler) -> None:
        self._reconnect_attempts += 1
        logger.warning(
            "Attempting to reconnect (%d/%d)",
            self._reconnect_attempts,
            self._max_reconnect_attempts,
        )
        await self._close_stream()
        await self.connect()
        logger.info("Reconnected successfully")
        await handler.on_connect()

    async def _close_stream(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(*_TRANSPORT_ERRORS):
                await ws.close()

    def _on_pong_received(self, waiter: asyncio.Future) -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self._last_pong = time.monotonic()
        logger.debug("Received WebSocket pong")
        if self._handler is not None:
            asyncio.ensure_future(self._notify_pong(self._handler))

    @staticmethod
    async def _notify_pong(handler: WebSocketHandler) -> None:
        try:
            await handler.on_pong()
        except ArbFinderError as exc:
            logger.error("Error handling pong: %s", exc)


class WebSocketManager:
    """Named websocket connections."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocketConnection] = {}

    def add_connection(self, name: str, config: ExchangeConfig) -> None:
        self._connections[name] = WebSocketConnection(config)

    def _lookup(self, name: str) -> WebSocketConnection:
        try:
            return self._connections[name]
        except KeyError:
            raise WebSocketError(f"Connection '{name}' not found") from None

    async def connect(self, name: str) -> None:
        await self._lookup(name).connect()

    async def disconnect(self, name: str) -> None:
        await self._lookup(name).disconnect()

    async def send_message(self, name: str, message: str) -> None:
        await self._lookup(name).send_message(message)

    def is_connected(self, name: str) -> bool:
        connection = self._connections.get(name)
        return connection is not None and connection.is_connected()

    def get_connection(self, name: str) -> WebSocketConnection | None:
        return self._connections.get(name)

    async def disconnect_all(self) -> None:
        for name, connection in self._connections.items():
            try:
                await connection.disconnect()
            except ArbFinderError as exc:
                logger.error("Failed to disconnect %s: %s", name, exc)
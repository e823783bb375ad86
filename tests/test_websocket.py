import asyncio
import socket
from contextlib import asynccontextmanager

import pytest
import websockets

from arbfinder.exchange.traits import ExchangeConfig, WebSocketError, WebSocketHandler
from arbfinder.exchange.websocket import WebSocketConnection, WebSocketManager


async def _echo(ws):
    async for message in ws:
        await ws.send(message)


async def _send_binary(ws):
    await ws.send(b"payload")
    await ws.wait_closed()


@asynccontextmanager
async def _server(handler=_echo):
    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = list(server.sockets)[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"


def _closed_port_url():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"ws://127.0.0.1:{port}"


class RecordingHandler(WebSocketHandler):
    def __init__(self):
        self.messages = []
        self.connects = 0
        self.pongs = 0
        self.connected = asyncio.Event()
        self.received = asyncio.Event()

    async def on_message(self, message):
        self.messages.append(message)
        self.received.set()

    async def on_connect(self):
        self.connects += 1
        self.connected.set()

    async def on_disconnect(self):
        pass

    async def on_error(self, error):
        pass

    async def on_ping(self):
        pass

    async def on_pong(self):
        self.pongs += 1


@pytest.mark.asyncio
async def test_connect_and_disconnect():
    async with _server() as url:
        conn = WebSocketConnection(ExchangeConfig(websocket_url=url))
        assert conn.is_connected() is False
        await conn.connect()
        assert conn.is_connected() is True
        await conn.disconnect()
        assert conn.is_connected() is False


@pytest.mark.asyncio
async def test_send_without_connection_fails():
    conn = WebSocketConnection(ExchangeConfig(websocket_url="ws://127.0.0.1:1"))
    with pytest.raises(WebSocketError, match="Not connected"):
        await conn.send_message("hello")
    with pytest.raises(WebSocketError, match="Not connected"):
        await conn.send_ping()


@pytest.mark.asyncio
async def test_invalid_url_is_rejected():
    conn = WebSocketConnection(ExchangeConfig(websocket_url="not a url"))
    with pytest.raises(WebSocketError, match="Invalid WebSocket URL"):
        await conn.connect()


@pytest.mark.asyncio
async def test_refused_connection_fails():
    conn = WebSocketConnection(ExchangeConfig(websocket_url=_closed_port_url()))
    with pytest.raises(WebSocketError, match="Connection failed"):
        await conn.connect()
    assert conn.is_connected() is False


def test_queue_message_requires_running_loop():
    conn = WebSocketConnection(ExchangeConfig(websocket_url="ws://127.0.0.1:1"))
    with pytest.raises(WebSocketError):
        conn.queue_message("hello")


def test_latency_unknown_before_ping():
    conn = WebSocketConnection(ExchangeConfig(websocket_url="ws://127.0.0.1:1"))
    assert conn.last_pong_latency() is None


@pytest.mark.asyncio
async def test_run_with_handler_echoes_queued_message():
    async with _server() as url:
        conn = WebSocketConnection(ExchangeConfig(websocket_url=url))
        handler = RecordingHandler()
        task = asyncio.ensure_future(conn.run_with_handler(handler))
        await asyncio.wait_for(handler.connected.wait(), timeout=5)
        conn.queue_message("hello")
        await asyncio.wait_for(handler.received.wait(), timeout=5)
        await conn.disconnect()
        await asyncio.wait_for(task, timeout=5)
        assert handler.messages == ["hello"]
        assert handler.connects == 1
        assert conn.is_connected() is False


@pytest.mark.asyncio
async def test_binary_messages_are_decoded():
    async with _server(_send_binary) as url:
        conn = WebSocketConnection(ExchangeConfig(websocket_url=url))
        handler = RecordingHandler()
        task = asyncio.ensure_future(conn.run_with_handler(handler))
        await asyncio.wait_for(handler.received.wait(), timeout=5)
        await conn.disconnect()
        await asyncio.wait_for(task, timeout=5)
        assert handler.messages == ["payload"]


@pytest.mark.asyncio
async def test_run_gives_up_after_max_reconnect_attempts():
    config = ExchangeConfig(
        websocket_url=_closed_port_url(), reconnect_attempts=2, reconnect_delay_ms=0
    )
    conn = WebSocketConnection(config)
    handler = RecordingHandler()
    with pytest.raises(WebSocketError, match="Max reconnection attempts reached"):
        await asyncio.wait_for(conn.run_with_handler(handler), timeout=10)
    assert handler.connects == 0


@pytest.mark.asyncio
async def test_ping_records_latency():
    async with _server() as url:
        conn = WebSocketConnection(ExchangeConfig(websocket_url=url))
        await conn.connect()
        await conn.send_ping()
        for _ in range(100):
            if conn.last_pong_latency() is not None:
                break
            await asyncio.sleep(0.01)
        latency = conn.last_pong_latency()
        await conn.disconnect()
        assert latency >= 0.0


@pytest.mark.asyncio
async def test_manager_unknown_connection():
    manager = WebSocketManager()
    assert manager.is_connected("missing") is False
    assert manager.get_connection("missing") is None
    with pytest.raises(WebSocketError, match="Connection 'missing' not found"):
        await manager.connect("missing")
    with pytest.raises(WebSocketError, match="Connection 'missing' not found"):
        await manager.disconnect("missing")
    with pytest.raises(WebSocketError, match="Connection 'missing' not found"):
        await manager.send_message("missing", "hello")


@pytest.mark.asyncio
async def test_manager_connects_sends_and_disconnects_all():
    async with _server() as url:
        manager = WebSocketManager()
        manager.add_connection("feed", ExchangeConfig(websocket_url=url))
        assert manager.get_connection("feed").url == url
        assert manager.is_connected("feed") is False
        await manager.connect("feed")
        assert manager.is_connected("feed") is True
        await manager.send_message("feed", "hello")
        await manager.disconnect_all()
        assert manager.is_connected("feed") is False
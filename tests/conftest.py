"""Test configuration and fixtures for the chart tool relay tests."""
import asyncio
import json
import socket
import threading
import time
from typing import Callable, List, Optional

import pytest
from aiohttp import web, WSMsgType

from connection import ChartToolConnection
from discovery import network_discovery


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def free_tcp_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


class ChartToolStub:
    """aiohttp WebSocket server standing in for the chart tool, running on its own loop thread."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self.runner: Optional[web.AppRunner] = None
        self.port: Optional[int] = None
        self.requests: List[web.Request] = []
        self.sockets: List[web.WebSocketResponse] = []
        self.received: List[str] = []
        self.close_codes: List[Optional[int]] = []

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/ws"

    @property
    def forbidden_url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/forbidden"

    def start(self):
        self.thread.start()
        self._call(self._start())

    def stop(self):
        self._call(self._shutdown(), timeout=15)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)

    def _call(self, coro, timeout: float = 5.0):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    async def _start(self):
        app = web.Application()
        app.router.add_get('/ws', self._handle_ws)
        app.router.add_get('/forbidden', self._forbidden)
        self.runner = web.AppRunner(app)
        await self.runner.setup()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(('127.0.0.1', 0))
        self.port = sock.getsockname()[1]
        await web.SockSite(self.runner, sock).start()

    async def _shutdown(self):
        for ws in self.sockets:
            if not ws.closed:
                await ws.close()
        await self.runner.cleanup()

    async def _handle_ws(self, request: web.Request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.requests.append(request)
        self.sockets.append(ws)

        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                self.received.append(msg.data)

        self.close_codes.append(ws.close_code)
        return ws

    async def _forbidden(self, request: web.Request):
        raise web.HTTPForbidden()

    # ---- driven from the test thread ----

    def wait_for_clients(self, count: int = 1) -> bool:
        return wait_until(lambda: len(self.sockets) >= count)

    def send_text(self, text: str):
        self._call(self.sockets[-1].send_str(text))

    def send_bytes(self, data: bytes):
        self._call(self.sockets[-1].send_bytes(data))

    def close_from_server(self, code: int = 1000, message: bytes = b"tool shutting down"):
        self._call(self.sockets[-1].close(code=code, message=message))

    def drop(self):
        """Kill the TCP connection without a close frame."""
        transport = self.requests[-1].transport
        self.loop.call_soon_threadsafe(transport.close)


class UdpResponder:
    """Answers every discovery datagram on 127.0.0.1 with a fixed reply (or stays silent)."""

    def __init__(self, reply: Optional[bytes]):
        self.reply = reply
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self.requests: List[bytes] = []
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        self._thread.join(timeout=2)
        self.sock.close()

    def _serve(self):
        while not self._stop.is_set():
            try:
                data, addr = self.sock.recvfrom(2048)
            except socket.timeout:
                continue
            except OSError:
                return
            self.requests.append(data)
            if self.reply is not None:
                self.sock.sendto(self.reply, addr)


class FakeDiscovery:
    """Stands in for NetworkDiscovery in connection tests."""

    def __init__(self, result=None, error: Optional[Exception] = None, on_discover=None):
        self.result = result
        self.error = error
        self.on_discover = on_discover
        self.calls = 0

    def discover(self, port, timeout_ms, log=None):
        self.calls += 1
        if log:
            log(f"fake discovery on port {port}")
        if self.on_discover:
            self.on_discover()
        if self.error:
            raise self.error
        return self.result

    def broadcast_targets(self, log=None):
        return ["255.255.255.255"]


TEST_CONFIG = {
    "discovery": {
        "timeout_ms": 300,
        "extra_targets": ["127.0.0.1"]
    },
    "stream": {
        "connect_timeout_seconds": 2,
        "close_timeout_seconds": 2
    }
}


@pytest.fixture
def test_config():
    """Provide test configuration."""
    return json.loads(json.dumps(TEST_CONFIG))


@pytest.fixture
def chart_tool():
    """Provide a running chart tool stub."""
    stub = ChartToolStub()
    stub.start()
    yield stub
    stub.stop()


@pytest.fixture
def udp_responder():
    """Factory for UDP discovery responders, stopped after the test."""
    responders = []

    def make(reply: Optional[bytes]) -> UdpResponder:
        responder = UdpResponder(reply).start()
        responders.append(responder)
        return responder

    yield make
    for responder in responders:
        responder.stop()


@pytest.fixture
def no_interfaces(monkeypatch):
    """Hide the host's interfaces so discovery only uses the global broadcast and extra targets."""
    monkeypatch.setattr(network_discovery.psutil, "net_if_addrs", lambda: {})
    monkeypatch.setattr(network_discovery.psutil, "net_if_stats", lambda: {})


@pytest.fixture
def make_connection(test_config):
    """Factory for ChartToolConnection instances, shut down after the test."""
    connections = []

    def make(discovery=None, config=None) -> ChartToolConnection:
        connection = ChartToolConnection(config or test_config, discovery=discovery)
        connections.append(connection)
        return connection

    yield make
    for connection in connections:
        connection.shutdown()

"""
Connection manager for the chart tool stream
Owns the single outbound WebSocket, drives the connection state machine and
relays inbound frames into the snapshot store
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

import aiohttp
from yarl import URL

from config_loader import apply_defaults
from discovery import NetworkDiscovery
from error_helper import describe_exception
from http_helper import create_stream_session
from .results import ConnectResult
from .snapshot_store import SnapshotStore
from .state import ConnectionState

logger = logging.getLogger(__name__)

STREAM_SCHEMES = ('ws', 'wss', 'http', 'https')
CLIENT_CLOSE_CODE = 1000
CLIENT_CLOSE_REASON = "Client closing"
# Close codes that must never be put on the wire
_RESERVED_CLOSE_CODES = (1005, 1006, 1015)


class StreamHandle:
    """One outbound stream attempt. Once detached from the manager its callbacks are ignored."""

    def __init__(self, url: str):
        self.url = url
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.task: Optional[asyncio.Task] = None
        self.future: Optional[Future] = None

    async def close(self, code: int, reason: str):
        ws = self.ws
        if ws is not None and not ws.closed:
            await ws.close(code=code, message=reason.encode('utf-8'))
        if self.task is not None and not self.task.done():
            self.task.cancel()


class ChartToolConnection:
    """
    Discovery-and-relay client for the chart tool.

    Construct one per process and hand the instance to whatever layer issues
    calls. Public operations never raise: faults become a tagged result string
    plus a state transition, and are recorded in the diagnostic log.
    """

    def __init__(self, config: Optional[Dict] = None, store: Optional[SnapshotStore] = None,
                 discovery=None, session_factory: Callable[..., aiohttp.ClientSession] = create_stream_session):
        self.config = apply_defaults(config or {})
        self.discovery_config = self.config['discovery']
        self.stream_config = self.config['stream']
        self.store = store or SnapshotStore()
        self.discovery = discovery or NetworkDiscovery(self.discovery_config)
        self._session_factory = session_factory

        # Serializes public operations; readers never take it
        self._op_lock = threading.RLock()
        # Guards the live handle and every write made on behalf of it
        self._stream_lock = threading.Lock()
        self._stream: Optional[StreamHandle] = None
        self.current_url: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._session: Optional[aiohttp.ClientSession] = None

    # ================== LIFECYCLE ==================

    def start(self) -> None:
        """Start the transport thread ahead of the first connect"""
        with self._op_lock:
            self._ensure_loop()

    def shutdown(self) -> None:
        """Close the stream and the HTTP session, then stop the transport thread"""
        with self._op_lock:
            self._close_stream()
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
            if loop is None:
                return

            timeout = self.stream_config['close_timeout_seconds']
            try:
                asyncio.run_coroutine_threadsafe(self._close_session(), loop).result(timeout=timeout)
            except Exception as e:
                logger.debug(f"Ignoring error while closing stream session: {describe_exception(e)}")

            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout)
            if not thread.is_alive():
                loop.close()
            logger.info("Stream transport stopped")

    # ================== PUBLIC OPERATIONS ==================

    def discover_and_connect(self) -> str:
        """Returns 'ok:<ws_url>', 'not_found' or 'error:<message>'"""
        return self.discover_and_connect_result().to_sentinel()

    def discover_and_connect_result(self) -> ConnectResult:
        with self._op_lock:
            self._close_stream()

            self._set_state(ConnectionState.DISCOVERING)
            self.store.clear_error()
            self.store.clear_log()
            self._log("discover_and_connect() called")

            try:
                server = self.discovery.discover(
                    self.discovery_config['port'],
                    self.discovery_config['timeout_ms'],
                    log=self.store.append_log
                )
            except Exception as e:
                message = describe_exception(e)
                logger.error(f"discover_and_connect error: {message}")
                self.store.set_error(message)
                self._set_state(ConnectionState.ERROR)
                self.store.append_log(f"Exception in discover_and_connect: {message}")
                return ConnectResult.error(message)

            if server is None:
                self._log("No server discovered (ws_url is blank)")
                self._set_state(ConnectionState.DISCONNECTED)
                return ConnectResult.not_found()

            if server.name or server.version:
                self._log(f"Chart tool answered: name={server.name}, version={server.version}, info={server.info_url}")
            self._log(f"Discovered ws_url: {server.stream_url}, start WebSocket connect")

            failure = self._open_stream(server.stream_url)
            if failure is None:
                self._log("WebSocket connect() issued successfully")
                return ConnectResult.ok(server.stream_url)

            self._log("WebSocket connect() failed")
            return ConnectResult.error(failure)

    def connect_with_url(self, url: str) -> str:
        """Connect to a known stream URL without discovery. Returns 'ok' or 'error:<message>'"""
        return self.connect_with_url_result(url).to_sentinel()

    def connect_with_url_result(self, url: str) -> ConnectResult:
        with self._op_lock:
            self._close_stream()
            self.store.clear_error()

            failure = self._open_stream(url)
            if failure is None:
                return ConnectResult.ok()
            return ConnectResult.error(failure)

    def get_connection_state(self) -> str:
        return self.store.state.value

    def get_latest_frame_json(self) -> str:
        return self.store.latest_frame

    def get_last_error(self) -> str:
        return self.store.last_error

    def get_discover_debug_log(self) -> str:
        return self.store.debug_log

    def disconnect(self) -> None:
        with self._op_lock:
            logger.info("disconnect() called")
            self._close_stream()

    def send_command(self, text: str) -> str:
        """Send a text control message over the live stream. Returns 'ok' or 'error:<message>'"""
        with self._stream_lock:
            handle = self._stream
        ws = handle.ws if handle is not None else None
        loop = self._loop
        if ws is None or ws.closed or loop is None:
            return ConnectResult.error("not_connected").to_sentinel()

        try:
            asyncio.run_coroutine_threadsafe(ws.send_str(text), loop).result(
                timeout=self.stream_config['close_timeout_seconds']
            )
            logger.debug(f"Command sent ({len(text)} chars)")
            return ConnectResult.ok().to_sentinel()
        except Exception as e:
            message = describe_exception(e)
            logger.warning(f"send_command failed: {message}")
            self.store.append_log(f"send_command failed: {message}")
            return ConnectResult.error(message).to_sentinel()

    def get_status(self) -> Dict[str, Any]:
        """Get connection status for monitoring"""
        status = self.store.get_status()
        status.update({
            "stream_url": self.current_url,
            "transport_running": self._thread is not None and self._thread.is_alive(),
            "discovery_port": self.discovery_config['port'],
            "discovery_timeout_ms": self.discovery_config['timeout_ms']
        })
        return status

    # ================== STATE HELPERS ==================

    def _set_state(self, state: ConnectionState):
        previous = self.store.set_state(state)
        if previous is not state:
            logger.info(f"Connection state: {previous.value} -> {state.value}")

    def _set_state_unless_error(self, state: ConnectionState):
        previous, replaced = self.store.replace_state_unless(state, keep=ConnectionState.ERROR)
        if replaced and previous is not state:
            logger.info(f"Connection state: {previous.value} -> {state.value}")

    def _log(self, message: str, level: int = logging.INFO):
        logger.log(level, message)
        self.store.append_log(message)

    def _is_current(self, handle: StreamHandle) -> bool:
        with self._stream_lock:
            return self._stream is handle

    def _apply_if_current(self, handle: StreamHandle, fn: Callable, *args) -> bool:
        """Run fn only while handle is still the live stream, atomically with respect to replacement"""
        with self._stream_lock:
            if self._stream is not handle:
                return False
            fn(*args)
            return True

    # ================== OPEN / CLOSE ==================

    def _open_stream(self, url: str) -> Optional[str]:
        """Issue the open request. Returns None once issued, otherwise the failure message."""
        self._set_state(ConnectionState.CONNECTING)
        self.store.clear_frame()

        try:
            self._log(f"connect_stream() with url={url}")
            target = self._validate_url(url)
            loop = self._ensure_loop()

            handle = StreamHandle(target)
            with self._stream_lock:
                self._stream = handle
            self.current_url = target
            handle.future = asyncio.run_coroutine_threadsafe(self._run_stream(handle), loop)
            return None

        except Exception as e:
            message = describe_exception(e) or "connect_exception"
            logger.error(f"connect_stream error: {message}")
            with self._stream_lock:
                self._stream = None
            self.current_url = None
            self.store.set_error(message)
            self._set_state(ConnectionState.ERROR)
            self.store.append_log(f"connect_stream() exception: {message}")
            return message

    @staticmethod
    def _validate_url(url: str) -> str:
        if not isinstance(url, str) or not url.strip():
            raise ValueError("Stream URL is empty")
        url = url.strip()
        parsed = URL(url)
        if parsed.scheme not in STREAM_SCHEMES:
            raise ValueError(f"Unsupported stream URL scheme: {url}")
        if not parsed.host:
            raise ValueError(f"Stream URL has no host: {url}")
        return url

    def _close_stream(self):
        """Best-effort close of the live stream. An error state stays observable."""
        with self._stream_lock:
            handle, self._stream = self._stream, None
        self.current_url = None

        self._set_state_unless_error(ConnectionState.CLOSING)

        if handle is not None and self._loop is not None:
            try:
                asyncio.run_coroutine_threadsafe(
                    handle.close(CLIENT_CLOSE_CODE, CLIENT_CLOSE_REASON), self._loop
                ).result(timeout=self.stream_config['close_timeout_seconds'])
            except Exception as e:
                logger.debug(f"Ignoring error while closing stream {handle.url}: {describe_exception(e)}")
            if handle.future is not None and not handle.future.done():
                handle.future.cancel()
            self._log(f"WebSocket closed by client: code={CLIENT_CLOSE_CODE}, reason={CLIENT_CLOSE_REASON}")

        self._set_state_unless_error(ConnectionState.DISCONNECTED)

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None and self._thread is not None and self._thread.is_alive():
            return self._loop

        loop = asyncio.new_event_loop()

        def run():
            asyncio.set_event_loop(loop)
            loop.run_forever()

        thread = threading.Thread(target=run, name="charttool-stream", daemon=True)
        thread.start()
        self._loop, self._thread = loop, thread
        logger.info("Stream transport started")
        return loop

    # ================== TRANSPORT (runs on the stream loop) ==================

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._session_factory(
                connect_timeout_seconds=self.stream_config['connect_timeout_seconds'],
                ssl_verify=self.stream_config['ssl_verify'],
                ca_cert_path=self.stream_config['ca_cert_path']
            )
        return self._session

    async def _close_session(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _run_stream(self, handle: StreamHandle):
        handle.task = asyncio.current_task()
        if not self._is_current(handle):
            return

        try:
            session = self._get_session()
            async with session.ws_connect(
                handle.url,
                autoclose=False,
                heartbeat=self.stream_config['heartbeat_seconds']
            ) as ws:
                handle.ws = ws
                if not self._apply_if_current(handle, self._on_open, handle):
                    return
                await self._receive_loop(handle, ws)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._on_failure(handle, e)

    async def _receive_loop(self, handle: StreamHandle, ws: aiohttp.ClientWebSocketResponse):
        while True:
            msg = await ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                # Last write wins, intermediate frames are not kept
                self._apply_if_current(handle, self.store.set_frame, msg.data)

            elif msg.type == aiohttp.WSMsgType.BINARY:
                logger.debug(f"Binary message ignored: {len(msg.data)} bytes")

            elif msg.type == aiohttp.WSMsgType.CLOSE:
                await self._on_peer_close(handle, ws, msg.data, msg.extra)
                return

            elif msg.type == aiohttp.WSMsgType.ERROR:
                if isinstance(msg.data, BaseException):
                    raise msg.data
                raise aiohttp.ClientError(f"WebSocket error: {msg.data}")

            else:
                # CLOSING / CLOSED without a close frame from the peer
                error = ws.exception()
                if error is not None:
                    raise error
                raise ConnectionResetError("stream closed without a close frame")

    def _on_open(self, handle: StreamHandle):
        self._set_state(ConnectionState.CONNECTED)
        self._log(f"WebSocket opened: connected to {handle.url}")

    async def _on_peer_close(self, handle: StreamHandle, ws: aiohttp.ClientWebSocketResponse,
                             code: Optional[int], reason: Optional[str]):
        if not self._apply_if_current(handle, self._set_state, ConnectionState.CLOSING):
            return

        logger.info(f"Closing: {code} / {reason}")
        echo_code = code if code and code not in _RESERVED_CLOSE_CODES else CLIENT_CLOSE_CODE
        await ws.close(code=echo_code, message=(reason or "").encode('utf-8'))

        self._apply_if_current(handle, self._finish_peer_close, handle, code, reason)

    def _finish_peer_close(self, handle: StreamHandle, code: Optional[int], reason: Optional[str]):
        # Called with _stream_lock held
        self._stream = None
        self.current_url = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._log(f"WebSocket closing: code={code}, reason={reason}")

    def _on_failure(self, handle: StreamHandle, e: BaseException):
        message = describe_exception(e)
        if isinstance(e, aiohttp.ClientResponseError) and e.status:
            message = f"{message} (code={e.status})"
        message = message or "websocket_error"

        def record():
            # Called with _stream_lock held
            self._stream = None
            self.current_url = None
            self.store.set_error(message)
            self._set_state(ConnectionState.ERROR)

        if not self._apply_if_current(handle, record):
            logger.debug(f"Ignoring failure of a replaced stream {handle.url}: {message}")
            return

        logger.error(f"WebSocket failure: {message}")
        self.store.append_log(f"WebSocket failure: {message}")

"""
Snapshot store for the latest frame, error, connection state and diagnostic log
Written by the transport thread, polled by any number of reader threads
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .state import ConnectionState

@dataclass(frozen=True)
class StoreSnapshot:
    """Consistent copy of every store field taken under a single lock acquisition"""
    state: ConnectionState
    frame: str
    error: str
    debug_log: str
    frames_received: int
    last_frame_at: Optional[float]

class SnapshotStore:
    """
    Overwrite-only holder for what the polling consumer needs.
    Every critical section is a handful of assignments, so readers never wait on I/O.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._frame = ""
        self._error = ""
        self._log_lines: List[str] = []
        self._last_log_ms = 0
        self._frames_received = 0
        self._last_frame_at: Optional[float] = None

    # ================== READERS ==================

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def latest_frame(self) -> str:
        with self._lock:
            return self._frame

    @property
    def last_error(self) -> str:
        with self._lock:
            return self._error

    @property
    def debug_log(self) -> str:
        with self._lock:
            return "\n".join(self._log_lines)

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(
                state=self._state,
                frame=self._frame,
                error=self._error,
                debug_log="\n".join(self._log_lines),
                frames_received=self._frames_received,
                last_frame_at=self._last_frame_at
            )

    def get_status(self) -> Dict[str, Any]:
        """Get store status for monitoring"""
        snap = self.snapshot()
        return {
            "state": snap.state.value,
            "has_frame": bool(snap.frame),
            "frames_received": snap.frames_received,
            "last_frame_at": (
                datetime.fromtimestamp(snap.last_frame_at, tz=timezone.utc).isoformat()
                if snap.last_frame_at is not None else None
            ),
            "last_error": snap.error or None,
            "debug_log_lines": len(snap.debug_log.splitlines())
        }

    # ================== WRITERS ==================

    def set_state(self, state: ConnectionState) -> ConnectionState:
        """Replace the state, returning the previous one"""
        with self._lock:
            previous, self._state = self._state, state
            return previous

    def replace_state_unless(self, state: ConnectionState,
                             keep: ConnectionState) -> Tuple[ConnectionState, bool]:
        """Set state unless the current value is `keep`; returns (previous, replaced)"""
        with self._lock:
            previous = self._state
            if previous is keep:
                return previous, False
            self._state = state
            return previous, True

    def set_frame(self, text: str) -> None:
        with self._lock:
            self._frame = text
            self._frames_received += 1
            self._last_frame_at = self._clock()

    def clear_frame(self) -> None:
        with self._lock:
            self._frame = ""

    def set_error(self, message: str) -> None:
        with self._lock:
            self._error = message

    def clear_error(self) -> None:
        with self._lock:
            self._error = ""

    def append_log(self, message: str) -> str:
        """Append one timestamped line; timestamps never go backwards even if the clock does"""
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms < self._last_log_ms:
                now_ms = self._last_log_ms
            self._last_log_ms = now_ms
            line = f"[{now_ms}] {message}"
            self._log_lines.append(line)
            return line

    def clear_log(self) -> None:
        with self._lock:
            self._log_lines = []

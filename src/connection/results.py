"""
Outcome of connect operations and its tagged string form
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

class ResultKind(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"

@dataclass(frozen=True)
class ConnectResult:
    """Three-way result: success (optional payload), not found, or error with a message"""
    kind: ResultKind
    detail: Optional[str] = None

    @classmethod
    def ok(cls, url: Optional[str] = None) -> "ConnectResult":
        return cls(ResultKind.OK, url)

    @classmethod
    def not_found(cls) -> "ConnectResult":
        return cls(ResultKind.NOT_FOUND)

    @classmethod
    def error(cls, message: str) -> "ConnectResult":
        return cls(ResultKind.ERROR, message)

    def to_sentinel(self) -> str:
        """
        >>> ConnectResult.ok("ws://10.0.0.5:8080/ws").to_sentinel()
        'ok:ws://10.0.0.5:8080/ws'
        >>> ConnectResult.ok().to_sentinel()
        'ok'
        >>> ConnectResult.error("connect_failed").to_sentinel()
        'error:connect_failed'
        """
        if self.kind is ResultKind.NOT_FOUND:
            return ResultKind.NOT_FOUND.value
        if self.detail is None:
            return self.kind.value
        return f"{self.kind.value}:{self.detail}"

    def __str__(self) -> str:
        return self.to_sentinel()

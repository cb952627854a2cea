from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ndstream.timeutils import utc_now


class EventType(str, Enum):
    RECORD = "record"
    STATUS = "status"
    WARNING = "warning"
    ERROR = "error"


class Status(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    ERROR = "error"
    CLOSED = "closed"


class ErrorKind(str, Enum):
    CONFIG = "config"
    CONNECT = "connect"
    STREAM_FAULT = "stream_fault"
    DECODE = "decode"


@dataclass
class StreamEvent:
    type: EventType
    attempt: int
    text: str = ""
    payload: Any = None
    line: str | None = None
    status: Status | None = None
    error_kind: ErrorKind | None = None
    status_code: int | None = None
    delay: float | None = None
    timestamp_utc: str = field(default_factory=utc_now)

    @classmethod
    def record(cls, attempt: int, payload: Any, line: str) -> "StreamEvent":
        return cls(EventType.RECORD, attempt, payload=payload, line=line)

    @classmethod
    def status_change(
        cls, attempt: int, status: Status, text: str, delay: float | None = None
    ) -> "StreamEvent":
        return cls(EventType.STATUS, attempt, text=text, status=status, delay=delay)

    @classmethod
    def warning(cls, attempt: int, kind: ErrorKind, text: str) -> "StreamEvent":
        return cls(EventType.WARNING, attempt, text=text, error_kind=kind)

    @classmethod
    def error(
        cls, attempt: int, kind: ErrorKind, text: str, status_code: int | None = None
    ) -> "StreamEvent":
        return cls(EventType.ERROR, attempt, text=text, error_kind=kind, status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "attempt": self.attempt,
            "timestamp_utc": self.timestamp_utc,
            "text": self.text,
            "payload": self.payload,
            "line": self.line,
            "status": self.status.value if self.status else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "status_code": self.status_code,
            "delay": self.delay,
        }


EventSink = Callable[[StreamEvent], None]

from __future__ import annotations

import json
import logging
from typing import Any, TextIO

from ndstream.events import EventType, Status, StreamEvent


LOGGER = logging.getLogger(__name__)


class JsonLinesSink:
    """Writes each record payload as one JSON line; other events only update state."""

    def __init__(self, handle: TextIO, include_line: bool = False) -> None:
        self.handle = handle
        self.include_line = include_line
        self.records = 0
        self.warnings = 0
        self.errors = 0
        self.status: Status | None = None

    def __call__(self, event: StreamEvent) -> None:
        if event.type == EventType.RECORD:
            self._write(event)
        elif event.type == EventType.STATUS:
            self.status = event.status
            LOGGER.debug("Status: %s", event.text)
        elif event.type == EventType.WARNING:
            self.warnings += 1
            LOGGER.debug("Event: %s", json.dumps(event.to_dict()))
        else:
            self.errors += 1
            LOGGER.debug("Event: %s", json.dumps(event.to_dict()))

    def _write(self, event: StreamEvent) -> None:
        payload: Any = event.payload
        if self.include_line:
            payload = {"attempt": event.attempt, "line": event.line, "payload": event.payload}
        self.handle.write(json.dumps(payload) + "\n")
        self.handle.flush()
        self.records += 1

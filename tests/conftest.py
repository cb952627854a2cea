from __future__ import annotations

import asyncio

import httpx
import pytest

from ndstream.config import NdStreamConfig, StreamConfig
from ndstream.events import EventType, Status, StreamEvent

URL = "http://h/stream"


class ScriptedStream(httpx.AsyncByteStream):
    def __init__(
        self, chunks: list[bytes], error: Exception | None = None, hang: bool = False
    ) -> None:
        self.chunks = chunks
        self.error = error
        self.hang = hang
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class ScriptedServer:
    """Answers request N with scripted response N, repeating the last one."""

    def __init__(self) -> None:
        self.script: list[tuple[int, list[bytes], Exception | None, bool]] = []
        self.requests: list[httpx.Request] = []
        self.streams: list[ScriptedStream] = []

    def respond(
        self,
        status: int = 200,
        chunks: list[bytes] | None = None,
        error: Exception | None = None,
        hang: bool = False,
    ) -> "ScriptedServer":
        self.script.append((status, chunks or [], error, hang))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, chunks, error, hang = self.script[min(len(self.requests), len(self.script)) - 1]
        stream = ScriptedStream(chunks, error, hang)
        self.streams.append(stream)
        return httpx.Response(status, stream=stream)

    def client_factory(self, config: StreamConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class EventLog:
    def __init__(self, stop_when=None) -> None:
        self.events: list[StreamEvent] = []
        self.stop_when = stop_when
        self.client = None
        self.open_sessions: list[int] = []

    def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)
        if self.client is None:
            return
        self.open_sessions.append(self.client.sessions_opened - self.client.sessions_closed)
        if self.stop_when is not None and self.stop_when(self):
            self.client.stop()

    def of(self, event_type: EventType) -> list[StreamEvent]:
        return [event for event in self.events if event.type == event_type]

    @property
    def records(self) -> list:
        return [event.payload for event in self.of(EventType.RECORD)]

    def statuses(self, status: Status | None = None) -> list[Status]:
        found = [event.status for event in self.of(EventType.STATUS)]
        if status is None:
            return found
        return [item for item in found if item == status]


def make_config(url: str = URL, delay_ms: int = 10, **stream) -> NdStreamConfig:
    return NdStreamConfig.model_validate(
        {
            "stream": {"url": url, **stream},
            "reconnect": {"delay_ms": delay_ms, "min_delay_ms": 1, "max_delay_ms": 1000},
        }
    )


@pytest.fixture
def server() -> ScriptedServer:
    return ScriptedServer()

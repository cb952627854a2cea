from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable
from urllib.parse import urlsplit

import httpx

from ndstream.config import NdStreamConfig, StreamConfig
from ndstream.events import ErrorKind, EventSink, Status, StreamEvent
from ndstream.reconnect import Backoff, Phase, ReconnectController
from ndstream.records import Record
from ndstream.request import BuiltRequest, ConfigError, build_request
from ndstream.session import ConnectionAttempt, ConnectionSession, OutcomeKind, SessionOutcome
from ndstream.timeutils import format_delay


LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[StreamConfig], httpx.AsyncClient]


def default_client_factory(config: StreamConfig) -> httpx.AsyncClient:
    transport = httpx.AsyncHTTPTransport(retries=0, verify=config.verify_tls)
    timeout = httpx.Timeout(config.read_timeout, connect=config.connect_timeout)
    return httpx.AsyncClient(transport=transport, timeout=timeout, follow_redirects=True)


def stream_label(url: str) -> str:
    try:
        host = urlsplit(url.strip()).netloc
    except ValueError:
        return "invalid-url"
    return host or "invalid-url"


class StreamClient:
    """Keeps one NDJSON stream alive and hands every record to ``sink``.

    ``run()`` loops connect -> drain -> back off until ``stop()`` or
    ``shutdown()`` is called. Only one attempt is ever open; its HTTP client is
    created per attempt and closed before the next one starts.
    """

    def __init__(
        self,
        config: NdStreamConfig,
        sink: EventSink,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.client_factory = client_factory or default_client_factory
        self.controller = ReconnectController(
            Backoff(config.reconnect.base_delay, config.reconnect.max_delay)
        )
        self.current: ConnectionAttempt | None = None
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.delays: list[float] = []
        self._stop = asyncio.Event()
        self._done = asyncio.Event()
        self._running = False

    @property
    def phase(self) -> Phase:
        return self.controller.state

    async def run(self) -> None:
        if self._running:
            raise RuntimeError("StreamClient is already running")
        self._running = True
        if not self.config.stream.verify_tls:
            LOGGER.warning("TLS certificate verification is disabled")
        try:
            while self.controller.begin_attempt():
                await self._attempt()
                if self._stop.is_set():
                    break
                delay = self.controller.schedule_backoff()
                if delay is None:
                    break
                self.delays.append(delay)
                LOGGER.info("Waiting for reconnect (%s)", format_delay(delay))
                self._emit(
                    StreamEvent.status_change(
                        self.controller.attempt,
                        Status.RECONNECTING,
                        f"retrying in {format_delay(delay)}",
                        delay=delay,
                    )
                )
                if await self._wait(delay):
                    break
        finally:
            self.controller.request_shutdown()
            LOGGER.info("Stream client closed after %d attempts", self.controller.attempt)
            self._emit(StreamEvent.status_change(self.controller.attempt, Status.CLOSED, "closed"))
            self._done.set()

    def stop(self) -> None:
        if not self._stop.is_set():
            LOGGER.debug("Shutdown requested")
        self._stop.set()
        self.controller.request_shutdown()

    async def shutdown(self) -> None:
        self.stop()
        if self._running:
            await self._done.wait()

    async def _wait(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _attempt(self) -> None:
        attempt = ConnectionAttempt(sequence=self.controller.attempt)
        self.current = attempt
        self._emit(StreamEvent.status_change(attempt.sequence, Status.CONNECTING, "connecting"))
        try:
            request = build_request(self.config.stream)
        except ConfigError as exc:
            self.current = None
            LOGGER.error("Invalid stream configuration: %s", exc)
            self._emit(StreamEvent.error(attempt.sequence, ErrorKind.CONFIG, str(exc)))
            self._emit(StreamEvent.status_change(attempt.sequence, Status.ERROR, "misconfigured"))
            self.controller.errored()
            attempt.phase = self.controller.state
            return
        for warning in request.warnings:
            LOGGER.warning(warning)
            self._emit(StreamEvent.warning(attempt.sequence, ErrorKind.CONFIG, warning))
        LOGGER.debug("Connecting to: %s", request.url)
        LOGGER.debug("Headers: %s", ", ".join(request.header_names) or "none")

        try:
            outcome = await self._open_session(attempt, request)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Attempt %d failed: %s", attempt.sequence, exc)
            outcome = SessionOutcome(
                kind=OutcomeKind.TRANSPORT_ERROR,
                records_delivered=attempt.records_delivered,
                bytes_observed=attempt.bytes_observed,
                response_received=attempt.response_received,
                cause=exc,
            )
        finally:
            self.current = None
        self._finish(attempt, outcome)

    async def _open_session(
        self, attempt: ConnectionAttempt, request: BuiltRequest
    ) -> SessionOutcome:
        client = self.client_factory(self.config.stream)
        self.sessions_opened += 1
        try:
            async with client:
                session = ConnectionSession(
                    client,
                    attempt,
                    on_record=partial(self._on_record, attempt),
                    on_warning=partial(self._on_warning, attempt),
                    on_connected=partial(self._on_connected, attempt),
                )
                return await session.open(request, self._stop)
        finally:
            self.sessions_closed += 1

    def _finish(self, attempt: ConnectionAttempt, outcome: SessionOutcome) -> None:
        sequence = attempt.sequence
        if outcome.kind == OutcomeKind.CANCELLED or self.controller.closed:
            LOGGER.debug("Attempt %d finished after shutdown (%s)", sequence, outcome.kind.value)
            attempt.phase = self.controller.state
            return
        if outcome.kind == OutcomeKind.ENDED:
            LOGGER.warning("%s; reconnecting", outcome.describe())
            self._emit(StreamEvent.status_change(sequence, Status.DISCONNECTED, "disconnected"))
            self.controller.ended()
            attempt.phase = self.controller.state
            return

        text = outcome.describe()
        LOGGER.error(text)
        if outcome.kind == OutcomeKind.HTTP_ERROR:
            self._emit(
                StreamEvent.error(sequence, ErrorKind.CONNECT, text, status_code=outcome.status_code)
            )
        else:
            kind = ErrorKind.STREAM_FAULT if outcome.response_received else ErrorKind.CONNECT
            self._emit(StreamEvent.error(sequence, kind, text))
        self._emit(StreamEvent.status_change(sequence, Status.ERROR, "error"))
        self.controller.errored()
        attempt.phase = self.controller.state

    def _on_connected(self, attempt: ConnectionAttempt) -> None:
        self.controller.data_flowing()
        attempt.phase = self.controller.state
        LOGGER.info("Connected to %s", stream_label(self.config.stream.url))
        self._emit(StreamEvent.status_change(attempt.sequence, Status.CONNECTED, "connected"))

    def _on_record(self, attempt: ConnectionAttempt, record: Record) -> None:
        self._emit(StreamEvent.record(attempt.sequence, record.value, record.line))

    def _on_warning(self, attempt: ConnectionAttempt, kind: ErrorKind, text: str) -> None:
        LOGGER.warning(text)
        self._emit(StreamEvent.warning(attempt.sequence, kind, text))

    def _emit(self, event: StreamEvent) -> None:
        try:
            self.sink(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Event sink failed on %s event", event.type.value)

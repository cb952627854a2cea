from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable

import httpx

from ndstream.events import ErrorKind
from ndstream.lines import LineDecoder, aiter_lines
from ndstream.reconnect import Phase
from ndstream.records import Record, RecordError, parse_line, preview
from ndstream.request import BuiltRequest


LOGGER = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    ENDED = "ended"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SessionOutcome:
    kind: OutcomeKind
    records_delivered: int = 0
    bytes_observed: bool = False
    response_received: bool = False
    status_code: int | None = None
    reason: str | None = None
    cause: BaseException | None = None

    def describe(self) -> str:
        if self.kind == OutcomeKind.HTTP_ERROR:
            return f"Stream HTTP error: {self.status_code} {self.reason or ''}".rstrip()
        if self.kind == OutcomeKind.TRANSPORT_ERROR:
            cause = self.cause
            detail = (str(cause) or type(cause).__name__) if cause is not None else "unknown"
            return f"Stream error: {detail}"
        if self.kind == OutcomeKind.CANCELLED:
            return "Stream cancelled"
        return f"Stream ended after {self.records_delivered} records"


@dataclass
class ConnectionAttempt:
    sequence: int
    phase: Phase = Phase.CONNECTING
    response: httpx.Response | None = None
    status_code: int | None = None
    bytes_observed: bool = False
    records_delivered: int = 0
    decode_errors: int = 0

    @property
    def response_received(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class ConnectionSession:
    """One streaming GET, drained line by line until it ends, fails or is cancelled."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        attempt: ConnectionAttempt,
        on_record: Callable[[Record], None],
        on_warning: Callable[[ErrorKind, str], None],
        on_connected: Callable[[], None],
    ) -> None:
        self.client = client
        self.attempt = attempt
        self.on_record = on_record
        self.on_warning = on_warning
        self.on_connected = on_connected
        self._cancel = asyncio.Event()

    async def open(self, request: BuiltRequest, cancel: asyncio.Event) -> SessionOutcome:
        self._cancel = cancel
        if cancel.is_set():
            return self._outcome(OutcomeKind.CANCELLED)
        drain = asyncio.create_task(self._drain(request))
        waiter = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({drain, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not drain.done():
                drain.cancel()
            await asyncio.wait({drain, waiter})
        if drain.cancelled():
            LOGGER.debug("Attempt %d cancelled", self.attempt.sequence)
            return self._outcome(OutcomeKind.CANCELLED)
        return drain.result()

    async def _drain(self, request: BuiltRequest) -> SessionOutcome:
        attempt = self.attempt
        try:
            async with self.client.stream("GET", request.url, headers=request.headers) as response:
                attempt.response = response
                attempt.status_code = response.status_code
                if not response.is_success:
                    return self._outcome(
                        OutcomeKind.HTTP_ERROR,
                        status_code=response.status_code,
                        reason=response.reason_phrase,
                    )
                decoder = LineDecoder(on_invalid=self._invalid_line)
                async for line in aiter_lines(self._chunks(response), decoder):
                    self._handle_line(line)
        except httpx.HTTPError as exc:
            return self._outcome(OutcomeKind.TRANSPORT_ERROR, cause=exc)
        finally:
            attempt.response = None
        return self._outcome(OutcomeKind.ENDED)

    async def _chunks(self, response: httpx.Response) -> AsyncIterator[bytes]:
        async for chunk in response.aiter_bytes():
            if chunk:
                self.attempt.bytes_observed = True
            yield chunk

    def _handle_line(self, line: str) -> None:
        if self._cancel.is_set():
            return
        result = parse_line(line)
        if isinstance(result, RecordError):
            self.attempt.decode_errors += 1
            self.on_warning(ErrorKind.DECODE, result.describe())
            return
        if self.attempt.records_delivered == 0:
            self.on_connected()
            if self._cancel.is_set():
                return
        self.attempt.records_delivered += 1
        self.on_record(result)

    def _invalid_line(self, raw: bytes, exc: UnicodeDecodeError) -> None:
        self.attempt.decode_errors += 1
        text = preview(raw.decode("utf-8", errors="replace"))
        self.on_warning(ErrorKind.DECODE, f"Invalid UTF-8 from stream ({exc.reason}): {text}")

    def _outcome(self, kind: OutcomeKind, **details) -> SessionOutcome:
        return SessionOutcome(
            kind=kind,
            records_delivered=self.attempt.records_delivered,
            bytes_observed=self.attempt.bytes_observed,
            response_received=self.attempt.response_received,
            **details,
        )

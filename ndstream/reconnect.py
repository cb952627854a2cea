from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Phase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ENDED = "ended"
    ERRORED = "errored"
    BACKOFF_WAIT = "backoff_wait"
    CLOSED = "closed"


TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.IDLE: frozenset({Phase.CONNECTING, Phase.CLOSED}),
    Phase.CONNECTING: frozenset({Phase.STREAMING, Phase.ENDED, Phase.ERRORED, Phase.CLOSED}),
    Phase.STREAMING: frozenset({Phase.ENDED, Phase.ERRORED, Phase.CLOSED}),
    Phase.ENDED: frozenset({Phase.BACKOFF_WAIT, Phase.CLOSED}),
    Phase.ERRORED: frozenset({Phase.BACKOFF_WAIT, Phase.CLOSED}),
    Phase.BACKOFF_WAIT: frozenset({Phase.CONNECTING, Phase.CLOSED}),
    Phase.CLOSED: frozenset(),
}


class InvalidTransition(RuntimeError):
    def __init__(self, source: Phase, target: Phase) -> None:
        super().__init__(f"Illegal transition {source.value} -> {target.value}")
        self.source = source
        self.target = target


def can_transition(source: Phase, target: Phase) -> bool:
    return target in TRANSITIONS[source]


@dataclass
class Backoff:
    """Delay between attempts, kept within ``[base_delay, max_delay]``.

    The delay doubles after every wait unless the cycle that led to the wait
    delivered data, in which case it was reset to the base delay and stays
    there for one more wait.
    """

    base_delay: float = 5.0
    max_delay: float = 60.0
    delay: float = field(init=False)
    _reset_this_cycle: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        self.max_delay = max(self.max_delay, self.base_delay)
        self.delay = self.base_delay

    def reset(self) -> None:
        self.delay = self.base_delay
        self._reset_this_cycle = True

    def next_delay(self) -> float:
        delay = self.delay
        if not self._reset_this_cycle:
            self.delay = min(self.delay * 2, self.max_delay)
        self._reset_this_cycle = False
        return delay


@dataclass
class ReconnectController:
    backoff: Backoff = field(default_factory=Backoff)
    state: Phase = Phase.IDLE
    attempt: int = 0
    shutdown_requested: bool = False
    history: list[Phase] = field(default_factory=list, repr=False)

    @property
    def closed(self) -> bool:
        return self.state == Phase.CLOSED

    def transition(self, target: Phase) -> bool:
        if self.closed:
            return False
        if not can_transition(self.state, target):
            raise InvalidTransition(self.state, target)
        self.state = target
        self.history.append(target)
        return True

    def begin_attempt(self) -> bool:
        if self.shutdown_requested:
            self.transition(Phase.CLOSED)
            return False
        if not self.transition(Phase.CONNECTING):
            return False
        self.attempt += 1
        return True

    def data_flowing(self) -> None:
        if self.state != Phase.CONNECTING:
            return
        self.transition(Phase.STREAMING)
        self.backoff.reset()

    def ended(self) -> None:
        self.transition(Phase.ENDED)

    def errored(self) -> None:
        self.transition(Phase.ERRORED)

    def schedule_backoff(self) -> float | None:
        if not self.transition(Phase.BACKOFF_WAIT):
            return None
        return self.backoff.next_delay()

    def request_shutdown(self) -> None:
        self.shutdown_requested = True
        self.transition(Phase.CLOSED)

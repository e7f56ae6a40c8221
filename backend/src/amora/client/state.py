"""Client-side state kept by every realtime consumer.

These classes hold no I/O so browser bundles, bots and tests can share the
same rules.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict


class CallPhase(str, Enum):
    IDLE = "idle"
    RINGING = "ringing"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    ENDED = "ended"


class InvalidTransition(RuntimeError):
    pass


_ALLOWED: dict[CallPhase, frozenset[CallPhase]] = {
    CallPhase.IDLE: frozenset({CallPhase.RINGING, CallPhase.NEGOTIATING}),
    CallPhase.RINGING: frozenset({CallPhase.NEGOTIATING, CallPhase.CONNECTED, CallPhase.ENDED}),
    CallPhase.NEGOTIATING: frozenset({CallPhase.NEGOTIATING, CallPhase.CONNECTED, CallPhase.ENDED}),
    CallPhase.CONNECTED: frozenset({CallPhase.NEGOTIATING, CallPhase.ENDED}),
    CallPhase.ENDED: frozenset({CallPhase.IDLE, CallPhase.RINGING, CallPhase.NEGOTIATING}),
}


@dataclass(slots=True)
class CallState:
    """One call at a time, seen from the local user."""

    phase: CallPhase = CallPhase.IDLE
    peer: int | None = None
    outgoing: bool = False
    end_reason: str | None = None

    def _move(self, target: CallPhase) -> None:
        if target not in _ALLOWED[self.phase]:
            raise InvalidTransition(f"{self.phase.value} -> {target.value}")
        self.phase = target

    @property
    def active(self) -> bool:
        return self.phase in (CallPhase.RINGING, CallPhase.NEGOTIATING, CallPhase.CONNECTED)

    def dial(self, peer: int) -> None:
        self._move(CallPhase.RINGING)
        self.peer, self.outgoing, self.end_reason = peer, True, None

    def incoming(self, peer: int) -> bool:
        """Record a ring from *peer*; returns ``False`` while busy with another call."""

        if self.active:
            return False
        self._move(CallPhase.RINGING)
        self.peer, self.outgoing, self.end_reason = peer, False, None
        return True

    def offer(self, peer: int) -> None:
        if self.phase in (CallPhase.IDLE, CallPhase.ENDED):
            self.outgoing = True
        elif peer != self.peer:
            raise InvalidTransition("offer for a different peer")
        self._move(CallPhase.NEGOTIATING)
        self.peer = peer

    def answered(self, peer: int) -> None:
        if peer != self.peer:
            raise InvalidTransition("answer from a different peer")
        self._move(CallPhase.CONNECTED)

    def end(self, reason: str = "hangup") -> None:
        if self.phase in (CallPhase.IDLE, CallPhase.ENDED):
            return
        self._move(CallPhase.ENDED)
        self.end_reason = reason

    def reset(self) -> None:
        self.phase = CallPhase.IDLE
        self.peer = None
        self.outgoing = False
        self.end_reason = None


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(slots=True)
class ReadWatermark:
    """Latest ``chat:read`` timestamp per peer.

    Receipts may arrive out of order, so the watermark only ever moves
    forward.
    """

    _marks: Dict[int, datetime] = field(default_factory=dict)

    def advance(self, peer: int, until: datetime | str) -> bool:
        stamp = _parse_timestamp(until)
        current = self._marks.get(peer)
        if current is not None and stamp <= current:
            return False
        self._marks[peer] = stamp
        return True

    def until(self, peer: int) -> datetime | None:
        return self._marks.get(peer)

    def is_read(self, peer: int, created_at: datetime | str) -> bool:
        mark = self._marks.get(peer)
        return mark is not None and _parse_timestamp(created_at) <= mark


class TypingThrottle:
    """Allow at most one typing indicator per peer per interval."""

    def __init__(self, interval: float = 1.2, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self._clock = clock
        self._last: Dict[int, float] = {}

    def should_send(self, peer: int) -> bool:
        now = self._clock()
        last = self._last.get(peer)
        if last is not None and now - last < self.interval:
            return False
        self._last[peer] = now
        return True


__all__ = [
    "CallPhase",
    "CallState",
    "InvalidTransition",
    "ReadWatermark",
    "TypingThrottle",
]

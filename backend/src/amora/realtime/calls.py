"""Relay of WebRTC call signaling between two users.

The server never inspects SDP or ICE payloads; it only tracks enough of each
call to refuse answers and candidates that do not belong to a live exchange.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from app.monitoring.metrics import call_sessions_active, call_sessions_total

from .connection import Connection
from .errors import InvalidEvent, NoActiveCall
from .events import (
    RTC_ANSWER,
    RTC_CANDIDATE,
    RTC_END,
    RTC_INCOMING,
    RTC_OFFER,
    AnswerEvent,
    CallEvent,
    CandidateEvent,
    EndEvent,
    OfferEvent,
)
from .ratelimit import Clock, PairCooldown
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)

DEFAULT_END_REASON = "hangup"
DISCONNECTED_REASON = "disconnected"

PairKey = Tuple[int, int]


def pair_key(user_a: int, user_b: int) -> PairKey:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class CallPhase(str, Enum):
    RINGING = "ringing"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    ENDED = "ended"


@dataclass(slots=True)
class CallSession:
    caller_id: int
    callee_id: int
    phase: CallPhase
    started_at: float
    updated_at: float
    last_offer_from: int | None = None

    def involves(self, user_id: int) -> bool:
        return user_id in (self.caller_id, self.callee_id)

    def peer_of(self, user_id: int) -> int:
        return self.callee_id if user_id == self.caller_id else self.caller_id

    def may_answer(self, user_id: int) -> bool:
        if self.phase not in (CallPhase.RINGING, CallPhase.NEGOTIATING):
            return False
        if self.last_offer_from is None:
            return user_id == self.callee_id
        return self.involves(user_id) and user_id != self.last_offer_from


class CallSignalingRelay:
    """Routes ``rtc:*`` events to the peer's room and tracks call sessions.

    Entitlement checks are applied by the gateway around :meth:`call`,
    :meth:`offer`, :meth:`answer` and :meth:`candidate`. Hanging up is
    always allowed.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        cooldown: PairCooldown,
        *,
        ring_timeout: float = 45.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._registry = registry
        self._cooldown = cooldown
        self._ring_timeout = ring_timeout
        self._clock = clock
        self._sessions: Dict[PairKey, CallSession] = {}

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def session_for(self, user_a: int, user_b: int) -> CallSession | None:
        key = pair_key(user_a, user_b)
        session = self._sessions.get(key)
        if session is None:
            return None
        if (
            session.phase is CallPhase.RINGING
            and self._clock() - session.started_at > self._ring_timeout
        ):
            self._close(key, "timeout")
            return None
        return session

    def active_sessions(self) -> list[CallSession]:
        return list(self._sessions.values())

    def _open(self, caller_id: int, callee_id: int, phase: CallPhase) -> CallSession:
        now = self._clock()
        session = CallSession(caller_id, callee_id, phase, started_at=now, updated_at=now)
        self._sessions[pair_key(caller_id, callee_id)] = session
        call_sessions_total.labels("started").inc()
        call_sessions_active.set(len(self._sessions))
        return session

    def _close(self, key: PairKey, outcome: str) -> CallSession | None:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.phase = CallPhase.ENDED
            call_sessions_total.labels(outcome).inc()
            call_sessions_active.set(len(self._sessions))
        return session

    # ------------------------------------------------------------------
    # Signaling handlers
    # ------------------------------------------------------------------

    async def call(self, connection: Connection, event: CallEvent) -> CallSession:
        caller = connection.user_id
        if event.to == caller:
            raise InvalidEvent("Cannot call yourself")
        await self._cooldown.acquire(caller, event.to)
        if self._sessions.get(pair_key(caller, event.to)) is not None:
            self._close(pair_key(caller, event.to), "replaced")
        session = self._open(caller, event.to, CallPhase.RINGING)
        self._registry.deliver(event.to, RTC_INCOMING, {"from": caller, "meta": dict(event.meta)})
        return session

    async def offer(self, connection: Connection, event: OfferEvent) -> bool:
        sender = connection.user_id
        if event.to == sender:
            return False
        session = self.session_for(sender, event.to)
        # Only a session opened by call() can carry an offer.
        if session is None:
            logger.debug("Dropping offer without a live call", extra={"user": sender, "peer": event.to})
            return False
        session.phase = CallPhase.NEGOTIATING
        session.last_offer_from = sender
        session.updated_at = self._clock()
        self._registry.deliver(event.to, RTC_OFFER, {"from": sender, "sdp": event.sdp})
        return True

    async def answer(self, connection: Connection, event: AnswerEvent) -> bool:
        sender = connection.user_id
        session = self.session_for(sender, event.to) if event.to != sender else None
        if session is None or not session.may_answer(sender):
            logger.debug("Rejecting answer without a pending offer", extra={"user": sender, "peer": event.to})
            raise NoActiveCall("No pending call to answer")
        if session.phase is not CallPhase.CONNECTED:
            call_sessions_total.labels("connected").inc()
        session.phase = CallPhase.CONNECTED
        session.updated_at = self._clock()
        self._registry.deliver(event.to, RTC_ANSWER, {"from": sender, "sdp": event.sdp})
        return True

    async def candidate(self, connection: Connection, event: CandidateEvent) -> bool:
        sender = connection.user_id
        if event.to == sender or self.session_for(sender, event.to) is None:
            return False
        self._registry.deliver(event.to, RTC_CANDIDATE, {"from": sender, "candidate": event.candidate})
        return True

    async def end(self, connection: Connection, event: EndEvent) -> bool:
        sender = connection.user_id
        if event.to == sender:
            return False
        self._close(pair_key(sender, event.to), "ended")
        self._registry.deliver(
            event.to,
            RTC_END,
            {"from": sender, "reason": event.reason or DEFAULT_END_REASON},
        )
        return True

    def disconnect(self, user_id: int) -> int:
        """End every session of a user whose last connection went away."""

        ended = 0
        for key, session in list(self._sessions.items()):
            if not session.involves(user_id):
                continue
            self._close(key, DISCONNECTED_REASON)
            self._registry.deliver(
                session.peer_of(user_id),
                RTC_END,
                {"from": user_id, "reason": DISCONNECTED_REASON},
            )
            ended += 1
        return ended


__all__ = [
    "CallPhase",
    "CallSession",
    "CallSignalingRelay",
    "pair_key",
    "DEFAULT_END_REASON",
    "DISCONNECTED_REASON",
]

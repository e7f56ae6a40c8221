"""Dispatch of inbound realtime frames to the chat and call handlers."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from app.monitoring.metrics import realtime_events_total, realtime_handler_errors_total

from .calls import CallSignalingRelay
from .chat import ChatProtocol
from .connection import Connection
from .errors import CooldownActive, RealtimeError
from .events import (
    ERROR,
    INBOUND_EVENT_TYPES,
    PONG,
    AnswerEvent,
    CallEvent,
    CandidateEvent,
    ChatSendEvent,
    EndEvent,
    MalformedEvent,
    OfferEvent,
    PingEvent,
    RegisterEvent,
    TypingEvent,
    UnsupportedEvent,
    ack_frame,
    frame,
    parse_inbound,
)
from .gate import REFUSED, AuthorizationGate
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, Any], Awaitable[Any]]

# Inbound event class -> gateway method. Checked against the event union below.
_ROUTES: dict[type, str] = {
    RegisterEvent: "_on_register",
    TypingEvent: "_on_typing",
    ChatSendEvent: "_on_send",
    CallEvent: "_on_call",
    OfferEvent: "_on_offer",
    AnswerEvent: "_on_answer",
    CandidateEvent: "_on_candidate",
    EndEvent: "_on_end",
    PingEvent: "_on_ping",
}

# Call signaling that requires a video entitlement. Hanging up never does.
PRIVILEGED_EVENTS = frozenset({CallEvent, OfferEvent, AnswerEvent, CandidateEvent})

_unrouted = set(INBOUND_EVENT_TYPES) - set(_ROUTES)
if _unrouted:  # pragma: no cover - import time guard
    raise RuntimeError(f"No realtime handler for {sorted(cls.__name__ for cls in _unrouted)}")


class RealtimeGateway:
    """Entry point used by the websocket endpoint for every decoded frame."""

    def __init__(
        self,
        registry: PresenceRegistry,
        gate: AuthorizationGate,
        chat: ChatProtocol,
        calls: CallSignalingRelay,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.chat = chat
        self.calls = calls
        self._handlers: dict[type, Handler] = {}
        for event_cls, name in _ROUTES.items():
            handler: Handler = getattr(self, name)
            if event_cls in PRIVILEGED_EVENTS:
                handler = gate.guard(handler)
            self._handlers[event_cls] = handler

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def attach(self, connection: Connection) -> None:
        self.registry.connect(connection)
        logger.info("Realtime connection opened", extra={"connection": connection.id, "user": connection.user_id})

    def detach(self, connection: Connection) -> None:
        last = self.registry.leave(connection)
        connection.close()
        if last:
            self.calls.disconnect(connection.user_id)
        logger.info("Realtime connection closed", extra={"connection": connection.id, "user": connection.user_id})

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, connection: Connection, payload: Any) -> None:
        try:
            event = parse_inbound(payload)
        except UnsupportedEvent as exc:
            connection.push(frame(ERROR, {"detail": exc.message}))
            return
        except MalformedEvent as exc:
            if exc.expects_ack:
                connection.push(ack_frame(exc.ack, False, error=exc.code, message=exc.message))
            else:
                logger.debug("Dropping malformed %s frame: %s", exc.event_type, exc.message)
            return

        realtime_events_total.labels(event.type, "in").inc()
        handler = self._handlers[type(event)]
        try:
            result = await handler(connection, event)
        except RealtimeError as exc:
            logger.debug("Rejected %s: %s", event.type, exc.code, extra={"user": connection.user_id})
            if event.ack is not None:
                extra: dict[str, Any] = {"error": exc.code, "message": exc.message}
                if isinstance(exc, CooldownActive):
                    extra["retryAfter"] = round(exc.retry_after, 3)
                connection.push(ack_frame(event.ack, False, **extra))
            return
        except Exception:
            realtime_handler_errors_total.labels(event.type).inc()
            logger.exception("Realtime handler failed for %s", event.type, extra={"user": connection.user_id})
            if event.ack is not None:
                connection.push(ack_frame(event.ack, False, error="server_error"))
            return

        if result is REFUSED or event.ack is None:
            return
        connection.push(ack_frame(event.ack, True, **(result or {})))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_register(self, connection: Connection, event: RegisterEvent) -> dict[str, Any]:
        return {"joined": self.registry.join(connection, event.user_id)}

    async def _on_typing(self, connection: Connection, event: TypingEvent) -> None:
        self.chat.typing(connection, event.to)

    async def _on_send(self, connection: Connection, event: ChatSendEvent) -> dict[str, Any]:
        message = await self.chat.send(connection, event.to, event.content)
        return {"item": message.to_payload()}

    async def _on_call(self, connection: Connection, event: CallEvent) -> None:
        await self.calls.call(connection, event)

    async def _on_offer(self, connection: Connection, event: OfferEvent) -> None:
        await self.calls.offer(connection, event)

    async def _on_answer(self, connection: Connection, event: AnswerEvent) -> None:
        await self.calls.answer(connection, event)

    async def _on_candidate(self, connection: Connection, event: CandidateEvent) -> None:
        await self.calls.candidate(connection, event)

    async def _on_end(self, connection: Connection, event: EndEvent) -> None:
        await self.calls.end(connection, event)

    async def _on_ping(self, connection: Connection, event: PingEvent) -> None:
        connection.push(frame(PONG))


__all__ = ["RealtimeGateway", "PRIVILEGED_EVENTS"]

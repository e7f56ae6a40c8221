"""Assembly of the realtime components into one owned container."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from .calls import CallSignalingRelay
from .chat import MAX_MESSAGE_LENGTH, ChatProtocol
from .connection import Connection
from .gate import AuthorizationGate, EntitlementLookup, Entitlements, TokenResolver
from .gateway import RealtimeGateway
from .ports import MatchPredicate, MessageStore, NotificationStore
from .ratelimit import (
    Clock,
    CooldownStore,
    InMemoryCooldownStore,
    PairCooldown,
    SlidingWindowLimiter,
)
from .registry import PresenceRegistry
from .unread import UnreadCounterService


@dataclass(slots=True)
class RealtimeOptions:
    send_enabled: bool = False
    message_window_seconds: float = 15.0
    message_max_per_window: int = 8
    call_cooldown_seconds: float = 30 * 60
    ring_timeout_seconds: float = 45.0
    outbox_size: int = 256
    message_max_length: int = MAX_MESSAGE_LENGTH


@dataclass(slots=True)
class RealtimeServices:
    registry: PresenceRegistry
    gate: AuthorizationGate
    limiter: SlidingWindowLimiter
    cooldown: PairCooldown
    unread: UnreadCounterService
    chat: ChatProtocol
    calls: CallSignalingRelay
    gateway: RealtimeGateway
    options: RealtimeOptions

    def new_connection(
        self,
        user_id: int,
        entitlements: Entitlements,
        *,
        websocket: Any = None,
    ) -> Connection:
        return Connection(
            user_id,
            entitlements,
            self.limiter.new_state(),
            websocket=websocket,
            outbox_size=self.options.outbox_size,
        )


def build_realtime_services(
    *,
    messages: MessageStore,
    notifications: NotificationStore,
    matches: MatchPredicate,
    resolve_token: TokenResolver,
    lookup_entitlements: EntitlementLookup,
    options: RealtimeOptions | None = None,
    cooldown_store: CooldownStore | None = None,
    clock: Clock = time.monotonic,
) -> RealtimeServices:
    options = options or RealtimeOptions()
    registry = PresenceRegistry()
    gate = AuthorizationGate(resolve_token, lookup_entitlements)
    limiter = SlidingWindowLimiter(
        options.message_window_seconds,
        options.message_max_per_window,
        clock=clock,
    )
    cooldown = PairCooldown(
        cooldown_store or InMemoryCooldownStore(clock=clock),
        options.call_cooldown_seconds,
    )
    unread = UnreadCounterService(registry, messages, notifications)
    chat = ChatProtocol(
        registry,
        unread,
        messages,
        matches,
        limiter,
        send_enabled=options.send_enabled,
        max_length=options.message_max_length,
    )
    calls = CallSignalingRelay(
        registry,
        cooldown,
        ring_timeout=options.ring_timeout_seconds,
        clock=clock,
    )
    gateway = RealtimeGateway(registry, gate, chat, calls)
    return RealtimeServices(
        registry=registry,
        gate=gate,
        limiter=limiter,
        cooldown=cooldown,
        unread=unread,
        chat=chat,
        calls=calls,
        gateway=gateway,
        options=options,
    )


__all__ = ["RealtimeOptions", "RealtimeServices", "build_realtime_services"]

"""Realtime chat and call signaling components."""

from .calls import CallPhase, CallSession, CallSignalingRelay
from .chat import ChatProtocol, normalize_content
from .connection import Connection
from .errors import (
    CooldownActive,
    InvalidEvent,
    NoActiveCall,
    NotMatched,
    RateLimited,
    RealtimeError,
    SendDisabled,
    Unauthorized,
    UpgradeRequired,
)
from .gate import AuthorizationGate, Entitlements, PlanTier, can_video_call, resolve_tier
from .gateway import RealtimeGateway
from .ports import MatchPredicate, MessageRecord, MessageStore, NotificationRecord, NotificationStore
from .ratelimit import (
    InMemoryCooldownStore,
    PairCooldown,
    RedisCooldownStore,
    SlidingWindowLimiter,
)
from .registry import PresenceRegistry
from .services import RealtimeOptions, RealtimeServices, build_realtime_services
from .unread import UnreadCounterService, UnreadKind

__all__ = [
    "AuthorizationGate",
    "CallPhase",
    "CallSession",
    "CallSignalingRelay",
    "ChatProtocol",
    "Connection",
    "CooldownActive",
    "Entitlements",
    "InMemoryCooldownStore",
    "InvalidEvent",
    "MatchPredicate",
    "MessageRecord",
    "MessageStore",
    "NoActiveCall",
    "NotMatched",
    "NotificationRecord",
    "NotificationStore",
    "PairCooldown",
    "PlanTier",
    "PresenceRegistry",
    "RateLimited",
    "RealtimeError",
    "RealtimeGateway",
    "RealtimeOptions",
    "RealtimeServices",
    "RedisCooldownStore",
    "SendDisabled",
    "SlidingWindowLimiter",
    "Unauthorized",
    "UnreadCounterService",
    "UnreadKind",
    "UpgradeRequired",
    "build_realtime_services",
    "can_video_call",
    "normalize_content",
    "resolve_tier",
]

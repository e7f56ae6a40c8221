"""Reusable realtime client and its pure state helpers."""

from .session import AckError, RealtimeClient
from .state import CallPhase, CallState, InvalidTransition, ReadWatermark, TypingThrottle

__all__ = [
    "AckError",
    "CallPhase",
    "CallState",
    "InvalidTransition",
    "ReadWatermark",
    "RealtimeClient",
    "TypingThrottle",
]

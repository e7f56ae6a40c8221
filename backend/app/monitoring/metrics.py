"""Metric definitions for the realtime gateway and the HTTP surface."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime frames handled by the gateway.",
    label_names=("event", "direction"),
)

realtime_dropped_events_total = registry.counter(
    "realtime_dropped_events_total",
    "Outbound frames addressed to users without a live connection.",
    label_names=("event",),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_rejections_total = registry.counter(
    "realtime_rejections_total",
    "Realtime requests refused by the rate limiter, cooldown or entitlement gate.",
    label_names=("reason",),
)

realtime_handler_errors_total = registry.counter(
    "realtime_handler_errors_total",
    "Unexpected failures raised while handling an inbound frame.",
    label_names=("event",),
)

call_sessions_active = registry.gauge(
    "call_sessions_active",
    "Call sessions currently ringing or negotiating.",
)

call_sessions_total = registry.counter(
    "call_sessions_total",
    "Call sessions by outcome.",
    label_names=("outcome",),
)

notifications_created_total = registry.counter(
    "notifications_created_total",
    "Notifications persisted by type.",
    label_names=("type",),
)


__all__ = [
    "realtime_events_total",
    "realtime_dropped_events_total",
    "realtime_connections",
    "realtime_rejections_total",
    "realtime_handler_errors_total",
    "call_sessions_active",
    "call_sessions_total",
    "notifications_created_total",
]

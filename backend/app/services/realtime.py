"""Wiring of the realtime core onto the application's stores and settings."""

from __future__ import annotations

import logging

import redis.asyncio as redis
from fastapi import HTTPException
from fastapi.requests import HTTPConnection
from sqlalchemy.orm import Session, sessionmaker

from amora.realtime import (
    InMemoryCooldownStore,
    PairCooldown,
    RealtimeOptions,
    RealtimeServices,
    RedisCooldownStore,
    Unauthorized,
    build_realtime_services,
)
from amora.realtime.ratelimit import CooldownStore

from app.config import Settings
from app.core.security import token_subject
from app.services.entitlements import SqlEntitlementLookup
from app.services.matches import SqlMatchPredicate
from app.services.messages import SqlMessageStore
from app.services.notifications import SqlNotificationStore

logger = logging.getLogger(__name__)


def resolve_token(token: str) -> int:
    try:
        return token_subject(token)
    except HTTPException as exc:
        raise Unauthorized(str(exc.detail)) from exc


def build_cooldown_store(settings: Settings) -> CooldownStore:
    if settings.realtime_redis_url:
        logger.info("Using Redis for call cooldowns")
        client = redis.from_url(settings.realtime_redis_url, encoding="utf-8", decode_responses=True)
        return RedisCooldownStore(client)
    return InMemoryCooldownStore()


def create_realtime_services(
    session_factory: sessionmaker[Session],
    settings: Settings,
) -> RealtimeServices:
    options = RealtimeOptions(
        send_enabled=settings.realtime_send_enabled,
        message_window_seconds=settings.message_rate_window_seconds,
        message_max_per_window=settings.message_rate_max,
        call_cooldown_seconds=settings.call_cooldown_seconds,
        ring_timeout_seconds=settings.call_ring_timeout_seconds,
        outbox_size=settings.realtime_outbox_size,
        message_max_length=settings.message_max_length,
    )
    return build_realtime_services(
        messages=SqlMessageStore(session_factory),
        notifications=SqlNotificationStore(session_factory),
        matches=SqlMatchPredicate(session_factory),
        resolve_token=resolve_token,
        lookup_entitlements=SqlEntitlementLookup(session_factory, settings),
        options=options,
        cooldown_store=build_cooldown_store(settings),
    )


def create_call_request_cooldown(settings: Settings, store: CooldownStore) -> PairCooldown:
    return PairCooldown(store, settings.call_request_cooldown_seconds, scope="call-request")


async def close_realtime_services(services: RealtimeServices) -> None:
    store = services.cooldown.store
    if isinstance(store, RedisCooldownStore):
        await store.close()


def get_realtime(connection: HTTPConnection) -> RealtimeServices:
    return connection.app.state.realtime


def get_notification_store(connection: HTTPConnection) -> SqlNotificationStore:
    return connection.app.state.notification_store


def get_call_request_cooldown(connection: HTTPConnection) -> PairCooldown:
    return connection.app.state.call_request_cooldown


__all__ = [
    "close_realtime_services",
    "create_call_request_cooldown",
    "create_realtime_services",
    "get_call_request_cooldown",
    "get_notification_store",
    "get_realtime",
    "resolve_token",
]

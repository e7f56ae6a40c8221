"""Handshake authentication and entitlement checks for realtime events."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from app.monitoring.metrics import realtime_rejections_total

from .errors import Unauthorized, UpgradeRequired
from .events import RTC_ERROR, frame

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .connection import Connection

logger = logging.getLogger(__name__)

UPGRADE_MESSAGE = "Upgrade required for video chat."

# Returned by guarded handlers when the event was refused.
REFUSED = object()


class PlanTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ELITE = "elite"


def resolve_tier(
    price_id: str | None,
    *,
    elite_price_id: str | None,
    premium_price_id: str | None,
    legacy_premium: bool = False,
) -> PlanTier:
    """Map a billing price identifier onto a plan tier.

    Elite wins over premium when both identifiers are configured to the same
    value. Accounts created before plans existed carry ``legacy_premium``.
    """

    if price_id and elite_price_id and price_id == elite_price_id:
        return PlanTier.ELITE
    if price_id and premium_price_id and price_id == premium_price_id:
        return PlanTier.PREMIUM
    if legacy_premium:
        return PlanTier.PREMIUM
    return PlanTier.FREE


def can_video_call(tier: PlanTier, video_opt_in: bool) -> bool:
    return tier is PlanTier.ELITE or (tier is PlanTier.PREMIUM and video_opt_in)


@dataclass(slots=True, frozen=True)
class Entitlements:
    tier: PlanTier = PlanTier.FREE
    video_opt_in: bool = False

    @property
    def can_video_call(self) -> bool:
        return can_video_call(self.tier, self.video_opt_in)


TokenResolver = Callable[[str], int]
EntitlementLookup = Callable[[int], Awaitable["Entitlements | None"]]
Handler = Callable[["Connection", Any], Awaitable[Any]]


class AuthorizationGate:
    """Identifies connections at handshake and guards privileged events.

    Entitlements are snapshotted when a connection is admitted and are not
    refreshed afterwards. A user who upgrades has to reconnect.
    """

    def __init__(self, resolve_token: TokenResolver, lookup: EntitlementLookup) -> None:
        self._resolve_token = resolve_token
        self._lookup = lookup

    def authenticate(self, token: str | None) -> int:
        if not token:
            raise Unauthorized("Missing access token")
        return self._resolve_token(token)

    async def snapshot(self, user_id: int) -> Entitlements:
        entitlements = await self._lookup(user_id)
        if entitlements is None:
            raise Unauthorized("User not found")
        return entitlements

    async def admit(self, token: str | None) -> tuple[int, Entitlements]:
        user_id = self.authenticate(token)
        return user_id, await self.snapshot(user_id)

    def guard(self, handler: Handler) -> Handler:
        """Wrap *handler* so that connections without video entitlement are refused.

        A refused event is answered with ``rtc:error`` on the originating
        connection only and the handler is not invoked.
        """

        @functools.wraps(handler)
        async def wrapper(connection: "Connection", event: Any) -> Any:
            if not connection.entitlements.can_video_call:
                realtime_rejections_total.labels(UpgradeRequired.code).inc()
                logger.info(
                    "Refusing %s without video entitlement",
                    getattr(event, "type", "event"),
                    extra={"user": connection.user_id},
                )
                connection.push(
                    frame(RTC_ERROR, {"code": UpgradeRequired.code, "message": UPGRADE_MESSAGE})
                )
                return REFUSED
            return await handler(connection, event)

        return wrapper


__all__ = [
    "PlanTier",
    "Entitlements",
    "AuthorizationGate",
    "resolve_tier",
    "can_video_call",
    "UPGRADE_MESSAGE",
    "REFUSED",
]

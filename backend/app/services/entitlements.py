"""Plan tier resolution for users."""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from amora.realtime.gate import Entitlements, PlanTier, resolve_tier

from app.config import Settings
from app.models import User


def plan_of(user: User, settings: Settings) -> PlanTier:
    return resolve_tier(
        user.subscription_price_id,
        elite_price_id=settings.stripe_price_elite,
        premium_price_id=settings.stripe_price_premium,
        legacy_premium=bool(user.is_premium),
    )


def entitlements_for(user: User, settings: Settings) -> Entitlements:
    return Entitlements(tier=plan_of(user, settings), video_opt_in=bool(user.video_chat))


class SqlEntitlementLookup:
    """Loads a user's entitlement snapshot for the realtime handshake."""

    def __init__(self, session_factory: sessionmaker[Session], settings: Settings) -> None:
        self._session_factory = session_factory
        self._settings = settings

    def _load(self, user_id: int) -> Entitlements | None:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            return entitlements_for(user, self._settings)

    async def __call__(self, user_id: int) -> Entitlements | None:
        return await run_in_threadpool(self._load, user_id)


__all__ = ["SqlEntitlementLookup", "entitlements_for", "plan_of"]

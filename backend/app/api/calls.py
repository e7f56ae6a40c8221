"""HTTP call requests that ring a user before any realtime signaling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from amora.realtime import CooldownActive, PairCooldown, PlanTier, RealtimeServices
from amora.realtime.events import RTC_RING

from app.api.deps import get_app_settings, get_current_user, get_peer
from app.config import Settings
from app.database import get_db
from app.models import NotificationType, User
from app.models.social import as_utc
from app.services.entitlements import plan_of
from app.services.matches import is_mutual_match
from app.services.notifications import SqlNotificationStore, notify
from app.services.realtime import get_call_request_cooldown, get_notification_store, get_realtime

router = APIRouter(prefix="/calls", tags=["calls"])


def _call_allowed(caller: User, callee: User, settings: Settings, db: Session) -> bool:
    min_age = timedelta(hours=settings.call_min_account_age_hours)
    old_enough = datetime.now(timezone.utc) - as_utc(caller.created_at) > min_age
    if not (old_enough and caller.is_verified and callee.is_verified and callee.video_chat):
        return False
    if settings.call_requires_match and not is_mutual_match(db, caller.id, callee.id):
        return False
    return True


@router.post("/{user_id}/request")
async def request_call(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    realtime: RealtimeServices = Depends(get_realtime),
    notifications: SqlNotificationStore = Depends(get_notification_store),
    cooldown: PairCooldown = Depends(get_call_request_cooldown),
):
    """Ask another user to start a video call.

    Only elite members may ring. Both accounts must be verified, the caller's
    account old enough and the callee opted in to video chat.
    """

    me = current_user.id
    if user_id == me:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot call yourself")
    callee = await run_in_threadpool(get_peer, user_id, db)

    if plan_of(current_user, settings) is not PlanTier.ELITE:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={"ok": False, "error": "elite_required"},
        )
    if not await run_in_threadpool(_call_allowed, current_user, callee, settings, db):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"ok": False, "error": "not_allowed"},
        )
    try:
        await cooldown.acquire(me, callee.id)
    except CooldownActive as exc:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"ok": False, "error": "cooldown"},
            headers={"Retry-After": str(max(int(exc.retry_after), 1))},
        )

    caller_name = current_user.display_name or current_user.login
    await notify(
        realtime,
        notifications,
        callee.id,
        NotificationType.SYSTEM,
        "wants to start a video chat",
        sender_id=me,
        extra={"kind": "call_request", "with": me},
    )
    realtime.registry.deliver(callee.id, RTC_RING, {"from": {"id": me, "name": caller_name}})
    return {"ok": True}

"""Likes and match creation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from amora.realtime import RealtimeServices

from app.api.deps import get_current_user, get_peer
from app.database import get_db
from app.models import NotificationType, User
from app.services.matches import record_like
from app.services.notifications import SqlNotificationStore, notify
from app.services.realtime import get_notification_store, get_realtime

router = APIRouter(prefix="/likes", tags=["likes"])


@router.post("/{user_id}")
async def like_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
    notifications: SqlNotificationStore = Depends(get_notification_store),
) -> dict[str, object]:
    """Like another user; a like in both directions becomes a match."""

    me = current_user.id
    if user_id == me:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot like yourself")
    await run_in_threadpool(get_peer, user_id, db)
    created, mutual = await run_in_threadpool(record_like, db, me, user_id)

    if created and mutual:
        for recipient, sender in ((user_id, me), (me, user_id)):
            await notify(
                realtime,
                notifications,
                recipient,
                NotificationType.MATCH,
                "It is a match",
                sender_id=sender,
                extra={"with": sender},
            )
    elif created:
        await notify(realtime, notifications, user_id, NotificationType.LIKE, "liked you", sender_id=me)

    return {"ok": True, "status": "match" if mutual else "liked", "created": created}

"""Notification feed endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from amora.realtime import RealtimeServices

from app.api.deps import get_app_settings, get_current_user
from app.config import Settings
from app.database import get_db
from app.models import User
from app.schemas import NotificationList, NotificationRead, NotificationUpdate
from app.services import notifications as notification_service
from app.services.realtime import get_realtime

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    before: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> NotificationList:
    resolved_limit = min(limit or settings.notifications_default_limit, settings.notifications_max_limit)
    items = notification_service.list_notifications(db, current_user.id, before=before, limit=resolved_limit)
    return NotificationList(items=[NotificationRead.model_validate(item) for item in items])


@router.post("/read-all", response_model=NotificationUpdate)
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
) -> NotificationUpdate:
    me = current_user.id

    def apply() -> None:
        notification_service.mark_all_read(db, me)
        db.commit()

    await run_in_threadpool(apply)
    unread = await realtime.unread.refresh_notifications(me)
    return NotificationUpdate(unread=unread or 0)


async def _update_one(
    db: Session,
    realtime: RealtimeServices,
    user_id: int,
    notification_id: int,
    action: Callable[[Session, int, int], bool],
) -> NotificationUpdate:
    def apply() -> bool:
        changed = action(db, user_id, notification_id)
        db.commit()
        return changed

    if not await run_in_threadpool(apply):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    unread = await realtime.unread.refresh_notifications(user_id)
    if unread is None:
        unread = await run_in_threadpool(notification_service.count_unread, db, user_id)
    return NotificationUpdate(unread=unread)


@router.post("/{notification_id}/read", response_model=NotificationUpdate)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
) -> NotificationUpdate:
    return await _update_one(db, realtime, current_user.id, notification_id, notification_service.mark_read)


@router.delete("/{notification_id}", response_model=NotificationUpdate)
async def dismiss_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
) -> NotificationUpdate:
    """Hide a notification from the caller's feed."""

    return await _update_one(db, realtime, current_user.id, notification_id, notification_service.dismiss)

"""Unread badge counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import ThreadUnread, UnreadCount
from app.services import messages as message_service
from app.services import notifications as notification_service
from app.services.matches import mutual_match_ids

router = APIRouter(prefix="/unread", tags=["unread"])


@router.get("/messages", response_model=UnreadCount)
def unread_messages(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(count=message_service.count_unread(db, current_user.id))


@router.get("/threads", response_model=ThreadUnread)
def unread_threads(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ThreadUnread:
    """Unread counts per mutual match; peers without unread messages are omitted."""

    counts = message_service.unread_by_peer(db, current_user.id, mutual_match_ids(db, current_user.id))
    by = {str(peer): count for peer, count in counts.items() if count}
    return ThreadUnread(by=by, total=sum(by.values()))


@router.get("/notifications", response_model=UnreadCount)
def unread_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(count=notification_service.count_unread(db, current_user.id))

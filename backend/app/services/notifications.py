"""Notification persistence and realtime fan-out."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import exists, func, select, update
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from amora.realtime import RealtimeServices
from amora.realtime.events import NEW_NOTIFICATION
from amora.realtime.ports import NotificationRecord

from app.database import session_scope
from app.models import Notification, NotificationDeletion, NotificationType
from app.models.social import as_utc
from app.monitoring.metrics import notifications_created_total

logger = logging.getLogger(__name__)


def visible_to(user_id: int):
    return ~exists().where(
        NotificationDeletion.notification_id == Notification.id,
        NotificationDeletion.user_id == user_id,
    )


def to_record(notification: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=notification.id,
        recipient_id=notification.recipient_id,
        sender_id=notification.sender_id,
        type=NotificationType(notification.type).value,
        message=notification.message,
        created_at=as_utc(notification.created_at),
        read=notification.read,
        extra=dict(notification.extra or {}),
    )


def create_notification(
    db: Session,
    recipient_id: int,
    type: NotificationType,
    message: str = "",
    *,
    sender_id: int | None = None,
    extra: dict[str, Any] | None = None,
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=NotificationType(type),
        message=message[:255],
        extra=extra or {},
        read=False,
    )
    db.add(notification)
    db.flush()
    notifications_created_total.labels(notification.type.value).inc()
    return notification


def count_unread(db: Session, user_id: int) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.recipient_id == user_id,
        Notification.read.is_(False),
        visible_to(user_id),
    )
    return int(db.execute(stmt).scalar_one())


def list_notifications(
    db: Session, user_id: int, *, before: datetime | None = None, limit: int = 20
) -> list[Notification]:
    stmt = select(Notification).where(Notification.recipient_id == user_id, visible_to(user_id))
    if before is not None:
        stmt = stmt.where(Notification.created_at < before)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())


def _owned(db: Session, user_id: int, notification_id: int) -> Notification | None:
    stmt = select(Notification).where(
        Notification.id == notification_id,
        Notification.recipient_id == user_id,
        visible_to(user_id),
    )
    return db.execute(stmt).scalar_one_or_none()


def mark_read(db: Session, user_id: int, notification_id: int) -> bool:
    notification = _owned(db, user_id, notification_id)
    if notification is None:
        return False
    notification.read = True
    db.flush()
    return True


def mark_all_read(db: Session, user_id: int) -> int:
    result = db.execute(
        update(Notification)
        .where(
            Notification.recipient_id == user_id,
            Notification.read.is_(False),
            visible_to(user_id),
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def dismiss(db: Session, user_id: int, notification_id: int) -> bool:
    notification = _owned(db, user_id, notification_id)
    if notification is None:
        return False
    db.add(NotificationDeletion(notification_id=notification.id, user_id=user_id))
    db.flush()
    return True


class SqlNotificationStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _count_unread(self, user_id: int) -> int:
        with session_scope(self._session_factory) as db:
            return count_unread(db, user_id)

    def _create(
        self,
        recipient_id: int,
        type: NotificationType,
        message: str,
        sender_id: int | None,
        extra: dict[str, Any] | None,
    ) -> NotificationRecord:
        with session_scope(self._session_factory) as db:
            return to_record(
                create_notification(db, recipient_id, type, message, sender_id=sender_id, extra=extra)
            )

    async def count_unread(self, user_id: int) -> int:
        return await run_in_threadpool(self._count_unread, user_id)

    async def create(
        self,
        recipient_id: int,
        type: NotificationType,
        message: str = "",
        *,
        sender_id: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> NotificationRecord:
        return await run_in_threadpool(self._create, recipient_id, type, message, sender_id, extra)


async def push_notification(realtime: RealtimeServices, record: NotificationRecord) -> None:
    """Deliver a persisted notification and the refreshed badge to its recipient."""

    realtime.registry.deliver(record.recipient_id, NEW_NOTIFICATION, {"notification": record.to_payload()})
    await realtime.unread.refresh_notifications(record.recipient_id)


async def notify(
    realtime: RealtimeServices,
    store: SqlNotificationStore,
    recipient_id: int,
    type: NotificationType,
    message: str = "",
    *,
    sender_id: int | None = None,
    extra: dict[str, Any] | None = None,
) -> NotificationRecord:
    record = await store.create(recipient_id, type, message, sender_id=sender_id, extra=extra)
    logger.debug("Notification %s created", record.type, extra={"user": recipient_id})
    await push_notification(realtime, record)
    return record


__all__ = [
    "SqlNotificationStore",
    "count_unread",
    "create_notification",
    "dismiss",
    "list_notifications",
    "mark_all_read",
    "mark_read",
    "notify",
    "push_notification",
    "to_record",
]

"""In-app notifications and the delayed unread-message reminder."""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.core.exceptions import NotificationNotFoundError
from creatordeals.core.utils import iso, json_dump, json_load
from creatordeals.models.chat import ChatMessage
from creatordeals.models.notification import Notification

logger = logging.getLogger(__name__)


def notify(
    db: AsyncSession,
    user_id: str,
    kind: str,
    title: str,
    body: str = "",
    data: dict | None = None,
) -> Notification:
    """Stage a notification on ``db``. The caller's commit persists it."""
    notification = Notification(
        user_id=user_id,
        kind=kind,
        title=title,
        body=body,
        data=json_dump(data or {}),
    )
    db.add(notification)
    return notification


async def list_notifications(
    db: AsyncSession, user_id: str, unread_only: bool = False, limit: int = 50
) -> dict:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    items = [_notification_to_dict(n) for n in result.scalars().all()]

    unread = (await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.read.is_(False)
        )
    )).scalar() or 0
    return {"notifications": items, "unread": unread}


async def mark_read(db: AsyncSession, user_id: str, notification_id: str) -> dict:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotificationNotFoundError(notification_id)
    notification.read = True
    await db.commit()
    return _notification_to_dict(notification)


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    return result.rowcount or 0


async def remind_if_unread(message_id: str) -> bool:
    """Background job: notify the receiver if ``message_id`` is still unread.

    Opens its own session because it runs after the request has finished.
    Returns True when a reminder was created.
    """
    from creatordeals import database

    async with database.async_session() as db:
        message = (await db.execute(
            select(ChatMessage).where(ChatMessage.id == message_id)
        )).scalar_one_or_none()
        if message is None or message.deleted or message.status == "read":
            return False
        notify(
            db,
            message.receiver_id,
            "unread_message",
            "You have an unread message",
            message.text[:120] if message.text else "Attachment",
            {"chat_id": message.chat_id, "message_id": message.id},
        )
        await db.commit()
    logger.info("Unread reminder created for message %s", message_id)
    return True


def _notification_to_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "kind": n.kind,
        "title": n.title,
        "body": n.body,
        "data": json_load(n.data, {}),
        "read": bool(n.read),
        "created_at": iso(n.created_at),
    }

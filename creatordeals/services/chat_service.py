"""Chat rooms and messages: delivery, unread counters, search and SSE fan-out."""
import logging
from datetime import datetime

from fastapi import UploadFile
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.config import settings
from creatordeals.core.async_tasks import fire_and_forget, run_later
from creatordeals.core.chat_broker import chat_broker
from creatordeals.core.content_filter import check_message_text
from creatordeals.core.exceptions import ChatNotFoundError, ForbiddenError, MessageNotFoundError
from creatordeals.core.utils import as_utc, is_uuid, iso, json_dump, json_load, utcnow
from creatordeals.models.chat import ChatMessage, ChatRoom
from creatordeals.services import notification_service
from creatordeals.services.upload_service import store_chat_attachments

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30
SEARCH_LIMIT = 50
EMPTY_MESSAGE = "Message cannot be empty"


def _broadcast(chat_id: str, event: dict) -> None:
    """Fire-and-forget push to the room's SSE subscribers."""
    fire_and_forget(chat_broker.publish(chat_id, event), task_name=f"chat_{event.get('type', 'event')}")


def _peer_id(room: ChatRoom, user_id: str) -> str:
    return room.creator_id if user_id == room.marketer_id else room.marketer_id


def _is_participant(room: ChatRoom, user_id: str) -> bool:
    return user_id in (room.marketer_id, room.creator_id)


def _bump_unread(room: ChatRoom, receiver_id: str) -> None:
    if receiver_id == room.marketer_id:
        room.marketer_unread = (room.marketer_unread or 0) + 1
    else:
        room.creator_unread = (room.creator_unread or 0) + 1


async def _refresh_unread(db: AsyncSession, room: ChatRoom) -> None:
    """Recount unread messages for both participants."""
    rows = await db.execute(
        select(ChatMessage.receiver_id, func.count(ChatMessage.id))
        .where(
            ChatMessage.chat_id == room.id,
            ChatMessage.status == "sent",
            ChatMessage.deleted.is_(False),
        )
        .group_by(ChatMessage.receiver_id)
    )
    counts = dict(rows.all())
    room.marketer_unread = counts.get(room.marketer_id, 0)
    room.creator_unread = counts.get(room.creator_id, 0)


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

async def get_or_create_room(
    db: AsyncSession, marketer_id: str, creator_id: str, offer_id: str | None = None
) -> ChatRoom:
    """Return the room for this pair (and offer), staging a new one if needed."""
    query = select(ChatRoom).where(
        ChatRoom.marketer_id == marketer_id, ChatRoom.creator_id == creator_id
    )
    if offer_id:
        query = query.where(ChatRoom.offer_id == offer_id)
    else:
        query = query.where(ChatRoom.offer_id.is_(None))
    room = (await db.execute(query)).scalars().first()
    if room is None:
        room = ChatRoom(marketer_id=marketer_id, creator_id=creator_id, offer_id=offer_id)
        db.add(room)
        await db.flush()
    return room


async def find_offer_room(db: AsyncSession, offer_id: str) -> ChatRoom | None:
    result = await db.execute(select(ChatRoom).where(ChatRoom.offer_id == offer_id))
    return result.scalars().first()


async def get_room(db: AsyncSession, chat_id: str, user_id: str) -> ChatRoom:
    result = await db.execute(select(ChatRoom).where(ChatRoom.id == chat_id))
    room = result.scalar_one_or_none()
    if not room:
        raise ChatNotFoundError(chat_id)
    if not _is_participant(room, user_id):
        raise ForbiddenError("Not a participant in this chat")
    return room


async def _rooms_for(db: AsyncSession, user_id: str) -> list[ChatRoom]:
    result = await db.execute(
        select(ChatRoom)
        .where(or_(ChatRoom.marketer_id == user_id, ChatRoom.creator_id == user_id))
        .order_by(ChatRoom.updated_at.desc())
    )
    return list(result.scalars().all())


async def list_rooms(db: AsyncSession, user_id: str) -> list[dict]:
    return [room_to_dict(room, user_id) for room in await _rooms_for(db, user_id)]


async def search_rooms(db: AsyncSession, user_id: str, q: str) -> list[dict]:
    """Match rooms by peer name/username or the linked offer's name/type."""
    needle = q.strip().lower()
    if not needle:
        return []
    matches = []
    for room in await _rooms_for(db, user_id):
        peer = room.creator if user_id == room.marketer_id else room.marketer
        haystack = [peer.name if peer else None, peer.user_name if peer else None]
        if room.offer is not None:
            haystack.extend([room.offer.offer_name, room.offer.offer_type])
        if any(needle in value.lower() for value in haystack if value):
            matches.append(room_to_dict(room, user_id))
    return matches


async def unread_total(db: AsyncSession, user_id: str) -> int:
    as_marketer = (await db.execute(
        select(func.coalesce(func.sum(ChatRoom.marketer_unread), 0)).where(ChatRoom.marketer_id == user_id)
    )).scalar() or 0
    as_creator = (await db.execute(
        select(func.coalesce(func.sum(ChatRoom.creator_unread), 0)).where(ChatRoom.creator_id == user_id)
    )).scalar() or 0
    return int(as_marketer) + int(as_creator)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def stage_message(
    db: AsyncSession,
    room: ChatRoom,
    sender_id: str,
    text: str,
    attachments: list[dict] | None = None,
    is_system: bool = False,
) -> ChatMessage:
    """Add a message to ``room`` and update its preview and unread counter (no commit)."""
    receiver_id = _peer_id(room, sender_id)
    now = utcnow()
    message = ChatMessage(
        chat_id=room.id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        text=text,
        attachments=json_dump(attachments or []),
        is_system=is_system,
        created_at=now,
    )
    db.add(message)
    room.last_message = text or "Attachment"
    room.last_message_at = now
    room.updated_at = now
    _bump_unread(room, receiver_id)
    return message


def announce(room: ChatRoom, message: ChatMessage) -> None:
    """Push a committed message to subscribers and schedule the unread reminder."""
    _broadcast(room.id, {"type": "message", "message": message_to_dict(message)})
    run_later(
        settings.unread_notify_delay_seconds,
        notification_service.remind_if_unread(message.id),
        task_name="unread_reminder",
    )


async def send_message(
    db: AsyncSession,
    chat_id: str,
    sender_id: str,
    text: str | None,
    receiver_id: str | None = None,
    files: list[UploadFile] | None = None,
) -> dict:
    room = await get_room(db, chat_id, sender_id)
    if receiver_id and receiver_id != _peer_id(room, sender_id):
        raise ForbiddenError("Receiver is not a participant in this chat")

    cleaned = check_message_text(text, max_length=settings.chat_max_message_length)
    if not cleaned and not files:
        raise ValueError(EMPTY_MESSAGE)
    attachments = await store_chat_attachments(files or [])
    if not cleaned and not attachments:
        raise ValueError(EMPTY_MESSAGE)

    message = stage_message(db, room, sender_id, cleaned, attachments)
    await db.commit()

    announce(room, message)
    return message_to_dict(message)


def _parse_cursor(cursor: str) -> tuple[datetime, str | None]:
    stamp, _, message_id = cursor.partition("|")
    try:
        before = as_utc(datetime.fromisoformat(stamp))
    except ValueError:
        raise ValueError("Invalid cursor") from None
    if message_id and not is_uuid(message_id):
        raise ValueError("Invalid cursor")
    return before, message_id or None


async def list_messages(
    db: AsyncSession,
    chat_id: str,
    user_id: str,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Newest-first page of messages older than ``cursor``.

    ``next_cursor`` is ``<ISO timestamp>|<message id>`` so rows sharing a
    timestamp are not skipped at a page boundary. A bare ISO timestamp is
    also accepted.
    """
    await get_room(db, chat_id, user_id)
    query = select(ChatMessage).where(ChatMessage.chat_id == chat_id)
    if cursor:
        before, before_id = _parse_cursor(cursor)
        if before_id:
            query = query.where(or_(
                ChatMessage.created_at < before,
                and_(ChatMessage.created_at == before, ChatMessage.id < before_id),
            ))
        else:
            query = query.where(ChatMessage.created_at < before)
    result = await db.execute(
        query.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit + 1)
    )
    rows = list(result.scalars().all())
    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "messages": [message_to_dict(m) for m in rows],
        "next_cursor": f"{iso(rows[-1].created_at)}|{rows[-1].id}" if has_more and rows else None,
    }


async def _get_message(db: AsyncSession, message_id: str) -> ChatMessage:
    result = await db.execute(select(ChatMessage).where(ChatMessage.id == message_id))
    message = result.scalar_one_or_none()
    if not message:
        raise MessageNotFoundError(message_id)
    return message


async def mark_message_read(db: AsyncSession, message_id: str, user_id: str) -> dict:
    message = await _get_message(db, message_id)
    room = await get_room(db, message.chat_id, user_id)
    if message.sender_id == user_id:
        raise ValueError("Cannot mark your own message as read")
    if message.status != "read":
        message.status = "read"
        message.read_at = utcnow()
        await db.flush()
        await _refresh_unread(db, room)
        await db.commit()
        _broadcast(room.id, {"type": "message_read", "message_ids": [message.id], "reader_id": user_id})
    return message_to_dict(message)


async def mark_messages_read(db: AsyncSession, user_id: str, message_ids: list[str]) -> int:
    """Bulk read receipt. Ignores ids not addressed to the caller."""
    if not message_ids:
        return 0
    result = await db.execute(
        select(ChatMessage).where(
            ChatMessage.id.in_(message_ids),
            ChatMessage.receiver_id == user_id,
            ChatMessage.status == "sent",
        )
    )
    messages = list(result.scalars().all())
    if not messages:
        return 0
    now = utcnow()
    by_room: dict[str, list[str]] = {}
    for message in messages:
        message.status = "read"
        message.read_at = now
        by_room.setdefault(message.chat_id, []).append(message.id)
    await db.flush()
    rooms = await db.execute(select(ChatRoom).where(ChatRoom.id.in_(list(by_room))))
    for room in rooms.scalars().all():
        await _refresh_unread(db, room)
    await db.commit()
    for chat_id, ids in by_room.items():
        _broadcast(chat_id, {"type": "message_read", "message_ids": ids, "reader_id": user_id})
    return len(messages)


async def mark_chat_read(db: AsyncSession, chat_id: str, user_id: str) -> int:
    room = await get_room(db, chat_id, user_id)
    result = await db.execute(
        update(ChatMessage)
        .where(
            ChatMessage.chat_id == chat_id,
            ChatMessage.receiver_id == user_id,
            ChatMessage.status == "sent",
        )
        .values(status="read", read_at=utcnow())
    )
    if user_id == room.marketer_id:
        room.marketer_unread = 0
    else:
        room.creator_unread = 0
    await db.commit()
    updated = result.rowcount or 0
    if updated:
        _broadcast(room.id, {"type": "chat_read", "reader_id": user_id})
    return updated


async def edit_message(db: AsyncSession, message_id: str, user_id: str, text: str) -> dict:
    message = await _get_message(db, message_id)
    room = await get_room(db, message.chat_id, user_id)
    if message.sender_id != user_id:
        raise ForbiddenError("Only the sender can edit this message")
    if message.deleted:
        raise ValueError("Cannot edit a deleted message")

    cleaned = check_message_text(text, max_length=settings.chat_max_message_length)
    if not cleaned and not json_load(message.attachments, []):
        raise ValueError(EMPTY_MESSAGE)
    message.text = cleaned
    message.edited = True
    message.updated_at = utcnow()
    await db.commit()

    payload = message_to_dict(message)
    _broadcast(room.id, {"type": "message_edited", "message": payload})
    return payload


async def delete_message(db: AsyncSession, message_id: str, user_id: str) -> dict:
    """Soft delete: keep a tombstone so history order is preserved."""
    message = await _get_message(db, message_id)
    room = await get_room(db, message.chat_id, user_id)
    if message.sender_id != user_id:
        raise ForbiddenError("Only the sender can delete this message")
    if not message.deleted:
        message.deleted = True
        message.text = ""
        message.attachments = "[]"
        message.updated_at = utcnow()
        await db.flush()
        await _refresh_unread(db, room)
        await db.commit()
        _broadcast(room.id, {"type": "message_deleted", "message_id": message.id})
    return message_to_dict(message)


async def search_messages(db: AsyncSession, chat_id: str, user_id: str, q: str) -> list[dict]:
    await get_room(db, chat_id, user_id)
    needle = q.strip()
    if not needle:
        return []
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    result = await db.execute(
        select(ChatMessage)
        .where(
            ChatMessage.chat_id == chat_id,
            ChatMessage.deleted.is_(False),
            ChatMessage.text.ilike(f"%{escaped}%", escape="\\"),
        )
        .order_by(ChatMessage.created_at.desc())
        .limit(SEARCH_LIMIT)
    )
    return [message_to_dict(m) for m in result.scalars().all()]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def message_to_dict(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "chat_id": m.chat_id,
        "sender_id": m.sender_id,
        "receiver_id": m.receiver_id,
        "text": m.text or "",
        "attachments": json_load(m.attachments, []),
        "status": m.status,
        "is_system": bool(m.is_system),
        "edited": bool(m.edited),
        "deleted": bool(m.deleted),
        "read_at": iso(m.read_at),
        "created_at": iso(m.created_at),
    }


def room_to_dict(room: ChatRoom, user_id: str) -> dict:
    is_marketer = user_id == room.marketer_id
    peer = room.creator if is_marketer else room.marketer
    return {
        "id": room.id,
        "offer_id": room.offer_id,
        "offer_name": room.offer.offer_name if room.offer is not None else None,
        "peer_id": peer.id if peer else None,
        "peer_name": peer.name if peer else None,
        "peer_avatar": peer.avatar_url if peer else None,
        "last_message": room.last_message,
        "last_message_at": iso(room.last_message_at),
        "unread_count": room.marketer_unread if is_marketer else room.creator_unread,
        "updated_at": iso(room.updated_at),
    }

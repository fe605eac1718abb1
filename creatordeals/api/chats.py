"""Chat endpoints: rooms, messages, read receipts, search and the SSE stream."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals import database
from creatordeals.api.deps import get_current_user, load_active_user, parse_id
from creatordeals.config import settings
from creatordeals.core.auth import get_current_user_id
from creatordeals.core.chat_broker import chat_broker
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import chat_service

router = APIRouter(prefix="/chats", tags=["chats"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class BulkReadRequest(BaseModel):
    message_ids: list[str] = Field(..., max_length=500)

class EditMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

@router.get("")
async def list_chats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"chats": await chat_service.list_rooms(db, user.id)}


@router.get("/search")
async def search_chats(
    q: str = Query(..., min_length=1, max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"chats": await chat_service.search_rooms(db, user.id, q)}


@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"total_unread": await chat_service.unread_total(db, user.id)}


# ---------------------------------------------------------------------------
# Message-level actions
# ---------------------------------------------------------------------------

@router.post("/messages/read")
async def mark_messages_read(
    req: BulkReadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await chat_service.mark_messages_read(db, user.id, req.message_ids)
    return {"updated": updated}


@router.post("/messages/{message_id}/read")
async def mark_message_read(
    message_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        message = await chat_service.mark_message_read(db, parse_id(message_id, "message"), user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": message}


@router.patch("/messages/{message_id}")
async def edit_message(
    message_id: str,
    req: EditMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        message = await chat_service.edit_message(db, parse_id(message_id, "message"), user.id, req.text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": message}


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = await chat_service.delete_message(db, parse_id(message_id, "message"), user.id)
    return {"message": message}


# ---------------------------------------------------------------------------
# Room-level messages
# ---------------------------------------------------------------------------

@router.post("/{chat_id}/messages", status_code=201)
async def send_message(
    chat_id: str,
    text: Optional[str] = Form(None),
    receiver_id: Optional[str] = Form(None),
    attachments: Optional[list[UploadFile]] = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send a text message and/or attachments (multipart form)."""
    try:
        message = await chat_service.send_message(
            db, parse_id(chat_id, "chat"), user.id, text,
            receiver_id=receiver_id, files=attachments,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": message}


@router.get("/{chat_id}/messages")
async def list_messages(
    chat_id: str,
    cursor: Optional[str] = Query(None),
    limit: int = Query(chat_service.DEFAULT_PAGE_SIZE, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await chat_service.list_messages(db, parse_id(chat_id, "chat"), user.id, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{chat_id}/mark-read")
async def mark_chat_read(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await chat_service.mark_chat_read(db, parse_id(chat_id, "chat"), user.id)
    return {"updated": updated}


@router.get("/{chat_id}/search")
async def search_messages(
    chat_id: str,
    q: str = Query(..., min_length=1, max_length=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"messages": await chat_service.search_messages(db, parse_id(chat_id, "chat"), user.id, q)}


@router.get("/{chat_id}/stream")
async def stream_chat(
    chat_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
):
    """Server-Sent Events feed of new, edited, deleted and read messages for one room.

    Access is checked in a short-lived session so an open stream never holds
    a pooled connection.
    """
    chat_id = parse_id(chat_id, "chat")
    async with database.async_session() as db:
        user = await load_active_user(db, user_id)
        room = await chat_service.get_room(db, chat_id, user.id)
    queue = chat_broker.subscribe(room.id)
    if queue is None:
        raise HTTPException(status_code=503, detail="Too many live connections")

    return StreamingResponse(
        chat_broker.stream(
            room.id,
            queue,
            is_disconnected=request.is_disconnected,
            heartbeat_seconds=settings.sse_heartbeat_seconds,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )

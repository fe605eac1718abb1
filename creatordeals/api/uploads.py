"""Serve stored chat attachments and deal deliverables by content key."""
import mimetypes

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from creatordeals.api.deps import get_current_user
from creatordeals.models.user import User
from creatordeals.services.storage_service import get_storage

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.get("/{key}")
async def get_upload(key: str, user: User = Depends(get_current_user)):
    content = get_storage().get(key)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Cache-Control": "private, max-age=31536000, immutable"},
    )

"""Validation and storage of multipart uploads (chat attachments, deal deliverables)."""

from __future__ import annotations

import logging
from pathlib import PurePath

from fastapi import UploadFile

from creatordeals.config import settings
from creatordeals.core.exceptions import PayloadTooLargeError
from creatordeals.services.storage_service import get_storage

logger = logging.getLogger(__name__)

CHAT_ATTACHMENT_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".pdf", ".doc", ".docx", ".txt", ".mp4", ".mov",
}
DELIVERABLE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".pdf", ".doc", ".docx", ".mp4", ".mov", ".avi"}

UPLOAD_URL_PREFIX = "/api/v1/uploads"


def _extension(filename: str | None) -> str:
    return PurePath(filename or "").suffix.lower()


async def store_uploads(
    files: list[UploadFile],
    *,
    allowed_extensions: set[str],
    max_bytes: int,
    max_files: int,
) -> list[dict]:
    """Validate and persist uploads, returning attachment descriptors.

    Raises ValueError for a disallowed type or too many files and
    PayloadTooLargeError when a single file exceeds ``max_bytes``.
    Nothing is stored unless every file passes.
    """
    files = [f for f in files if f is not None and f.filename]
    if len(files) > max_files:
        raise ValueError(f"Too many files (max {max_files})")

    accepted: list[tuple[UploadFile, bytes]] = []
    for upload in files:
        ext = _extension(upload.filename)
        if ext not in allowed_extensions:
            raise ValueError(f"File type {ext or 'unknown'} is not allowed")
        content = await upload.read()
        if len(content) > max_bytes:
            raise PayloadTooLargeError(
                f"File {upload.filename} exceeds the {max_bytes // (1024 * 1024)}MB limit"
            )
        accepted.append((upload, content))

    storage = get_storage()
    descriptors = []
    for upload, content in accepted:
        stored = storage.put(content, upload.filename)
        descriptors.append({
            "key": stored.key,
            "url": f"{UPLOAD_URL_PREFIX}/{stored.key}",
            "name": upload.filename,
            "type": upload.content_type or "application/octet-stream",
            "size": stored.size,
        })
    if descriptors:
        logger.info("Stored %d upload(s)", len(descriptors))
    return descriptors


async def store_chat_attachments(files: list[UploadFile]) -> list[dict]:
    return await store_uploads(
        files,
        allowed_extensions=CHAT_ATTACHMENT_EXTENSIONS,
        max_bytes=settings.chat_max_attachment_bytes,
        max_files=settings.chat_max_attachments,
    )


async def store_deliverables(files: list[UploadFile]) -> list[dict]:
    return await store_uploads(
        files,
        allowed_extensions=DELIVERABLE_EXTENSIONS,
        max_bytes=settings.deliverable_max_bytes,
        max_files=settings.deliverable_max_files,
    )

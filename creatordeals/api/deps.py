"""Shared route dependencies: the authenticated user and path id parsing."""
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.core.auth import get_current_user_id
from creatordeals.core.exceptions import InvalidIdError, UnauthorizedError
from creatordeals.core.utils import is_uuid
from creatordeals.database import get_db
from creatordeals.models.user import User


async def load_active_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or user.status in ("deleted", "banned"):
        raise UnauthorizedError("User no longer exists or is not allowed")
    return user


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a live user row."""
    return await load_active_user(db, user_id)


def parse_id(value: str, kind: str) -> str:
    if not is_uuid(value):
        raise InvalidIdError(kind)
    return value

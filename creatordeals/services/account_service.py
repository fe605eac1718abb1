"""Account profiles: role-specific data, password changes and the completion score."""
import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.core.auth import hash_password, verify_password
from creatordeals.core.content_filter import sanitize_text
from creatordeals.core.exceptions import (
    ForbiddenError,
    UnauthorizedError,
    UserNameTakenError,
    UserNotFoundError,
)
from creatordeals.core.utils import is_uuid, iso, json_dump, json_load, utcnow
from creatordeals.models.user import User

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
_USER_NAME_RE = re.compile(r"^[A-Za-z0-9_.]{3,30}$")

CREATOR_FIELDS = {"handle_name", "categories", "platforms", "sponsored_post_rate", "portfolio"}
MARKETER_FIELDS = {"brand_name", "brand_website", "industry", "brand_description", "budget", "categories"}

# Profile completion weights (sum to 100)
COMPLETION_WEIGHTS = {
    "basic": 30,
    "role_specific": 25,
    "verification": 20,
    "financial": 15,
    "preferences": 10,
}


# ---------------------------------------------------------------------------
# Validation helpers (shared with auth_service)
# ---------------------------------------------------------------------------

def validate_password_strength(password: str) -> None:
    """Require 8+ characters with upper case, lower case and a digit."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password) or not re.search(r"[a-z]", password):
        raise ValueError("Password must contain upper and lower case letters")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain a number")


def validate_email(email: str) -> str:
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Invalid email address")
    return email


def validate_user_name(user_name: str) -> str:
    user_name = user_name.strip().lstrip("@")
    if not _USER_NAME_RE.match(user_name):
        raise ValueError("Username must be 3-30 letters, digits, dots or underscores")
    return user_name.lower()


async def ensure_user_name_available(db: AsyncSession, user_name: str, user_id: str) -> None:
    result = await db.execute(
        select(User.id).where(User.user_name == user_name, User.id != user_id)
    )
    if result.first():
        raise UserNameTakenError(user_name)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: str) -> User:
    """Fetch a user that has not been deleted. Raises UserNotFoundError."""
    if not is_uuid(user_id):
        raise UserNotFoundError(user_id)
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or user.status == "deleted":
        raise UserNotFoundError(user_id)
    return user


async def get_profile(db: AsyncSession, user_id: str) -> dict:
    user = await get_user(db, user_id)
    profile = user_to_dict(user)
    profile["profile_completion"] = profile_completion(user)
    return profile


async def get_public_profile(db: AsyncSession, user_id: str, viewer_id: str | None = None) -> dict:
    user = await get_user(db, user_id)
    profile = user_to_dict(user, private=False)
    profile["is_self"] = viewer_id == user.id
    return profile


async def search_creators(
    db: AsyncSession,
    q: str | None = None,
    category: str | None = None,
    platform: str | None = None,
    limit: int = 20,
) -> list[dict]:
    """Active creators matching a name/handle fragment, category and platform.

    Filters are case-insensitive. Results are ordered by total followers.
    """
    result = await db.execute(
        select(User).where(
            User.user_type == "Creator",
            User.is_active.is_(True),
            User.status == "active",
        )
    )
    needle = (q or "").strip().lower()
    category = (category or "").strip().lower()
    platform = (platform or "").strip().lower()

    matches = []
    for user in result.scalars().all():
        data = json_load(user.creator_data, {})
        if needle:
            names = (user.name, user.user_name, data.get("handle_name"))
            if not any(needle in (n or "").lower() for n in names):
                continue
        if category and category not in {str(c).lower() for c in data.get("categories") or []}:
            continue
        if platform:
            platforms = {
                str(p.get("platform", "")).lower() for p in data.get("platforms") or [] if isinstance(p, dict)
            }
            if platform not in platforms:
                continue
        matches.append((int(data.get("total_followers") or 0), user))

    matches.sort(key=lambda item: (-item[0], (item[1].name or "").lower()))
    return [user_to_dict(user, private=False) for _, user in matches[:limit]]


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

async def update_profile(db: AsyncSession, user_id: str, updates: dict) -> dict:
    """Update basic profile fields. Role, status and phone are never touched here."""
    user = await get_user(db, user_id)

    if updates.get("user_name") is not None:
        user_name = validate_user_name(updates["user_name"])
        await ensure_user_name_available(db, user_name, user.id)
        user.user_name = user_name
    if updates.get("email") is not None:
        email = validate_email(updates["email"])
        if email != user.email:
            user.email = email
            user.email_verified = False
    for key in ("name", "bio"):
        if updates.get(key) is not None:
            setattr(user, key, sanitize_text(updates[key]))
    if updates.get("avatar_url") is not None:
        user.avatar_url = updates["avatar_url"].strip()
    if updates.get("settings") is not None:
        current = json_load(user.settings_json, {})
        current.update(updates["settings"])
        user.settings_json = json_dump(current)

    user.updated_at = utcnow()
    await db.commit()
    return await get_profile(db, user.id)


async def update_role_data(db: AsyncSession, user_id: str, role: str, updates: dict) -> dict:
    """Merge creator or marketer profile data for a user of that role."""
    user = await get_user(db, user_id)
    if user.user_type != role:
        raise ForbiddenError(f"Only {role.lower()}s can update {role.lower()} data")

    if role == "Creator":
        allowed, column = CREATOR_FIELDS, "creator_data"
    else:
        allowed, column = MARKETER_FIELDS, "marketer_data"

    data = json_load(getattr(user, column), {})
    for key, value in updates.items():
        if key in allowed and value is not None:
            data[key] = value
    if role == "Creator":
        data["total_followers"] = sum(
            int(p.get("followers") or 0) for p in data.get("platforms", []) if isinstance(p, dict)
        )
    setattr(user, column, json_dump(data))
    user.updated_at = utcnow()
    await db.commit()
    return await get_profile(db, user.id)


async def change_password(db: AsyncSession, user_id: str, current_password: str, new_password: str) -> None:
    user = await get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    await db.commit()
    logger.info("Password changed for user %s", user.id)


async def update_device_token(db: AsyncSession, user_id: str, device_token: str) -> None:
    user = await get_user(db, user_id)
    user.device_token = device_token
    await db.commit()


async def delete_account(db: AsyncSession, user_id: str, password: str) -> None:
    """Soft delete: the row stays for offer/deal history but can no longer log in."""
    user = await get_user(db, user_id)
    if not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid password")
    user.status = "deleted"
    user.is_active = False
    user.device_token = None
    await db.commit()
    logger.info("Account deleted: %s", user.id)


# ---------------------------------------------------------------------------
# Profile completion
# ---------------------------------------------------------------------------

def profile_completion(user: User) -> dict:
    """Weighted completion score with the missing items per section."""
    creator = json_load(user.creator_data, {})
    marketer = json_load(user.marketer_data, {})
    prefs = json_load(user.settings_json, {})

    checks: dict[str, dict[str, bool]] = {
        "basic": {
            "name": bool(user.name),
            "user_name": bool(user.user_name),
            "email": bool(user.email),
            "avatar": bool(user.avatar_url),
            "bio": bool(user.bio),
        },
        "verification": {
            "phone": bool(user.phone),
            "email_verified": bool(user.email_verified),
        },
        "financial": {
            "payout_account": bool(user.payout_account_id),
        },
        "preferences": {
            "notification_settings": bool(prefs.get("notifications")),
        },
    }
    if user.user_type == "Creator":
        checks["role_specific"] = {
            "handle_name": bool(creator.get("handle_name")),
            "categories": bool(creator.get("categories")),
            "platforms": bool(creator.get("platforms")),
            "sponsored_post_rate": creator.get("sponsored_post_rate") is not None,
        }
    else:
        checks["role_specific"] = {
            "brand_name": bool(marketer.get("brand_name")),
            "industry": bool(marketer.get("industry")),
            "brand_description": bool(marketer.get("brand_description")),
            "budget": marketer.get("budget") is not None,
        }

    sections = {}
    missing = []
    total = 0.0
    for section, weight in COMPLETION_WEIGHTS.items():
        items = checks[section]
        done = sum(1 for ok in items.values() if ok)
        score = weight * done / len(items)
        total += score
        sections[section] = round(score, 1)
        missing.extend(f"{section}.{name}" for name, ok in items.items() if not ok)

    return {"percentage": round(total), "sections": sections, "missing": missing}


def user_to_dict(user: User, private: bool = True) -> dict:
    data = {
        "id": user.id,
        "name": user.name,
        "user_name": user.user_name,
        "bio": user.bio,
        "avatar_url": user.avatar_url,
        "user_type": user.user_type,
    }
    if user.user_type == "Creator":
        data["creator_data"] = json_load(user.creator_data, {})
    else:
        data["marketer_data"] = json_load(user.marketer_data, {})
    if private:
        data.update({
            "phone": user.phone,
            "email": user.email,
            "email_verified": bool(user.email_verified),
            "is_active": bool(user.is_active),
            "status": user.status,
            "settings": json_load(user.settings_json, {}),
            "has_password": bool(user.password_hash),
            "created_at": iso(user.created_at),
        })
    return data

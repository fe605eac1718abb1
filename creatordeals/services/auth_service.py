"""Phone-based registration with OTP, login, and password reset."""
import logging
import re
import secrets
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.config import settings
from creatordeals.core.async_tasks import fire_and_forget
from creatordeals.core.auth import create_user_token, hash_password, verify_password
from creatordeals.core.content_filter import sanitize_text
from creatordeals.core.exceptions import (
    ForbiddenError,
    PendingRegistrationNotFoundError,
    PhoneAlreadyRegisteredError,
    TooManyAttemptsError,
    UnauthorizedError,
    UserNotFoundError,
)
from creatordeals.core.utils import as_utc, iso, utcnow
from creatordeals.models.user import PendingRegistration, User
from creatordeals.services import sms_service
from creatordeals.services.account_service import (
    ensure_user_name_available,
    get_user,
    user_to_dict,
    validate_email,
    validate_password_strength,
    validate_user_name,
)

logger = logging.getLogger(__name__)

_PHONE_RE = re.compile(r"^\+?[1-9]\d{6,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")

INVALID_CODE = "Invalid verification code"
EXPIRED_CODE = "Verification code has expired. Please request a new one"
BAD_CREDENTIALS = "Phone number or password is incorrect"


def normalize_phone(phone: str) -> str:
    """Strip formatting characters and validate international format."""
    cleaned = _SEPARATORS.sub("", phone or "")
    if not _PHONE_RE.match(cleaned):
        raise ValueError("Please enter a valid phone number in international format (e.g., +1234567890)")
    return cleaned


def generate_otp() -> tuple[str, datetime]:
    code = "".join(str(secrets.randbelow(10)) for _ in range(settings.otp_digits))
    return code, utcnow() + timedelta(minutes=settings.otp_expire_minutes)


def _send_code(phone: str, code: str) -> None:
    fire_and_forget(sms_service.send_otp(phone, code), task_name="send_otp")


def _check_code(stored: str | None, expires_at, attempts: int, code: str) -> None:
    """Shared OTP check. Callers persist the attempt counter on failure."""
    if attempts >= settings.otp_max_attempts:
        raise TooManyAttemptsError()
    if not stored:
        raise ValueError("No verification code found. Please request a new one")
    expires_at = as_utc(expires_at)
    if expires_at is None or expires_at < utcnow():
        raise ValueError(EXPIRED_CODE)
    if not secrets.compare_digest(stored, code.strip()):
        raise ValueError(INVALID_CODE)


async def _find_user_by_phone(db: AsyncSession, phone: str) -> User | None:
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def _find_pending(db: AsyncSession, phone: str) -> PendingRegistration:
    result = await db.execute(select(PendingRegistration).where(PendingRegistration.phone == phone))
    pending = result.scalar_one_or_none()
    if not pending:
        raise PendingRegistrationNotFoundError()
    return pending


def _auth_response(user: User, message: str) -> dict:
    return {
        "message": message,
        "token": create_user_token(user.id, user.phone, user.user_type),
        "user": user_to_dict(user),
    }


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def start_registration(db: AsyncSession, phone: str, user_type: str) -> dict:
    """Create (or refresh) a pending registration and text the OTP."""
    phone = normalize_phone(phone)
    if await _find_user_by_phone(db, phone):
        raise PhoneAlreadyRegisteredError()

    code, expires_at = generate_otp()
    result = await db.execute(select(PendingRegistration).where(PendingRegistration.phone == phone))
    pending = result.scalar_one_or_none()
    if pending is None:
        pending = PendingRegistration(phone=phone, user_type=user_type)
        db.add(pending)
    pending.user_type = user_type
    pending.otp_code = code
    pending.otp_expires_at = expires_at
    pending.otp_sent_at = utcnow()
    pending.attempts = 0
    await db.commit()

    _send_code(phone, code)
    return {"message": "OTP sent successfully", "otp_sent_at": iso(pending.otp_sent_at)}


async def resend_otp(db: AsyncSession, phone: str) -> dict:
    phone = normalize_phone(phone)
    pending = await _find_pending(db, phone)
    code, expires_at = generate_otp()
    pending.otp_code = code
    pending.otp_expires_at = expires_at
    pending.otp_sent_at = utcnow()
    pending.attempts = 0
    await db.commit()

    _send_code(phone, code)
    return {"message": "OTP sent successfully", "otp_sent_at": iso(pending.otp_sent_at)}


async def verify_registration(db: AsyncSession, phone: str, code: str, device_token: str | None = None) -> dict:
    """Verify the OTP and create the (inactive) user account."""
    phone = normalize_phone(phone)
    pending = await _find_pending(db, phone)
    try:
        _check_code(pending.otp_code, pending.otp_expires_at, pending.attempts, code)
    except ValueError:
        pending.attempts += 1
        await db.commit()
        raise

    if await _find_user_by_phone(db, phone):
        raise PhoneAlreadyRegisteredError()

    user = User(
        phone=pending.phone,
        user_type=pending.user_type,
        device_token=device_token,
        is_active=False,
    )
    db.add(user)
    await db.execute(delete(PendingRegistration).where(PendingRegistration.id == pending.id))
    await db.commit()
    await db.refresh(user)

    logger.info("User registered: %s (%s)", user.id, user.user_type)
    return _auth_response(user, "Account created successfully")


async def complete_registration(
    db: AsyncSession,
    user_id: str,
    name: str,
    user_name: str,
    password: str,
    email: str | None = None,
) -> dict:
    """Set name, username and password, which activates the account."""
    user = await get_user(db, user_id)
    validate_password_strength(password)
    user_name = validate_user_name(user_name)
    await ensure_user_name_available(db, user_name, user.id)
    name = sanitize_text(name)
    if not name:
        raise ValueError("Name is required")

    user.name = name
    user.user_name = user_name
    user.password_hash = hash_password(password)
    if email:
        user.email = validate_email(email)
    user.is_active = True
    user.updated_at = utcnow()
    await db.commit()

    logger.info("User activated: %s", user.id)
    return _auth_response(user, "Profile completed successfully")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

async def login(db: AsyncSession, phone: str, password: str, device_token: str | None = None) -> dict:
    try:
        phone = normalize_phone(phone)
    except ValueError:
        raise UnauthorizedError(BAD_CREDENTIALS) from None

    user = await _find_user_by_phone(db, phone)
    if not user or user.status == "deleted":
        raise UnauthorizedError(BAD_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        raise UnauthorizedError(BAD_CREDENTIALS)
    if user.status == "banned":
        raise ForbiddenError("Account is banned")
    if not user.is_active:
        raise ForbiddenError("Account is inactive. Complete your profile or contact support")

    if device_token and device_token != user.device_token:
        user.device_token = device_token
        await db.commit()

    return _auth_response(user, "Login successful")


async def phone_exists(db: AsyncSession, phone: str) -> bool:
    try:
        phone = normalize_phone(phone)
    except ValueError:
        return False
    user = await _find_user_by_phone(db, phone)
    return bool(user and user.status != "deleted")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

async def _reset_user(db: AsyncSession, phone: str) -> User:
    phone = normalize_phone(phone)
    user = await _find_user_by_phone(db, phone)
    if not user or user.status == "deleted":
        raise UserNotFoundError(phone)
    return user


async def _check_reset_code(db: AsyncSession, user: User, code: str) -> None:
    try:
        _check_code(user.otp_code, user.otp_expires_at, user.otp_attempts, code)
    except ValueError:
        user.otp_attempts += 1
        await db.commit()
        raise


async def start_password_reset(db: AsyncSession, phone: str) -> dict:
    user = await _reset_user(db, phone)
    code, expires_at = generate_otp()
    user.otp_code = code
    user.otp_expires_at = expires_at
    user.otp_attempts = 0
    await db.commit()

    _send_code(user.phone, code)
    return {"message": "Password reset code sent"}


async def verify_password_reset(db: AsyncSession, phone: str, code: str) -> dict:
    user = await _reset_user(db, phone)
    await _check_reset_code(db, user, code)
    return {"message": "Code verified, you may now set a new password"}


async def complete_password_reset(db: AsyncSession, phone: str, code: str, new_password: str) -> dict:
    user = await _reset_user(db, phone)
    await _check_reset_code(db, user, code)
    validate_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    user.otp_code = None
    user.otp_expires_at = None
    user.otp_attempts = 0
    await db.commit()

    logger.info("Password reset completed for user %s", user.id)
    return {"message": "Password has been reset successfully"}

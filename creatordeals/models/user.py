"""User accounts: marketers who send offers and creators who receive them."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from creatordeals.database import Base


def utcnow():
    return datetime.now(timezone.utc)


USER_TYPES = ("Marketer", "Creator")


class User(Base):
    """Registered account. Starts inactive until the profile is completed."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(20), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    password_hash = Column(String(128), nullable=True)  # set on profile completion
    name = Column(String(100), nullable=True)
    user_name = Column(String(50), unique=True, nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    user_type = Column(String(20), nullable=False)  # Marketer | Creator
    is_active = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="active")  # active, deleted, banned, deactivated
    email_verified = Column(Boolean, nullable=False, default=False)
    device_token = Column(String(255), nullable=True)
    payout_account_id = Column(String(100), nullable=True)

    # Role-specific profile data and notification/privacy preferences (JSON)
    creator_data = Column(Text, default="{}")
    marketer_data = Column(Text, default="{}")
    settings_json = Column(Text, default="{}")

    # Password-reset OTP (registration OTPs live on PendingRegistration)
    otp_code = Column(String(10), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    otp_attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_user_phone", "phone"),
        Index("idx_user_type", "user_type"),
        Index("idx_user_status", "status"),
    )


class PendingRegistration(Base):
    """Phone number awaiting OTP verification before a User row exists."""
    __tablename__ = "pending_registrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(20), unique=True, nullable=False)
    user_type = Column(String(20), nullable=False)
    otp_code = Column(String(10), nullable=False)
    otp_expires_at = Column(DateTime(timezone=True), nullable=False)
    otp_sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

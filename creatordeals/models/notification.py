"""In-app notifications for offer, chat and deal events."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text

from creatordeals.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    kind = Column(String(40), nullable=False)  # offer_received, counter_offer, unread_message, ...
    title = Column(String(200), nullable=False)
    body = Column(Text, default="")
    data = Column(Text, default="{}")  # JSON: ids the client navigates to
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "read"),
    )

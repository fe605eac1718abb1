"""Two-party chat rooms and their messages."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from creatordeals.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    offer_id = Column(String(36), ForeignKey("offers.id"), nullable=True)
    marketer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    last_message = Column(Text, default="")
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    # Unread counters per participant
    marketer_unread = Column(Integer, nullable=False, default=0)
    creator_unread = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    marketer = relationship("User", foreign_keys=[marketer_id], lazy="selectin")
    creator = relationship("User", foreign_keys=[creator_id], lazy="selectin")
    offer = relationship("Offer", lazy="selectin")

    __table_args__ = (
        Index("idx_chat_marketer", "marketer_id"),
        Index("idx_chat_creator", "creator_id"),
        Index("idx_chat_offer", "offer_id"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id = Column(String(36), ForeignKey("chat_rooms.id"), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    text = Column(Text, default="")
    attachments = Column(Text, default="[]")  # JSON: [{url, name, type, size, key}]
    status = Column(String(10), nullable=False, default="sent")  # sent | read
    is_system = Column(Boolean, nullable=False, default=False)
    edited = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_msg_chat_created", "chat_id", "created_at"),
        Index("idx_msg_receiver_status", "receiver_id", "status"),
    )

"""Offers sent by marketers to creators, and the negotiation history on each."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from creatordeals.database import Base


def utcnow():
    return datetime.now(timezone.utc)


OFFER_STATUSES = (
    "Draft",
    "Sent",
    "Offer in Review",
    "Rejected-Countered",
    "Accepted",
    "Rejected",
    "Cancelled",
    "Deleted",
)
OFFER_TYPES = ("standard", "trial", "premium")
PRIORITIES = ("low", "medium", "high", "urgent")


class Offer(Base):
    __tablename__ = "offers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    marketer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    offer_type = Column(String(20), nullable=False, default="standard")
    offer_name = Column(String(200), nullable=False)
    description = Column(Text, default="")
    platforms = Column(Text, default="[]")  # JSON list
    deliverables = Column(Text, default="[]")  # JSON list
    desired_review_date = Column(DateTime(timezone=True), nullable=True)
    desired_post_date = Column(DateTime(timezone=True), nullable=True)
    proposed_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, default="")
    priority = Column(String(10), nullable=False, default="medium")
    tags = Column(Text, default="[]")

    # State machine: Draft -> Sent -> Offer in Review -> Rejected-Countered (repeatable)
    #                -> Accepted | Rejected | Cancelled   (Deleted = soft delete)
    status = Column(String(30), nullable=False, default="Sent")
    sent_at = Column(DateTime(timezone=True), nullable=True)

    viewed_by_creator = Column(Boolean, nullable=False, default=False)
    viewed_by_creator_at = Column(DateTime(timezone=True), nullable=True)
    viewed_by_marketer = Column(Boolean, nullable=False, default=True)
    viewed_by_marketer_at = Column(DateTime(timezone=True), nullable=True)

    # Outcome
    accepted_by = Column(String(36), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_amount = Column(Numeric(12, 2), nullable=True)
    rejected_by = Column(String(36), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Negotiation metrics, recomputed whenever a history entry is added
    total_rounds = Column(Integer, nullable=False, default=0)
    negotiation_started = Column(DateTime(timezone=True), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    convergence_score = Column(Float, nullable=False, default=0.0)
    average_response_time = Column(Float, nullable=False, default=0.0)  # hours
    marketer_responses = Column(Integer, nullable=False, default=0)
    creator_responses = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    counters = relationship(
        "OfferCounter",
        back_populates="offer",
        order_by="OfferCounter.sequence",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    marketer = relationship("User", foreign_keys=[marketer_id], lazy="selectin")
    creator = relationship("User", foreign_keys=[creator_id], lazy="selectin")

    __table_args__ = (
        Index("idx_offer_marketer", "marketer_id"),
        Index("idx_offer_creator", "creator_id"),
        Index("idx_offer_status", "status"),
    )


class OfferCounter(Base):
    """One negotiation history entry: counter, message, acceptance or rejection."""
    __tablename__ = "offer_counters"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    offer_id = Column(String(36), ForeignKey("offers.id"), nullable=False)
    sequence = Column(Integer, nullable=False, default=0)
    counter_by = Column(String(20), nullable=False)  # Marketer | Creator
    counter_by_user_id = Column(String(36), nullable=False)
    counter_amount = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, default="")
    counter_review_date = Column(DateTime(timezone=True), nullable=True)
    counter_post_date = Column(DateTime(timezone=True), nullable=True)
    deliverables = Column(Text, default="[]")
    priority = Column(String(10), nullable=False, default="medium")
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_message = Column(Boolean, nullable=False, default=False)
    is_acceptance = Column(Boolean, nullable=False, default=False)
    is_rejection = Column(Boolean, nullable=False, default=False)
    counter_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    offer = relationship("Offer", back_populates="counters")

    __table_args__ = (
        Index("idx_counter_offer", "offer_id"),
    )

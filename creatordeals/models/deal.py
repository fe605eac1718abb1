"""Deals created from accepted offers, their milestones and payment ledger."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from creatordeals.database import Base


def utcnow():
    return datetime.now(timezone.utc)


DEAL_STATUSES = ("active", "completed", "cancelled")
PAYMENT_STATUSES = ("Pending", "Partial", "Escrowed", "Released")
MILESTONE_STATUSES = (
    "proposed",
    "pending",
    "funded",
    "submitted",
    "revision_required",
    "approved",
    "completed",
    "cancelled",
)
TRANSACTION_TYPES = ("escrow", "milestone_funding", "milestone_release", "release_final", "refund")


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deal_number = Column(String(32), unique=True, nullable=False)
    offer_id = Column(String(36), ForeignKey("offers.id"), nullable=False)
    marketer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    deal_name = Column(String(200), nullable=False)
    platforms = Column(Text, default="[]")
    deliverables = Column(Text, default="[]")
    desired_review_date = Column(DateTime(timezone=True), nullable=True)
    desired_post_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="active")

    # Payment summary; individual movements live in DealTransaction
    currency = Column(String(3), nullable=False, default="USD")
    payment_amount = Column(Numeric(12, 2), nullable=False)
    required_payment = Column(Numeric(12, 2), nullable=False)
    payment_status = Column(String(20), nullable=False, default="Pending")
    payment_needed = Column(Boolean, nullable=False, default=True)
    total_escrowed = Column(Numeric(12, 2), nullable=False, default=0)
    total_released = Column(Numeric(12, 2), nullable=False, default=0)

    final_rating = Column(Integer, nullable=True)
    final_feedback = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    deliverable_files = Column(Text, default="[]")  # JSON: uploaded proof files

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    milestones = relationship(
        "Milestone",
        back_populates="deal",
        order_by="Milestone.order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    transactions = relationship(
        "DealTransaction",
        back_populates="deal",
        order_by="DealTransaction.created_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    marketer = relationship("User", foreign_keys=[marketer_id], lazy="selectin")
    creator = relationship("User", foreign_keys=[creator_id], lazy="selectin")

    __table_args__ = (
        Index("idx_deal_marketer", "marketer_id"),
        Index("idx_deal_creator", "creator_id"),
        Index("idx_deal_offer", "offer_id"),
        Index("idx_deal_status", "status"),
    )


class Milestone(Base):
    __tablename__ = "deal_milestones"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deal_id = Column(String(36), ForeignKey("deals.id"), nullable=False)
    name = Column(String(100), nullable=False)
    order = Column(Integer, nullable=False, default=1)  # 1..4
    amount = Column(Numeric(12, 2), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    description = Column(String(500), default="")
    deliverables = Column(Text, default="[]")  # JSON: planned deliverables
    submitted_deliverables = Column(Text, default="[]")
    status = Column(String(20), nullable=False, default="pending")
    proposed_by = Column(String(36), nullable=True)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, default="[]")  # JSON: [{by, message, at}]
    funded_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    deal = relationship("Deal", back_populates="milestones")

    __table_args__ = (
        Index("idx_milestone_deal", "deal_id"),
    )


class DealTransaction(Base):
    __tablename__ = "deal_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deal_id = Column(String(36), ForeignKey("deals.id"), nullable=False)
    milestone_id = Column(String(36), nullable=True)
    type = Column(String(30), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    reference = Column(String(100), nullable=True)  # external payment reference
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    deal = relationship("Deal", back_populates="transactions")

    __table_args__ = (
        Index("idx_dealtx_deal", "deal_id"),
    )

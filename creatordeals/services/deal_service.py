"""Deals: creation from accepted offers, escrow ledger, milestones and completion."""
import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from fastapi import UploadFile
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.config import settings
from creatordeals.core.exceptions import (
    DealNotFoundError,
    ForbiddenError,
    IncompleteMilestonesError,
    InvalidMilestoneStateError,
    MilestoneNotFoundError,
)
from creatordeals.core.utils import as_utc, iso, json_dump, json_load, money_out, to_money, utcnow
from creatordeals.models.deal import Deal, DealTransaction, Milestone
from creatordeals.models.offer import Offer
from creatordeals.models.user import User
from creatordeals.services.notification_service import notify
from creatordeals.services.upload_service import store_deliverables

logger = logging.getLogger(__name__)

MILESTONE_TEMPLATES = {
    "equal_split": (25, 25, 25, 25),
    "front_loaded": (40, 30, 20, 10),
    "back_loaded": (10, 20, 30, 40),
}
# Milestones that no longer accept plan changes
LOCKED_MILESTONE_STATUSES = {"funded", "submitted", "revision_required", "approved", "completed"}
ACTIVE_WORK_STATUSES = {"funded", "submitted", "revision_required"}
SUBMITTABLE_STATUSES = {"funded", "revision_required"}
DONE_STATUSES = {"approved", "completed", "cancelled"}
MILESTONE_FIELDS = {"name", "amount", "due_date", "description", "deliverables"}
CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def _initial(user: User | None) -> str:
    for value in (user.name, user.user_name) if user else ():
        if value and value.strip()[:1].isalpha():
            return value.strip()[0].upper()
    return "X"


async def _unique_deal_number(db: AsyncSession, marketer: User, creator: User) -> str:
    prefix = _initial(marketer) + _initial(creator)
    day = utcnow().strftime("%Y%m%d")
    for _ in range(20):
        number = f"{prefix}{secrets.randbelow(10000):04d}-{day}"
        taken = (await db.execute(select(Deal.id).where(Deal.deal_number == number))).first()
        if not taken:
            return number
    raise RuntimeError("Could not allocate a unique deal number")


async def create_deal_from_offer(db: AsyncSession, offer: Offer, terms: dict) -> Deal:
    """Stage a deal for an accepted offer. The caller commits."""
    amount = to_money(terms["amount"])
    deal = Deal(
        deal_number=await _unique_deal_number(db, offer.marketer, offer.creator),
        offer_id=offer.id,
        marketer_id=offer.marketer_id,
        creator_id=offer.creator_id,
        marketer=offer.marketer,
        creator=offer.creator,
        milestones=[],
        transactions=[],
        deal_name=offer.offer_name,
        platforms=offer.platforms or "[]",
        deliverables=json_dump(terms.get("deliverables") or []),
        desired_review_date=terms.get("desired_review_date"),
        desired_post_date=terms.get("desired_post_date"),
        status="active",
        currency=offer.currency,
        payment_amount=amount,
        required_payment=to_money(amount * Decimal(str(settings.deal_required_payment_ratio))),
        payment_status="Pending",
        payment_needed=True,
        total_escrowed=Decimal("0.00"),
        total_released=Decimal("0.00"),
        deliverable_files="[]",
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(deal)
    await db.flush()
    logger.info("Deal created: %s (%s) for offer %s", deal.deal_number, deal.id, offer.id)
    return deal


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def role_for(deal: Deal, user_id: str) -> str:
    if user_id == deal.marketer_id:
        return "Marketer"
    if user_id == deal.creator_id:
        return "Creator"
    raise ForbiddenError("Not a participant in this deal")


async def _load_deal(db: AsyncSession, deal_id: str, user_id: str) -> tuple[Deal, str]:
    result = await db.execute(select(Deal).where(Deal.id == deal_id))
    deal = result.scalar_one_or_none()
    if not deal:
        raise DealNotFoundError(deal_id)
    return deal, role_for(deal, user_id)


async def _marketer_deal(db: AsyncSession, deal_id: str, user_id: str) -> Deal:
    deal, role = await _load_deal(db, deal_id, user_id)
    if role != "Marketer":
        raise ForbiddenError("Only the marketer can do that")
    return deal


def _ensure_active(deal: Deal) -> None:
    if deal.status != "active":
        raise ValueError(f"Deal is {deal.status}")


def _find_milestone(deal: Deal, milestone_id: str) -> Milestone:
    for milestone in deal.milestones:
        if milestone.id == milestone_id:
            return milestone
    raise MilestoneNotFoundError(milestone_id)


async def list_deals(db: AsyncSession, user_id: str, role: str | None = None) -> list[dict]:
    if role == "marketer":
        condition = Deal.marketer_id == user_id
    elif role == "creator":
        condition = Deal.creator_id == user_id
    elif role is None:
        condition = or_(Deal.marketer_id == user_id, Deal.creator_id == user_id)
    else:
        raise ValueError("role must be 'marketer' or 'creator'")
    result = await db.execute(select(Deal).where(condition).order_by(Deal.created_at.desc()))
    return [deal_to_dict(d, role_for(d, user_id)) for d in result.scalars().all()]


async def get_deal(db: AsyncSession, deal_id: str, user_id: str) -> dict:
    deal, role = await _load_deal(db, deal_id, user_id)
    return deal_to_dict(deal, role)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def _add_transaction(
    deal: Deal, kind: str, amount: Decimal, milestone_id: str | None = None, reference: str | None = None
) -> DealTransaction:
    tx = DealTransaction(
        deal_id=deal.id,
        milestone_id=milestone_id,
        type=kind,
        amount=to_money(amount),
        status="completed",
        reference=reference,
        created_at=utcnow(),
    )
    deal.transactions.append(tx)
    return tx


def _refresh_payment_status(deal: Deal) -> None:
    escrowed = to_money(deal.total_escrowed or 0)
    if escrowed >= to_money(deal.payment_amount):
        deal.payment_status = "Escrowed"
    elif escrowed > 0:
        deal.payment_status = "Partial"
    else:
        deal.payment_status = "Pending"
    deal.payment_needed = escrowed < to_money(deal.required_payment)


async def record_payment(
    db: AsyncSession, deal_id: str, user_id: str, amount, reference: str | None = None
) -> dict:
    """Record an escrow deposit from the marketer."""
    deal = await _marketer_deal(db, deal_id, user_id)
    _ensure_active(deal)
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Payment amount must be positive")
    remaining = to_money(deal.payment_amount) - to_money(deal.total_escrowed or 0)
    if amount > remaining:
        raise ValueError(f"Payment exceeds the remaining deal amount ({remaining})")

    _add_transaction(deal, "escrow", amount, reference=reference)
    deal.total_escrowed = to_money(deal.total_escrowed or 0) + amount
    _refresh_payment_status(deal)
    deal.updated_at = utcnow()
    notify(db, deal.creator_id, "payment_received", "Payment escrowed", deal.deal_name, {"deal_id": deal.id})
    await db.commit()

    logger.info("Escrow payment of %s recorded for deal %s", amount, deal.id)
    return deal_to_dict(deal, "Marketer")


# ---------------------------------------------------------------------------
# Milestone planning
# ---------------------------------------------------------------------------

def _open_milestones(deal: Deal) -> list[Milestone]:
    return sorted((m for m in deal.milestones if m.status != "cancelled"), key=lambda m: m.order)


def _percentage_of(deal: Deal, amount: Decimal) -> Decimal:
    total = to_money(deal.payment_amount)
    if total <= 0:
        return Decimal("0.00")
    return to_money(amount * 100 / total)


def _check_chronology(milestones: list[Milestone]) -> None:
    previous = None
    for milestone in sorted(milestones, key=lambda m: m.order):
        due = as_utc(milestone.due_date)
        if due is None:
            continue
        if previous is not None and due < previous:
            raise ValueError("Milestone due dates must be in chronological order")
        previous = due


def _check_totals(deal: Deal, milestones: list[Milestone]) -> None:
    total = sum((to_money(m.amount) for m in milestones), Decimal("0.00"))
    if total > to_money(deal.payment_amount):
        raise ValueError("Milestone amounts exceed the deal amount")


def validate_milestone_plan(plan: list[dict], payment_amount) -> None:
    """Validate a full plan: percentages total 100, amounts match, orders 1..n, dates ascend."""
    if not plan:
        raise ValueError("A milestone plan needs at least one milestone")
    if len(plan) > settings.deal_max_milestones:
        raise ValueError(f"A deal can have at most {settings.deal_max_milestones} milestones")

    total_pct = sum(Decimal(str(item["percentage"])) for item in plan)
    if abs(total_pct - 100) > CENT:
        raise ValueError("Milestone percentages must total 100")

    payment_amount = to_money(payment_amount)
    for item in plan:
        expected = payment_amount * Decimal(str(item["percentage"])) / 100
        if abs(to_money(item["amount"]) - expected) > CENT:
            raise ValueError(f"Milestone {item['order']} amount does not match its percentage")

    if [item["order"] for item in plan] != list(range(1, len(plan) + 1)):
        raise ValueError("Milestone orders must be sequential starting at 1")

    dates = [as_utc(item["due_date"]) for item in plan if item.get("due_date")]
    if dates != sorted(dates):
        raise ValueError("Milestone due dates must be in chronological order")


def build_template_plan(template: str, payment_amount, start=None) -> list[dict]:
    """Expand a named split into milestone dicts due a week apart."""
    if template not in MILESTONE_TEMPLATES:
        raise ValueError(f"Unknown template '{template}'. Use one of: {', '.join(MILESTONE_TEMPLATES)}")
    payment_amount = to_money(payment_amount)
    start = as_utc(start) or utcnow()
    splits = MILESTONE_TEMPLATES[template]

    plan = []
    allocated = Decimal("0.00")
    for index, pct in enumerate(splits, start=1):
        if index == len(splits):
            amount = payment_amount - allocated
        else:
            amount = to_money(payment_amount * pct / 100)
            allocated += amount
        plan.append({
            "name": f"Milestone {index}",
            "order": index,
            "percentage": pct,
            "amount": amount,
            "due_date": start + timedelta(weeks=index),
        })
    return plan


async def add_milestone(db: AsyncSession, deal_id: str, user_id: str, data: dict) -> dict:
    """Marketers add pending milestones; creators propose ones the marketer must accept."""
    deal, role = await _load_deal(db, deal_id, user_id)
    _ensure_active(deal)
    current = _open_milestones(deal)
    if len(current) >= settings.deal_max_milestones:
        raise ValueError(f"A deal can have at most {settings.deal_max_milestones} milestones")
    if role == "Creator" and any(m.status in ACTIVE_WORK_STATUSES for m in current):
        raise ValueError("Cannot propose a milestone while another milestone is in progress")

    amount = to_money(data["amount"])
    milestone = Milestone(
        deal_id=deal.id,
        name=data["name"].strip(),
        order=(current[-1].order + 1) if current else 1,
        amount=amount,
        percentage=_percentage_of(deal, amount),
        due_date=data.get("due_date"),
        description=data.get("description") or "",
        deliverables=json_dump(data.get("deliverables") or []),
        submitted_deliverables="[]",
        feedback="[]",
        status="pending" if role == "Marketer" else "proposed",
        proposed_by=user_id,
        created_at=utcnow(),
    )
    _check_totals(deal, current + [milestone])
    _check_chronology(current + [milestone])
    deal.milestones.append(milestone)
    deal.updated_at = utcnow()
    if role == "Creator":
        notify(db, deal.marketer_id, "milestone_proposed", "Milestone proposed", milestone.name, {"deal_id": deal.id})
    await db.commit()
    return milestone_to_dict(milestone)


async def update_milestone(db: AsyncSession, deal_id: str, user_id: str, milestone_id: str, updates: dict) -> dict:
    deal = await _marketer_deal(db, deal_id, user_id)
    _ensure_active(deal)
    milestone = _find_milestone(deal, milestone_id)
    if milestone.status not in ("pending", "proposed"):
        raise InvalidMilestoneStateError(milestone.status, "pending or proposed")

    for key, value in updates.items():
        if key not in MILESTONE_FIELDS or value is None:
            continue
        if key == "amount":
            milestone.amount = to_money(value)
            milestone.percentage = _percentage_of(deal, milestone.amount)
        elif key == "deliverables":
            milestone.deliverables = json_dump(value)
        elif key == "name":
            milestone.name = value.strip()
        else:
            setattr(milestone, key, value)

    current = _open_milestones(deal)
    _check_totals(deal, current)
    _check_chronology(current)
    deal.updated_at = utcnow()
    await db.commit()
    return milestone_to_dict(milestone)


async def delete_milestone(db: AsyncSession, deal_id: str, user_id: str, milestone_id: str) -> dict:
    deal = await _marketer_deal(db, deal_id, user_id)
    milestone = _find_milestone(deal, milestone_id)
    if milestone.status in LOCKED_MILESTONE_STATUSES:
        raise InvalidMilestoneStateError(milestone.status, "pending, proposed or cancelled")

    deal.milestones.remove(milestone)
    for order, remaining in enumerate(_open_milestones(deal), start=1):
        remaining.order = order
    deal.updated_at = utcnow()
    await db.commit()
    return {"message": "Milestone deleted", "milestone_id": milestone_id}


async def apply_template(db: AsyncSession, deal_id: str, user_id: str, template: str, start=None) -> dict:
    """Replace the unfunded milestone plan with a standard split."""
    deal = await _marketer_deal(db, deal_id, user_id)
    _ensure_active(deal)
    if any(m.status in LOCKED_MILESTONE_STATUSES for m in deal.milestones):
        raise ValueError("Cannot apply a template once milestones are funded")

    plan = build_template_plan(template, deal.payment_amount, start)
    validate_milestone_plan(plan, deal.payment_amount)

    for milestone in list(deal.milestones):
        deal.milestones.remove(milestone)
    for item in plan:
        deal.milestones.append(Milestone(
            deal_id=deal.id,
            name=item["name"],
            order=item["order"],
            amount=item["amount"],
            percentage=to_money(item["percentage"]),
            due_date=item["due_date"],
            description="",
            deliverables="[]",
            submitted_deliverables="[]",
            feedback="[]",
            status="pending",
            proposed_by=user_id,
            created_at=utcnow(),
        ))
    deal.updated_at = utcnow()
    await db.commit()
    logger.info("Milestone template %s applied to deal %s", template, deal.id)
    return deal_to_dict(deal, "Marketer")


async def accept_milestone_proposal(db: AsyncSession, deal_id: str, user_id: str, milestone_id: str) -> dict:
    deal = await _marketer_deal(db, deal_id, user_id)
    milestone = _find_milestone(deal, milestone_id)
    if milestone.status != "proposed":
        raise InvalidMilestoneStateError(milestone.status, "proposed")
    milestone.status = "pending"
    notify(db, deal.creator_id, "milestone_accepted", "Milestone accepted", milestone.name, {"deal_id": deal.id})
    await db.commit()
    return milestone_to_dict(milestone)


async def fund_milestone(
    db: AsyncSession, deal_id: str, user_id: str, milestone_id: str, reference: str | None = None
) -> dict:
    deal = await _marketer_deal(db, deal_id, user_id)
    _ensure_active(deal)
    milestone = _find_milestone(deal, milestone_id)
    if milestone.status != "pending":
        raise InvalidMilestoneStateError(milestone.status, "pending")

    # Escrow already deposited but not yet tied to a milestone is drawn down first
    amount = to_money(milestone.amount)
    escrowed = to_money(deal.total_escrowed or 0)
    allocated = sum(
        (to_money(m.amount) for m in deal.milestones if m.status in LOCKED_MILESTONE_STATUSES),
        Decimal("0.00"),
    )
    shortfall = max(amount - max(escrowed - allocated, Decimal("0.00")), Decimal("0.00"))
    remaining = to_money(deal.payment_amount) - escrowed
    if shortfall > remaining:
        raise ValueError(f"Funding exceeds the remaining deal amount ({remaining})")

    if shortfall > 0:
        _add_transaction(deal, "milestone_funding", shortfall, milestone.id, reference)
        deal.total_escrowed = escrowed + shortfall
    milestone.status = "funded"
    milestone.funded_at = utcnow()
    _refresh_payment_status(deal)
    deal.updated_at = utcnow()
    notify(db, deal.creator_id, "milestone_funded", "Milestone funded", milestone.name, {"deal_id": deal.id})
    await db.commit()
    return milestone_to_dict(milestone)


# ---------------------------------------------------------------------------
# Milestone work
# ---------------------------------------------------------------------------

def _append_feedback(milestone: Milestone, by: str, message: str) -> None:
    entries = json_load(milestone.feedback, [])
    entries.append({"by": by, "message": message, "at": iso(utcnow())})
    milestone.feedback = json_dump(entries)


async def submit_milestone(
    db: AsyncSession,
    deal_id: str,
    user_id: str,
    milestone_id: str | None,
    deliverables: list | None,
    notes: str | None = None,
) -> dict:
    deal, role = await _load_deal(db, deal_id, user_id)
    if role != "Creator":
        raise ForbiddenError("Only the creator can submit milestones")
    if not milestone_id:
        raise ValueError("milestone_id is required")
    if not deliverables:
        raise ValueError("At least one deliverable is required")
    _ensure_active(deal)

    milestone = _find_milestone(deal, milestone_id)
    if milestone.status in ("approved", "completed"):
        raise ValueError("Milestone is already completed")
    if milestone.status == "submitted":
        raise ValueError("Milestone has already been submitted")
    if milestone.status not in SUBMITTABLE_STATUSES:
        raise InvalidMilestoneStateError(milestone.status, "funded or revision_required")

    milestone.status = "submitted"
    milestone.submitted_deliverables = json_dump(deliverables)
    milestone.submitted_at = utcnow()
    if notes:
        _append_feedback(milestone, "Creator", notes)
    deal.updated_at = utcnow()
    notify(db, deal.marketer_id, "milestone_submitted", "Milestone submitted", milestone.name, {"deal_id": deal.id})
    await db.commit()
    return milestone_to_dict(milestone)


async def review_milestone(
    db: AsyncSession,
    deal_id: str,
    user_id: str,
    milestone_id: str | None,
    action: str,
    feedback: str | None = None,
    rating: int | None = None,
) -> dict:
    """Approve (and release) a submitted milestone or send it back for revision."""
    deal = await _marketer_deal(db, deal_id, user_id)
    if not milestone_id:
        raise ValueError("milestone_id is required")
    if action not in ("approve", "reject"):
        raise ValueError("action must be 'approve' or 'reject'")
    milestone = _find_milestone(deal, milestone_id)
    if milestone.status != "submitted":
        raise InvalidMilestoneStateError(milestone.status, "submitted")

    if action == "approve":
        if rating is not None and not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        amount = to_money(milestone.amount)
        milestone.status = "approved"
        milestone.completed_at = utcnow()
        milestone.rating = rating
        if feedback:
            _append_feedback(milestone, "Marketer", feedback)
        _add_transaction(deal, "milestone_release", amount, milestone.id)
        deal.total_released = to_money(deal.total_released or 0) + amount
        notify(db, deal.creator_id, "milestone_approved", "Milestone approved", milestone.name, {"deal_id": deal.id})
        logger.info("Milestone approved: %s on deal %s", milestone.id, deal.id)
    else:
        if not feedback or not feedback.strip():
            raise ValueError("Feedback is required when requesting a revision")
        milestone.status = "revision_required"
        _append_feedback(milestone, "Marketer", feedback.strip())
        notify(db, deal.creator_id, "milestone_revision", "Revision requested", milestone.name, {"deal_id": deal.id})

    deal.updated_at = utcnow()
    await db.commit()
    return milestone_to_dict(milestone)


# ---------------------------------------------------------------------------
# Completion / cancellation / deliverables
# ---------------------------------------------------------------------------

async def complete_deal(
    db: AsyncSession, deal_id: str, user_id: str, rating: int | None = None, feedback: str | None = None
) -> dict:
    deal = await _marketer_deal(db, deal_id, user_id)
    if deal.status == "completed":
        raise ValueError("Deal is already completed")
    _ensure_active(deal)
    incomplete = [m.id for m in _open_milestones(deal) if m.status not in DONE_STATUSES]
    if incomplete:
        raise IncompleteMilestonesError(incomplete)
    if rating is not None and not 1 <= rating <= 5:
        raise ValueError("Rating must be between 1 and 5")

    # Only escrowed money can be paid out
    remainder = to_money(deal.total_escrowed or 0) - to_money(deal.total_released or 0)
    if remainder > 0:
        _add_transaction(deal, "release_final", remainder)
        deal.total_released = to_money(deal.total_released or 0) + remainder
    if to_money(deal.total_released or 0) >= to_money(deal.payment_amount):
        deal.payment_status = "Released"
        deal.payment_needed = False
    else:
        _refresh_payment_status(deal)
    for milestone in deal.milestones:
        if milestone.status == "approved":
            milestone.status = "completed"

    now = utcnow()
    deal.status = "completed"
    deal.completed_at = now
    deal.final_rating = rating
    deal.final_feedback = feedback
    deal.updated_at = now
    notify(db, deal.creator_id, "deal_completed", "Deal completed", deal.deal_name, {"deal_id": deal.id})
    await db.commit()

    logger.info("Deal completed: %s", deal.id)
    return deal_to_dict(deal, "Marketer")


async def cancel_deal(db: AsyncSession, deal_id: str, user_id: str, reason: str) -> dict:
    deal, role = await _load_deal(db, deal_id, user_id)
    if deal.status == "completed":
        raise ValueError("Cannot cancel a completed deal")
    if deal.status == "cancelled":
        raise ValueError("Deal is already cancelled")

    unreleased = to_money(deal.total_escrowed or 0) - to_money(deal.total_released or 0)
    if unreleased > 0:
        _add_transaction(deal, "refund", unreleased)
    for milestone in deal.milestones:
        if milestone.status not in DONE_STATUSES:
            milestone.status = "cancelled"

    now = utcnow()
    deal.status = "cancelled"
    deal.cancelled_at = now
    deal.cancelled_by = user_id
    deal.cancellation_reason = reason
    deal.updated_at = now
    other = deal.creator_id if role == "Marketer" else deal.marketer_id
    notify(db, other, "deal_cancelled", "Deal cancelled", reason, {"deal_id": deal.id})
    await db.commit()

    logger.info("Deal cancelled: %s by %s", deal.id, user_id)
    return deal_to_dict(deal, role)


async def upload_deliverables(db: AsyncSession, deal_id: str, user_id: str, files: list[UploadFile]) -> dict:
    deal, role = await _load_deal(db, deal_id, user_id)
    if role != "Creator":
        raise ForbiddenError("Only the creator can upload deliverables")
    _ensure_active(deal)
    if not files:
        raise ValueError("No files uploaded")

    stored = await store_deliverables(files)
    existing = json_load(deal.deliverable_files, [])
    deal.deliverable_files = json_dump(existing + stored)
    deal.updated_at = utcnow()
    notify(db, deal.marketer_id, "deliverable_uploaded", "Deliverables uploaded", deal.deal_name, {"deal_id": deal.id})
    await db.commit()
    return {"message": "Deliverables uploaded", "files": stored, "deliverable_files": existing + stored}


# ---------------------------------------------------------------------------
# Earnings
# ---------------------------------------------------------------------------

EARNINGS_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365, "all": None}
RELEASE_TYPES = {"milestone_release", "release_final"}
FUNDING_TYPES = {"escrow", "milestone_funding"}
RECENT_TRANSACTIONS = 20


async def get_earnings(db: AsyncSession, user_id: str, period: str = "all") -> dict:
    """Summarise the caller's ledger across every deal they take part in.

    As a creator, released payouts count as earned and money still held in
    escrow on active deals counts as pending. As a marketer, deposits count
    as spent and refunds are reported separately. ``period`` restricts the
    transactions considered; pending escrow is always the current balance.
    """
    if period not in EARNINGS_PERIODS:
        raise ValueError(f"period must be one of: {', '.join(EARNINGS_PERIODS)}")
    days = EARNINGS_PERIODS[period]
    since = utcnow() - timedelta(days=days) if days else None

    result = await db.execute(
        select(Deal).where(or_(Deal.marketer_id == user_id, Deal.creator_id == user_id))
    )
    deals = list(result.scalars().all())

    zero = Decimal("0.00")
    creator = {"earned": zero, "pending": zero, "deals": 0, "completed_deals": 0}
    marketer = {"spent": zero, "released": zero, "refunded": zero, "deals": 0, "completed_deals": 0}
    timeline: dict[str, dict] = {}
    recent: list[tuple] = []

    for deal in deals:
        role = role_for(deal, user_id)
        bucket = creator if role == "Creator" else marketer
        bucket["deals"] += 1
        if deal.status == "completed":
            bucket["completed_deals"] += 1
        if role == "Creator" and deal.status == "active":
            creator["pending"] += to_money(deal.total_escrowed or 0) - to_money(deal.total_released or 0)

        for tx in deal.transactions:
            created = as_utc(tx.created_at)
            if since and created < since:
                continue
            amount = to_money(tx.amount)
            day = created.strftime("%Y-%m-%d")
            entry = timeline.setdefault(day, {"date": day, "earned": zero, "spent": zero})
            if role == "Creator":
                if tx.type in RELEASE_TYPES:
                    creator["earned"] += amount
                    entry["earned"] += amount
            elif tx.type in FUNDING_TYPES:
                marketer["spent"] += amount
                entry["spent"] += amount
            elif tx.type in RELEASE_TYPES:
                marketer["released"] += amount
            elif tx.type == "refund":
                marketer["refunded"] += amount
            recent.append((created, deal, role, tx))

    recent.sort(key=lambda item: item[0], reverse=True)
    transactions = []
    for _, deal, role, tx in recent[:RECENT_TRANSACTIONS]:
        data = _transaction_to_dict(tx, show_reference=role == "Marketer")
        data.update(deal_id=deal.id, deal_number=deal.deal_number, deal_name=deal.deal_name, role=role)
        transactions.append(data)

    def _out(bucket: dict) -> dict:
        return {k: money_out(v) if isinstance(v, Decimal) else v for k, v in bucket.items()}

    return {
        "period": period,
        "as_creator": _out(creator),
        "as_marketer": _out(marketer),
        "timeline": [
            {"date": e["date"], "earned": money_out(e["earned"]), "spent": money_out(e["spent"])}
            for e in sorted(timeline.values(), key=lambda e: e["date"])
            if e["earned"] or e["spent"]
        ],
        "transactions": transactions,
    }


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def milestone_to_dict(m: Milestone) -> dict:
    return {
        "id": m.id,
        "deal_id": m.deal_id,
        "name": m.name,
        "order": m.order,
        "amount": money_out(m.amount),
        "percentage": money_out(m.percentage),
        "due_date": iso(m.due_date),
        "description": m.description or "",
        "deliverables": json_load(m.deliverables, []),
        "submitted_deliverables": json_load(m.submitted_deliverables, []),
        "status": m.status,
        "proposed_by": m.proposed_by,
        "rating": m.rating,
        "feedback": json_load(m.feedback, []),
        "funded_at": iso(m.funded_at),
        "submitted_at": iso(m.submitted_at),
        "completed_at": iso(m.completed_at),
    }


def _transaction_to_dict(tx: DealTransaction, show_reference: bool) -> dict:
    data = {
        "id": tx.id,
        "type": tx.type,
        "amount": money_out(tx.amount),
        "status": tx.status,
        "milestone_id": tx.milestone_id,
        "created_at": iso(tx.created_at),
    }
    if show_reference:
        data["reference"] = tx.reference
    return data


def deal_to_dict(deal: Deal, viewer_role: str) -> dict:
    show_reference = viewer_role == "Marketer"
    return {
        "id": deal.id,
        "deal_number": deal.deal_number,
        "offer_id": deal.offer_id,
        "marketer_id": deal.marketer_id,
        "creator_id": deal.creator_id,
        "marketer_name": deal.marketer.name if deal.marketer else None,
        "creator_name": deal.creator.name if deal.creator else None,
        "deal_name": deal.deal_name,
        "platforms": json_load(deal.platforms, []),
        "deliverables": json_load(deal.deliverables, []),
        "desired_review_date": iso(deal.desired_review_date),
        "desired_post_date": iso(deal.desired_post_date),
        "status": deal.status,
        "currency": deal.currency,
        "payment_amount": money_out(deal.payment_amount),
        "required_payment": money_out(deal.required_payment),
        "payment_status": deal.payment_status,
        "payment_needed": bool(deal.payment_needed),
        "total_escrowed": money_out(deal.total_escrowed),
        "total_released": money_out(deal.total_released),
        "final_rating": deal.final_rating,
        "final_feedback": deal.final_feedback,
        "completed_at": iso(deal.completed_at),
        "cancelled_at": iso(deal.cancelled_at),
        "cancellation_reason": deal.cancellation_reason,
        "deliverable_files": json_load(deal.deliverable_files, []),
        "milestones": [milestone_to_dict(m) for m in sorted(deal.milestones, key=lambda m: m.order)],
        "transactions": [_transaction_to_dict(tx, show_reference) for tx in deal.transactions],
        "viewer_role": viewer_role,
        "created_at": iso(deal.created_at),
    }

"""Negotiation on offers: counter proposals, acceptance, rejection, messages, metrics.

Every action appends an ``OfferCounter`` history entry and recomputes the
offer's negotiation metrics. Accepting an offer creates the deal and posts a
system message into the offer's chat room.
"""
import logging
import uuid
from datetime import timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.config import settings
from creatordeals.core.content_filter import check_message_text, sanitize_text
from creatordeals.core.exceptions import InvalidOfferStateError
from creatordeals.core.utils import as_utc, iso, json_dump, json_load, money_out, to_money, utcnow
from creatordeals.models.offer import Offer, OfferCounter
from creatordeals.services import chat_service, deal_service
from creatordeals.services.notification_service import notify
from creatordeals.services.offer_service import (
    NEGOTIABLE_STATUSES,
    counter_to_dict,
    counterparty_id,
    load_offer_for,
    metrics_to_dict,
    offer_to_dict,
    parse_deliverables,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# History helpers
# ---------------------------------------------------------------------------

def _is_proposal(c: OfferCounter) -> bool:
    return not (c.is_message or c.is_acceptance or c.is_rejection)


def latest_proposal(offer: Offer) -> OfferCounter | None:
    """The most recent counter proposal, ignoring messages and outcomes."""
    proposals = [c for c in offer.counters if _is_proposal(c)]
    return proposals[-1] if proposals else None


def latest_proposer(offer: Offer) -> str:
    """Who made the terms currently on the table. The marketer opens with the offer itself."""
    proposal = latest_proposal(offer)
    return proposal.counter_by if proposal else "Marketer"


def current_terms(offer: Offer) -> dict:
    """Terms the other party would accept right now.

    These are the latest proposer's most recent counter that carries an
    amount. Notes-only counters change nothing. A proposer with no priced
    counter stands on the original offer, and the counter's unset fields fall
    back to the offer's own.
    """
    proposer = latest_proposer(offer)
    priced = [c for c in offer.counters if _is_proposal(c) and c.counter_by == proposer and c.counter_amount is not None]
    counter = priced[-1] if priced else None

    terms = {
        "amount": to_money(offer.proposed_amount),
        "desired_review_date": offer.desired_review_date,
        "desired_post_date": offer.desired_post_date,
        "deliverables": json_load(offer.deliverables, []),
        "proposed_by": proposer,
        "counter_id": None,
    }
    if counter is None:
        return terms

    terms["amount"] = to_money(counter.counter_amount)
    terms["counter_id"] = counter.id
    if counter.counter_review_date is not None:
        terms["desired_review_date"] = counter.counter_review_date
    if counter.counter_post_date is not None:
        terms["desired_post_date"] = counter.counter_post_date
    deliverables = json_load(counter.deliverables, [])
    if deliverables:
        terms["deliverables"] = deliverables
    return terms


def _terms_to_dict(terms: dict) -> dict:
    return {
        "amount": money_out(terms["amount"]),
        "desired_review_date": iso(terms["desired_review_date"]),
        "desired_post_date": iso(terms["desired_post_date"]),
        "deliverables": terms["deliverables"],
        "proposed_by": terms["proposed_by"],
        "counter_id": terms["counter_id"],
    }


def compute_metrics(offer: Offer) -> dict:
    """Derive negotiation metrics from the offer's history entries."""
    entries = list(offer.counters)
    metrics = {
        "total_rounds": len(entries),
        "negotiation_started": None,
        "last_activity": None,
        "marketer_responses": sum(1 for c in entries if c.counter_by == "Marketer"),
        "creator_responses": sum(1 for c in entries if c.counter_by == "Creator"),
        "average_response_time": 0.0,
        "convergence_score": 0.0,
    }
    if not entries:
        return metrics

    dates = [as_utc(c.counter_date) for c in entries]
    metrics["negotiation_started"] = dates[0]
    metrics["last_activity"] = dates[-1]
    if len(dates) >= 2:
        gaps = [(b - a).total_seconds() / 3600 for a, b in zip(dates, dates[1:])]
        metrics["average_response_time"] = round(sum(gaps) / len(gaps), 1)

    marketer_amount = creator_amount = None
    for c in entries:
        if c.counter_amount is None or c.is_message or c.is_rejection:
            continue
        if c.counter_by == "Marketer":
            marketer_amount = float(c.counter_amount)
        else:
            creator_amount = float(c.counter_amount)
    if marketer_amount is None and creator_amount is not None:
        marketer_amount = float(offer.proposed_amount)
    if marketer_amount and creator_amount:
        high = max(marketer_amount, creator_amount)
        metrics["convergence_score"] = round(1 - abs(marketer_amount - creator_amount) / high, 2)
    return metrics


def _apply_metrics(offer: Offer) -> None:
    metrics = compute_metrics(offer)
    for key, value in metrics.items():
        setattr(offer, key, value)


def _append_entry(offer: Offer, role: str, user_id: str, **fields) -> OfferCounter:
    now = utcnow()
    entry = OfferCounter(
        id=str(uuid.uuid4()),
        offer_id=offer.id,
        sequence=len(offer.counters) + 1,
        counter_by=role,
        counter_by_user_id=user_id,
        notes=fields.pop("notes", "") or "",
        deliverables=json_dump(fields.pop("deliverables", None) or []),
        priority=fields.pop("priority", None) or offer.priority or "medium",
        counter_date=now,
        **fields,
    )
    offer.counters.append(entry)
    _apply_metrics(offer)
    offer.updated_at = now
    return entry


def _ensure_negotiable(offer: Offer, action: str) -> None:
    if offer.status not in NEGOTIABLE_STATUSES:
        raise InvalidOfferStateError(offer.status, action)


def _permissions(offer: Offer, role: str) -> dict:
    open_ = offer.status in NEGOTIABLE_STATUSES
    proposal = latest_proposal(offer)
    expired = bool(proposal and proposal.expires_at and as_utc(proposal.expires_at) < utcnow())
    return {
        "can_counter": open_,
        "can_accept": open_ and latest_proposer(offer) != role and not expired,
        "can_reject": open_,
        "can_message": open_,
        "role": role,
    }


async def _post_to_chat(db: AsyncSession, offer: Offer, sender_id: str, text: str, is_system: bool = True):
    room = await chat_service.get_or_create_room(db, offer.marketer_id, offer.creator_id, offer.id)
    return room, chat_service.stage_message(db, room, sender_id, text, is_system=is_system)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

async def get_negotiation(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    return {
        "offer": offer_to_dict(offer, include_history=False),
        "participants": {
            "marketer": {"id": offer.marketer_id, "name": offer.marketer.name if offer.marketer else None},
            "creator": {"id": offer.creator_id, "name": offer.creator.name if offer.creator else None},
        },
        "current_terms": _terms_to_dict(current_terms(offer)),
        "negotiation_history": [counter_to_dict(c) for c in offer.counters],
        "metrics": metrics_to_dict(offer),
        "permissions": _permissions(offer, role),
    }


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def submit_counter(db: AsyncSession, offer_id: str, user_id: str, data: dict) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    _ensure_negotiable(offer, "counter")

    amount = data.get("counter_amount")
    notes = sanitize_text(data.get("notes") or "")
    if amount is None and not notes:
        raise ValueError("A counter offer needs an amount or notes")
    review, post = data.get("counter_review_date"), data.get("counter_post_date")
    if review and post and as_utc(review) > as_utc(post):
        raise ValueError("Review date must be on or before the post date")
    expires_in_days = data.get("expires_in_days")

    entry = _append_entry(
        offer,
        role,
        user_id,
        counter_amount=to_money(amount) if amount is not None else None,
        notes=notes,
        counter_review_date=review,
        counter_post_date=post,
        deliverables=parse_deliverables(data.get("deliverables")),
        priority=data.get("priority"),
        expires_at=utcnow() + timedelta(days=expires_in_days) if expires_in_days else None,
    )
    offer.status = "Rejected-Countered"
    if role == "Marketer":
        offer.viewed_by_creator = False
    else:
        offer.viewed_by_marketer = False

    summary = f"{role} sent a counter offer"
    if amount is not None:
        summary += f" of {to_money(amount)} {offer.currency}"
    room, message = await _post_to_chat(db, offer, user_id, summary)
    notify(
        db, counterparty_id(offer, role), "counter_offer", "New counter offer", offer.offer_name,
        {"offer_id": offer.id, "counter_id": entry.id},
    )
    await db.commit()

    chat_service.announce(room, message)
    logger.info("Counter %d on offer %s by %s", entry.sequence, offer.id, role)
    return {"counter": counter_to_dict(entry), "metrics": metrics_to_dict(offer), "offer_status": offer.status}


async def accept_offer(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    _ensure_negotiable(offer, "accept")
    if latest_proposer(offer) == role:
        raise ValueError("You cannot accept your own proposal. Wait for the other party to respond")
    proposal = latest_proposal(offer)
    if proposal and proposal.expires_at and as_utc(proposal.expires_at) < utcnow():
        raise ValueError("This counter offer has expired")

    terms = current_terms(offer)
    _append_entry(
        offer,
        role,
        user_id,
        counter_amount=terms["amount"],
        notes="Offer accepted",
        is_acceptance=True,
    )
    now = utcnow()
    offer.status = "Accepted"
    offer.accepted_by = role
    offer.accepted_at = now
    offer.accepted_amount = terms["amount"]

    deal = await deal_service.create_deal_from_offer(db, offer, terms)
    room, message = await _post_to_chat(
        db, offer, user_id,
        f"Offer accepted for {terms['amount']} {offer.currency}. Deal #{deal.deal_number} has been created",
    )
    notify(
        db, counterparty_id(offer, role), "offer_accepted", "Offer accepted", offer.offer_name,
        {"offer_id": offer.id, "deal_id": deal.id},
    )
    await db.commit()

    chat_service.announce(room, message)
    logger.info("Offer accepted: %s by %s, deal %s", offer.id, role, deal.id)
    return {
        "message": "Offer accepted",
        "offer": offer_to_dict(offer),
        "accepted_terms": _terms_to_dict(terms),
        "deal": deal_service.deal_to_dict(deal, role),
        "chat_room_id": room.id,
    }


async def reject_offer(db: AsyncSession, offer_id: str, user_id: str, reason: str | None = None) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    _ensure_negotiable(offer, "reject")
    reason = sanitize_text(reason or "")

    _append_entry(offer, role, user_id, notes=reason or "Offer rejected", is_rejection=True)
    offer.status = "Rejected"
    offer.rejected_by = role
    offer.rejected_at = utcnow()
    offer.rejection_reason = reason or None

    room, message = await _post_to_chat(db, offer, user_id, f"{role} rejected the offer")
    notify(
        db, counterparty_id(offer, role), "offer_rejected", "Offer rejected", reason or offer.offer_name,
        {"offer_id": offer.id},
    )
    await db.commit()

    chat_service.announce(room, message)
    logger.info("Offer rejected: %s by %s", offer.id, role)
    return {"message": "Offer rejected", "offer": offer_to_dict(offer)}


async def send_negotiation_message(db: AsyncSession, offer_id: str, user_id: str, text: str) -> dict:
    """Record a free-text negotiation note and mirror it into the offer's chat."""
    offer, role = await load_offer_for(db, offer_id, user_id)
    _ensure_negotiable(offer, "message on")
    cleaned = check_message_text(text, max_length=settings.chat_max_message_length)
    if not cleaned:
        raise ValueError("Message cannot be empty")

    entry = _append_entry(offer, role, user_id, notes=cleaned, is_message=True)
    room, message = await _post_to_chat(db, offer, user_id, cleaned, is_system=False)
    await db.commit()

    chat_service.announce(room, message)
    return {"entry": counter_to_dict(entry), "metrics": metrics_to_dict(offer), "chat_message_id": message.id}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

async def user_analytics(db: AsyncSession, user_id: str) -> dict:
    result = await db.execute(
        select(Offer).where(
            or_(Offer.marketer_id == user_id, Offer.creator_id == user_id),
            Offer.total_rounds > 0,
            Offer.status.notin_(("Draft", "Deleted")),
        )
    )
    offers = list(result.scalars().all())
    total = len(offers)
    accepted = sum(1 for o in offers if o.status == "Accepted")
    rejected = sum(1 for o in offers if o.status == "Rejected")
    as_marketer = [o for o in offers if o.marketer_id == user_id]
    as_creator = [o for o in offers if o.creator_id == user_id]
    return {
        "total_negotiations": total,
        "accepted_negotiations": accepted,
        "rejected_negotiations": rejected,
        "average_rounds": round(sum(o.total_rounds for o in offers) / total, 1) if total else 0.0,
        "success_rate": round(accepted / total * 100, 1) if total else 0.0,
        "by_role": {
            "as_marketer": {
                "total": len(as_marketer),
                "accepted": sum(1 for o in as_marketer if o.status == "Accepted"),
            },
            "as_creator": {
                "total": len(as_creator),
                "accepted": sum(1 for o in as_creator if o.status == "Accepted"),
            },
        },
    }

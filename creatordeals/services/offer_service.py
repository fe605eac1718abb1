"""Offer lifecycle: creation, listing, edits, sending, cancellation, soft delete and viewed flags."""
import json
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.core.exceptions import (
    ForbiddenError,
    InvalidOfferStateError,
    OfferNotFoundError,
    UserNotFoundError,
)
from creatordeals.core.utils import as_utc, iso, json_dump, json_load, money_out, to_money, utcnow
from creatordeals.models.deal import Deal
from creatordeals.models.offer import Offer, OfferCounter
from creatordeals.models.user import User
from creatordeals.services import chat_service
from creatordeals.services.account_service import get_user
from creatordeals.services.notification_service import notify

logger = logging.getLogger(__name__)

NEGOTIABLE_STATUSES = {"Sent", "Offer in Review", "Rejected-Countered"}
EDITABLE_STATUSES = {"Draft", "Sent"}
CANCELLABLE_STATUSES = {"Draft"} | NEGOTIABLE_STATUSES
EDITABLE_FIELDS = {
    "offer_name", "description", "offer_type", "platforms", "deliverables", "proposed_amount",
    "currency", "desired_review_date", "desired_post_date", "notes", "priority", "tags",
}


# ---------------------------------------------------------------------------
# Shared helpers (also used by negotiation_service)
# ---------------------------------------------------------------------------

def parse_deliverables(value) -> list[str]:
    """Accept a list, a JSON list string, or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except ValueError:
                raise ValueError("Deliverables must be a list") from None
            return [str(item).strip() for item in parsed if str(item).strip()]
        return [part.strip() for part in raw.split(",") if part.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def _check_dates(review, post) -> None:
    if review and post and as_utc(review) > as_utc(post):
        raise ValueError("Review date must be on or before the post date")


async def load_offer(db: AsyncSession, offer_id: str) -> Offer:
    result = await db.execute(select(Offer).where(Offer.id == offer_id))
    offer = result.scalar_one_or_none()
    if not offer or offer.status == "Deleted":
        raise OfferNotFoundError(offer_id)
    return offer


def role_for(offer: Offer, user_id: str) -> str:
    """Return the caller's side of the offer or raise 403."""
    if user_id == offer.marketer_id:
        return "Marketer"
    if user_id == offer.creator_id:
        return "Creator"
    raise ForbiddenError("Not a participant in this offer")


async def load_offer_for(db: AsyncSession, offer_id: str, user_id: str) -> tuple[Offer, str]:
    offer = await load_offer(db, offer_id)
    role = role_for(offer, user_id)
    if role == "Creator" and offer.status == "Draft":
        raise OfferNotFoundError(offer_id)
    return offer, role


def counterparty_id(offer: Offer, role: str) -> str:
    return offer.creator_id if role == "Marketer" else offer.marketer_id


async def open_offer_chat(db: AsyncSession, offer: Offer, text: str):
    """Ensure the offer's chat room exists and stage an announcement from the marketer."""
    room = await chat_service.get_or_create_room(db, offer.marketer_id, offer.creator_id, offer.id)
    message = chat_service.stage_message(db, room, offer.marketer_id, text, is_system=True)
    return room, message


def _summary(offer: Offer) -> str:
    return f"New offer: {offer.offer_name} for {to_money(offer.proposed_amount)} {offer.currency}"


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

async def create_offer(db: AsyncSession, marketer_id: str, data: dict) -> dict:
    marketer = await get_user(db, marketer_id)
    if marketer.user_type != "Marketer":
        raise ForbiddenError("Only marketers can create offers")
    try:
        creator = await get_user(db, data["creator_id"])
    except UserNotFoundError:
        raise ValueError("Creator not found") from None
    if creator.user_type != "Creator":
        raise ValueError("Offers can only be sent to creator accounts")

    _check_dates(data.get("desired_review_date"), data.get("desired_post_date"))
    is_draft = bool(data.get("draft"))
    now = utcnow()
    offer = Offer(
        id=str(uuid.uuid4()),
        marketer_id=marketer.id,
        creator_id=creator.id,
        marketer=marketer,
        creator=creator,
        counters=[],
        offer_type=data.get("offer_type") or "standard",
        offer_name=data["offer_name"].strip(),
        description=data.get("description") or "",
        platforms=json_dump(data.get("platforms") or []),
        deliverables=json_dump(parse_deliverables(data.get("deliverables"))),
        desired_review_date=data.get("desired_review_date"),
        desired_post_date=data.get("desired_post_date"),
        proposed_amount=to_money(data["proposed_amount"]),
        currency=(data.get("currency") or "USD").upper(),
        notes=data.get("notes") or "",
        priority=data.get("priority") or "medium",
        tags=json_dump(data.get("tags") or []),
        status="Draft" if is_draft else "Sent",
        sent_at=None if is_draft else now,
        viewed_by_marketer=True,
        viewed_by_marketer_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(offer)

    room = message = None
    if not is_draft:
        room, message = await open_offer_chat(db, offer, _summary(offer))
        notify(db, creator.id, "offer_received", "New offer received", offer.offer_name, {"offer_id": offer.id})
    await db.commit()

    if room is not None:
        chat_service.announce(room, message)
    logger.info("Offer created: %s (%s -> %s, %s)", offer.id, marketer.id, creator.id, offer.status)
    return {
        "message": "Offer created successfully",
        "offer": offer_to_dict(offer),
        "chat_room_id": room.id if room is not None else None,
    }


async def list_offers(db: AsyncSession, user_id: str, role: str | None, status: str | None = None) -> list[dict]:
    if role not in ("marketer", "creator"):
        raise ValueError("role query parameter must be 'marketer' or 'creator'")
    user = await get_user(db, user_id)
    if user.user_type.lower() != role:
        raise ValueError(f"Account is not a {role}")

    column = Offer.marketer_id if role == "marketer" else Offer.creator_id
    query = select(Offer).where(column == user_id, Offer.status != "Deleted")
    if role == "creator":
        query = query.where(Offer.status != "Draft")
    if status:
        query = query.where(Offer.status == status)
    result = await db.execute(query.order_by(Offer.updated_at.desc()))
    return [offer_to_dict(o, include_history=False) for o in result.scalars().all()]


async def list_drafts(db: AsyncSession, user_id: str) -> list[dict]:
    result = await db.execute(
        select(Offer)
        .where(Offer.marketer_id == user_id, Offer.status == "Draft")
        .order_by(Offer.updated_at.desc())
    )
    return [offer_to_dict(o, include_history=False) for o in result.scalars().all()]


async def get_offer(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer, _ = await load_offer_for(db, offer_id, user_id)
    data = offer_to_dict(offer)
    room = await chat_service.find_offer_room(db, offer.id)
    data["chat_room_id"] = room.id if room else None
    deal_id = (await db.execute(select(Deal.id).where(Deal.offer_id == offer.id))).scalar()
    data["deal_id"] = deal_id
    return data


# ---------------------------------------------------------------------------
# Marketer actions
# ---------------------------------------------------------------------------

async def _marketer_offer(db: AsyncSession, offer_id: str, user_id: str) -> Offer:
    offer = await load_offer(db, offer_id)
    if role_for(offer, user_id) != "Marketer":
        raise ForbiddenError("Only the marketer who created this offer can do that")
    return offer


async def update_offer(db: AsyncSession, offer_id: str, user_id: str, updates: dict) -> dict:
    offer = await _marketer_offer(db, offer_id, user_id)
    if offer.status not in EDITABLE_STATUSES:
        raise InvalidOfferStateError(offer.status, "edit")

    review = updates.get("desired_review_date", offer.desired_review_date)
    post = updates.get("desired_post_date", offer.desired_post_date)
    _check_dates(review, post)

    for key, value in updates.items():
        if key not in EDITABLE_FIELDS or value is None:
            continue
        if key == "deliverables":
            value = json_dump(parse_deliverables(value))
        elif key in ("platforms", "tags"):
            value = json_dump(value)
        elif key == "proposed_amount":
            value = to_money(value)
        elif key == "currency":
            value = value.upper()
        setattr(offer, key, value)

    if offer.status == "Sent":
        offer.viewed_by_creator = False
    offer.updated_at = utcnow()
    await db.commit()
    return offer_to_dict(offer)


async def send_offer(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer = await _marketer_offer(db, offer_id, user_id)
    if offer.status != "Draft":
        raise InvalidOfferStateError(offer.status, "send")
    now = utcnow()
    offer.status = "Sent"
    offer.sent_at = now
    offer.updated_at = now
    room, message = await open_offer_chat(db, offer, _summary(offer))
    notify(db, offer.creator_id, "offer_received", "New offer received", offer.offer_name, {"offer_id": offer.id})
    await db.commit()

    chat_service.announce(room, message)
    return {"message": "Offer sent", "offer": offer_to_dict(offer), "chat_room_id": room.id}


async def cancel_offer(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer = await _marketer_offer(db, offer_id, user_id)
    if offer.status not in CANCELLABLE_STATUSES:
        raise InvalidOfferStateError(offer.status, "cancel")
    offer.status = "Cancelled"
    offer.updated_at = utcnow()
    notify(db, offer.creator_id, "offer_cancelled", "Offer cancelled", offer.offer_name, {"offer_id": offer.id})
    await db.commit()
    return {"message": "Offer cancelled", "offer": offer_to_dict(offer)}


async def delete_offer(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer = await _marketer_offer(db, offer_id, user_id)
    if offer.status == "Accepted":
        raise InvalidOfferStateError(offer.status, "delete")
    offer.status = "Deleted"
    offer.updated_at = utcnow()
    await db.commit()
    logger.info("Offer deleted: %s", offer.id)
    return {"message": "Offer deleted", "offer_id": offer.id}


# ---------------------------------------------------------------------------
# Creator / either-party actions
# ---------------------------------------------------------------------------

async def mark_in_review(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    if role != "Creator":
        raise ForbiddenError("Only the creator can put an offer in review")
    if offer.status not in ("Sent", "Offer in Review"):
        raise InvalidOfferStateError(offer.status, "review")
    offer.status = "Offer in Review"
    offer.viewed_by_creator = True
    offer.viewed_by_creator_at = utcnow()
    offer.updated_at = utcnow()
    await db.commit()
    return {"message": "Offer in review", "offer": offer_to_dict(offer)}


async def mark_viewed(db: AsyncSession, offer_id: str, user_id: str) -> dict:
    offer, role = await load_offer_for(db, offer_id, user_id)
    now = utcnow()
    if role == "Creator":
        offer.viewed_by_creator = True
        offer.viewed_by_creator_at = now
    else:
        offer.viewed_by_marketer = True
        offer.viewed_by_marketer_at = now
    await db.commit()
    return {
        "offer_id": offer.id,
        "viewed_by_creator": bool(offer.viewed_by_creator),
        "viewed_by_marketer": bool(offer.viewed_by_marketer),
    }


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _party(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "user_name": user.user_name, "avatar_url": user.avatar_url}


def counter_to_dict(c: OfferCounter) -> dict:
    expires_at = as_utc(c.expires_at)
    return {
        "id": c.id,
        "sequence": c.sequence,
        "counter_by": c.counter_by,
        "counter_by_user_id": c.counter_by_user_id,
        "counter_amount": money_out(c.counter_amount),
        "notes": c.notes or "",
        "counter_review_date": iso(c.counter_review_date),
        "counter_post_date": iso(c.counter_post_date),
        "deliverables": json_load(c.deliverables, []),
        "priority": c.priority,
        "expires_at": iso(expires_at),
        "is_expired": bool(expires_at and expires_at < utcnow()),
        "is_message": bool(c.is_message),
        "is_acceptance": bool(c.is_acceptance),
        "is_rejection": bool(c.is_rejection),
        "counter_date": iso(c.counter_date),
    }


def metrics_to_dict(offer: Offer) -> dict:
    return {
        "total_rounds": offer.total_rounds or 0,
        "negotiation_started": iso(offer.negotiation_started),
        "last_activity": iso(offer.last_activity),
        "convergence_score": offer.convergence_score or 0.0,
        "average_response_time": offer.average_response_time or 0.0,
        "participant_engagement": {
            "marketer_responses": offer.marketer_responses or 0,
            "creator_responses": offer.creator_responses or 0,
        },
    }


def offer_to_dict(offer: Offer, include_history: bool = True) -> dict:
    data = {
        "id": offer.id,
        "marketer_id": offer.marketer_id,
        "creator_id": offer.creator_id,
        "marketer": _party(offer.marketer),
        "creator": _party(offer.creator),
        "offer_type": offer.offer_type,
        "offer_name": offer.offer_name,
        "description": offer.description or "",
        "platforms": json_load(offer.platforms, []),
        "deliverables": json_load(offer.deliverables, []),
        "desired_review_date": iso(offer.desired_review_date),
        "desired_post_date": iso(offer.desired_post_date),
        "proposed_amount": money_out(offer.proposed_amount),
        "currency": offer.currency,
        "notes": offer.notes or "",
        "priority": offer.priority,
        "tags": json_load(offer.tags, []),
        "status": offer.status,
        "sent_at": iso(offer.sent_at),
        "viewed_by_creator": bool(offer.viewed_by_creator),
        "viewed_by_creator_at": iso(offer.viewed_by_creator_at),
        "viewed_by_marketer": bool(offer.viewed_by_marketer),
        "viewed_by_marketer_at": iso(offer.viewed_by_marketer_at),
        "accepted_by": offer.accepted_by,
        "accepted_at": iso(offer.accepted_at),
        "accepted_amount": money_out(offer.accepted_amount),
        "rejected_by": offer.rejected_by,
        "rejected_at": iso(offer.rejected_at),
        "rejection_reason": offer.rejection_reason,
        "metrics": metrics_to_dict(offer),
        "created_at": iso(offer.created_at),
        "updated_at": iso(offer.updated_at),
    }
    if include_history:
        data["counters"] = [counter_to_dict(c) for c in offer.counters]
    return data

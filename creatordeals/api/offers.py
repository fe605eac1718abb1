"""Offer endpoints. Counter/accept/reject delegate to the negotiation service."""
from datetime import datetime
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.api.deps import get_current_user, parse_id
from creatordeals.api.negotiation import CounterRequest, RejectRequest
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import negotiation_service, offer_service

router = APIRouter(prefix="/offers", tags=["offers"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class OfferCreateRequest(BaseModel):
    creator_id: str = Field(..., min_length=1, max_length=36)
    offer_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    offer_type: Literal["standard", "trial", "premium"] = "standard"
    platforms: list[str] = Field(default_factory=list)
    deliverables: Optional[Union[list[str], str]] = None
    proposed_amount: float = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    desired_review_date: Optional[datetime] = None
    desired_post_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    tags: list[str] = Field(default_factory=list)
    draft: bool = False

class OfferUpdateRequest(BaseModel):
    offer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    offer_type: Optional[Literal["standard", "trial", "premium"]] = None
    platforms: Optional[list[str]] = None
    deliverables: Optional[Union[list[str], str]] = None
    proposed_amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    desired_review_date: Optional[datetime] = None
    desired_post_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    priority: Optional[Literal["low", "medium", "high", "urgent"]] = None
    tags: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def create_offer(
    req: OfferCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await offer_service.create_offer(db, user.id, req.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_offers(
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None, max_length=30),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        offers = await offer_service.list_offers(db, user.id, role, status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"offers": offers, "count": len(offers)}


@router.get("/drafts")
async def list_drafts(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    offers = await offer_service.list_drafts(db, user.id)
    return {"offers": offers, "count": len(offers)}


@router.get("/{offer_id}")
async def get_offer(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.get_offer(db, parse_id(offer_id, "offer"), user.id)


@router.patch("/{offer_id}")
async def update_offer(
    offer_id: str,
    req: OfferUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await offer_service.update_offer(
            db, parse_id(offer_id, "offer"), user.id, req.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{offer_id}")
async def delete_offer(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.delete_offer(db, parse_id(offer_id, "offer"), user.id)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

@router.post("/{offer_id}/send")
async def send_offer(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.send_offer(db, parse_id(offer_id, "offer"), user.id)


@router.post("/{offer_id}/counter", status_code=201)
async def counter_offer(
    offer_id: str,
    req: CounterRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await negotiation_service.submit_counter(
            db, parse_id(offer_id, "offer"), user.id, req.model_dump(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{offer_id}/accept")
async def accept_offer(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await negotiation_service.accept_offer(db, parse_id(offer_id, "offer"), user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{offer_id}/reject")
async def reject_offer(
    offer_id: str,
    req: Optional[RejectRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await negotiation_service.reject_offer(
            db, parse_id(offer_id, "offer"), user.id, req.reason if req else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{offer_id}/cancel")
async def cancel_offer(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.cancel_offer(db, parse_id(offer_id, "offer"), user.id)


@router.post("/{offer_id}/in-review")
async def mark_in_review(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.mark_in_review(db, parse_id(offer_id, "offer"), user.id)


@router.post("/{offer_id}/viewed")
async def mark_viewed(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.mark_viewed(db, parse_id(offer_id, "offer"), user.id)

"""Negotiation endpoints: history, counters, accept/reject, messages and analytics."""
from datetime import datetime
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.api.deps import get_current_user, parse_id
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import negotiation_service

router = APIRouter(prefix="/negotiation", tags=["negotiation"])


class CounterRequest(BaseModel):
    counter_amount: Optional[float] = Field(None, gt=0)
    notes: Optional[str] = Field(None, max_length=2000)
    deliverables: Optional[Union[list[str], str]] = None
    counter_review_date: Optional[datetime] = None
    counter_post_date: Optional[datetime] = None
    priority: Optional[Literal["low", "medium", "high", "urgent"]] = None
    expires_in_days: Optional[int] = Field(None, ge=1, le=90)

class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)

class NegotiationMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)


@router.get("/analytics/user")
async def my_analytics(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await negotiation_service.user_analytics(db, user.id)


@router.get("/{offer_id}")
async def get_negotiation(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await negotiation_service.get_negotiation(db, parse_id(offer_id, "offer"), user.id)


@router.post("/{offer_id}/counter", status_code=201)
async def counter(
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
async def accept(
    offer_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await negotiation_service.accept_offer(db, parse_id(offer_id, "offer"), user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{offer_id}/reject")
async def reject(
    offer_id: str,
    req: Optional[RejectRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reason = req.reason if req else None
    try:
        return await negotiation_service.reject_offer(db, parse_id(offer_id, "offer"), user.id, reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{offer_id}/message", status_code=201)
async def message(
    offer_id: str,
    req: NegotiationMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a note to the negotiation history; it is mirrored into the offer chat."""
    try:
        return await negotiation_service.send_negotiation_message(
            db, parse_id(offer_id, "offer"), user.id, req.message,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

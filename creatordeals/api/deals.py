"""Deal endpoints: payments, milestones, submission/approval, completion."""
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.api.deps import get_current_user, parse_id
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import deal_service

router = APIRouter(prefix="/deals", tags=["deals"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)

class MilestoneCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0)
    due_date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)
    deliverables: Optional[list[str]] = None

class MilestoneUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[float] = Field(None, gt=0)
    due_date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)
    deliverables: Optional[list[str]] = None

class TemplateRequest(BaseModel):
    template: Literal["equal_split", "front_loaded", "back_loaded"]
    start_date: Optional[datetime] = None

class FundRequest(BaseModel):
    reference: Optional[str] = Field(None, max_length=100)

class SubmitMilestoneRequest(BaseModel):
    milestone_id: Optional[str] = None
    deliverables: Optional[list[str]] = None
    notes: Optional[str] = Field(None, max_length=2000)

class ReviewMilestoneRequest(BaseModel):
    milestone_id: Optional[str] = None
    action: str = Field(..., min_length=1, max_length=20)
    feedback: Optional[str] = Field(None, max_length=2000)
    rating: Optional[int] = None

class CompleteDealRequest(BaseModel):
    rating: Optional[int] = None
    feedback: Optional[str] = Field(None, max_length=2000)

class CancelDealRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@router.get("")
async def list_deals(
    role: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        deals = await deal_service.list_deals(db, user.id, role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"deals": deals, "count": len(deals)}


@router.get("/earnings")
async def get_earnings(
    period: str = Query("all"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Earned, spent and pending totals from the caller's payment ledger."""
    try:
        return await deal_service.get_earnings(db, user.id, period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{deal_id}")
async def get_deal(
    deal_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await deal_service.get_deal(db, parse_id(deal_id, "deal"), user.id)


@router.post("/{deal_id}/payments", status_code=201)
async def record_payment(
    deal_id: str,
    req: PaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.record_payment(
            db, parse_id(deal_id, "deal"), user.id, req.amount, req.reference,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------------------------------------------------------------------------
# Milestone planning
# ---------------------------------------------------------------------------

@router.post("/{deal_id}/milestones", status_code=201)
async def add_milestone(
    deal_id: str,
    req: MilestoneCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.add_milestone(db, parse_id(deal_id, "deal"), user.id, req.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{deal_id}/milestones/template")
async def apply_template(
    deal_id: str,
    req: TemplateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Replace unfunded milestones with an equal, front- or back-loaded split."""
    try:
        return await deal_service.apply_template(
            db, parse_id(deal_id, "deal"), user.id, req.template, req.start_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{deal_id}/milestones/{milestone_id}")
async def update_milestone(
    deal_id: str,
    milestone_id: str,
    req: MilestoneUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.update_milestone(
            db, parse_id(deal_id, "deal"), user.id, parse_id(milestone_id, "milestone"),
            req.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{deal_id}/milestones/{milestone_id}")
async def delete_milestone(
    deal_id: str,
    milestone_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await deal_service.delete_milestone(
        db, parse_id(deal_id, "deal"), user.id, parse_id(milestone_id, "milestone"),
    )


@router.post("/{deal_id}/milestones/{milestone_id}/accept")
async def accept_milestone(
    deal_id: str,
    milestone_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await deal_service.accept_milestone_proposal(
        db, parse_id(deal_id, "deal"), user.id, parse_id(milestone_id, "milestone"),
    )


@router.post("/{deal_id}/milestones/{milestone_id}/fund")
async def fund_milestone(
    deal_id: str,
    milestone_id: str,
    req: Optional[FundRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.fund_milestone(
            db, parse_id(deal_id, "deal"), user.id, parse_id(milestone_id, "milestone"),
            req.reference if req else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------------------------------------------------------------------------
# Milestone work
# ---------------------------------------------------------------------------

@router.put("/{deal_id}/submit-milestone")
async def submit_milestone(
    deal_id: str,
    req: SubmitMilestoneRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if req.milestone_id:
        parse_id(req.milestone_id, "milestone")
    try:
        return await deal_service.submit_milestone(
            db, parse_id(deal_id, "deal"), user.id, req.milestone_id, req.deliverables, req.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{deal_id}/approve-milestone")
async def approve_milestone(
    deal_id: str,
    req: ReviewMilestoneRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if req.milestone_id:
        parse_id(req.milestone_id, "milestone")
    try:
        return await deal_service.review_milestone(
            db, parse_id(deal_id, "deal"), user.id, req.milestone_id, req.action,
            feedback=req.feedback, rating=req.rating,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------------------------------------------------------------------------
# Completion / cancellation / deliverables
# ---------------------------------------------------------------------------

@router.post("/{deal_id}/complete")
async def complete_deal(
    deal_id: str,
    req: Optional[CompleteDealRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    req = req or CompleteDealRequest()
    try:
        return await deal_service.complete_deal(
            db, parse_id(deal_id, "deal"), user.id, rating=req.rating, feedback=req.feedback,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{deal_id}/cancel")
async def cancel_deal(
    deal_id: str,
    req: CancelDealRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.cancel_deal(db, parse_id(deal_id, "deal"), user.id, req.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{deal_id}/upload-deliverable", status_code=201)
async def upload_deliverable(
    deal_id: str,
    files: list[UploadFile] = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await deal_service.upload_deliverables(db, parse_id(deal_id, "deal"), user.id, files)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

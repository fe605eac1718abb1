"""Phone + OTP registration, login and password reset endpoints."""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.api.deps import get_current_user
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class RegisterStartRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=25)
    user_type: Literal["Marketer", "Creator"]

class VerifyOtpRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=25)
    code: str = Field(..., min_length=4, max_length=10)
    device_token: Optional[str] = Field(None, max_length=500)

class CompleteRegistrationRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    user_name: str = Field(..., min_length=3, max_length=31)
    password: str = Field(..., min_length=1, max_length=128)
    email: Optional[str] = Field(None, max_length=255)

class LoginRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=25)
    password: str = Field(..., min_length=1, max_length=128)
    device_token: Optional[str] = Field(None, max_length=500)

class PhoneRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=25)

class ResetVerifyRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=25)
    code: str = Field(..., min_length=4, max_length=10)

class ResetCompleteRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=25)
    code: str = Field(..., min_length=4, max_length=10)
    new_password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post("/register/start")
async def register_start(req: RegisterStartRequest, db: AsyncSession = Depends(get_db)):
    """Send a registration OTP to the phone number."""
    try:
        return await auth_service.start_registration(db, req.phone, req.user_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/register/verify-otp", status_code=201)
async def register_verify(req: VerifyOtpRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.verify_registration(db, req.phone, req.code, req.device_token)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/register/complete")
async def register_complete(
    req: CompleteRegistrationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Set name, username and password to activate the account."""
    try:
        return await auth_service.complete_registration(
            db, user.id, req.name, req.user_name, req.password, email=req.email,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/resend-otp")
async def resend_otp(req: PhoneRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.resend_otp(db, req.phone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/check-phone")
async def check_phone(phone: str = Query(..., min_length=1), db: AsyncSession = Depends(get_db)):
    return {"exists": await auth_service.phone_exists(db, phone)}


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.post("/login")
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth_service.login(db, req.phone, req.password, req.device_token)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

@router.post("/password-reset")
async def password_reset_start(req: PhoneRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.start_password_reset(db, req.phone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/password-reset/verify")
async def password_reset_verify(req: ResetVerifyRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.verify_password_reset(db, req.phone, req.code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/password-reset/complete")
async def password_reset_complete(req: ResetCompleteRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.complete_password_reset(db, req.phone, req.code, req.new_password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

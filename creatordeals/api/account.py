"""Account profile endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.api.deps import get_current_user, parse_id
from creatordeals.database import get_db
from creatordeals.models.user import User
from creatordeals.services import account_service

router = APIRouter(prefix="/account", tags=["account"])


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    user_name: Optional[str] = Field(None, min_length=3, max_length=31)
    email: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = Field(None, max_length=1000)
    avatar_url: Optional[str] = Field(None, max_length=500)
    settings: Optional[dict] = None

class PlatformEntry(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    handle: Optional[str] = Field(None, max_length=100)
    followers: int = Field(0, ge=0)

class CreatorDataRequest(BaseModel):
    handle_name: Optional[str] = Field(None, max_length=100)
    categories: Optional[list[str]] = None
    platforms: Optional[list[PlatformEntry]] = None
    sponsored_post_rate: Optional[float] = Field(None, ge=0)
    portfolio: Optional[list[str]] = None

class MarketerDataRequest(BaseModel):
    brand_name: Optional[str] = Field(None, max_length=200)
    brand_website: Optional[str] = Field(None, max_length=300)
    industry: Optional[str] = Field(None, max_length=100)
    brand_description: Optional[str] = Field(None, max_length=2000)
    budget: Optional[float] = Field(None, ge=0)
    categories: Optional[list[str]] = None

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)

class DeviceTokenRequest(BaseModel):
    device_token: str = Field(..., min_length=1, max_length=500)

class DeleteAccountRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)


@router.get("/me")
async def get_me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await account_service.get_profile(db, user.id)


@router.patch("/me")
async def update_me(
    req: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await account_service.update_profile(db, user.id, req.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/me/creator")
async def update_creator_data(
    req: CreatorDataRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.update_role_data(db, user.id, "Creator", req.model_dump(exclude_unset=True))


@router.patch("/me/marketer")
async def update_marketer_data(
    req: MarketerDataRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.update_role_data(db, user.id, "Marketer", req.model_dump(exclude_unset=True))


@router.post("/change-password")
async def change_password(
    req: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await account_service.change_password(db, user.id, req.current_password, req.new_password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Password changed successfully"}


@router.put("/device-token")
async def update_device_token(
    req: DeviceTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await account_service.update_device_token(db, user.id, req.device_token)
    return {"message": "Device token updated"}


@router.delete("/me")
async def delete_me(
    req: DeleteAccountRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete the caller's account."""
    await account_service.delete_account(db, user.id, req.password)
    return {"message": "Account deleted"}


@router.get("/creators")
async def search_creators(
    q: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = Query(None, max_length=50),
    platform: Optional[str] = Query(None, max_length=50),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    creators = await account_service.search_creators(db, q, category, platform, limit)
    return {"creators": creators, "count": len(creators)}


@router.get("/profile/{user_id}")
async def get_public_profile(
    user_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.get_public_profile(db, parse_id(user_id, "user"), viewer_id=user.id)

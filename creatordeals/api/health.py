import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from creatordeals.core.chat_broker import chat_broker
from creatordeals.database import get_db
from creatordeals.models.chat import ChatRoom
from creatordeals.models.deal import Deal
from creatordeals.models.offer import Offer
from creatordeals.models.user import User
from creatordeals.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

APP_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    offers = (await db.execute(select(func.count(Offer.id)))).scalar() or 0
    deals = (await db.execute(select(func.count(Deal.id)))).scalar() or 0
    rooms = (await db.execute(select(func.count(ChatRoom.id)))).scalar() or 0

    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        users_count=users,
        offers_count=offers,
        deals_count=deals,
        chat_rooms_count=rooms,
        live_subscribers=chat_broker.subscriber_count(),
    )


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness check: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed: database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )

from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    users_count: int
    offers_count: int
    deals_count: int
    chat_rooms_count: int
    live_subscribers: int

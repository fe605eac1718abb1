"""API router registry used by the app factory.

Keeps route module imports and inclusion order in one place so
`creatordeals.main` stays focused on startup wiring.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import account, auth, chats, deals, health, negotiation, notifications, offers, uploads

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    auth.router,
    account.router,
    offers.router,
    negotiation.router,
    chats.router,
    uploads.router,
    deals.router,
    notifications.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]

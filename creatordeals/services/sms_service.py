"""Outbound SMS for one-time passcodes (Twilio REST API)."""

import logging

import httpx

from creatordeals.config import settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def _mask(phone: str) -> str:
    return f"***{phone[-4:]}" if len(phone) > 4 else "***"


async def send_sms(to: str, body: str) -> bool:
    """Send a text message. Returns True when the provider accepted it.

    Without Twilio credentials nothing is sent. The body may carry a passcode,
    so it is only logged at DEBUG outside production, which is how local
    development receives its codes.
    """
    if not settings.twilio_account_sid:
        logger.info("SMS to %s not sent, no provider configured", _mask(to))
        if settings.environment.lower() not in {"production", "prod"}:
            logger.debug("Unsent SMS body for %s: %s", _mask(to), body)
        return False

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                TWILIO_MESSAGES_URL.format(sid=settings.twilio_account_sid),
                data={"To": to, "From": settings.twilio_from_number, "Body": body},
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
                timeout=settings.sms_timeout_seconds,
            )
    except httpx.HTTPError as exc:
        logger.warning("SMS delivery to %s failed: %s", _mask(to), exc)
        return False

    if resp.status_code not in (200, 201):
        logger.warning("SMS provider rejected message to %s: HTTP %s", _mask(to), resp.status_code)
        return False
    return True


async def send_otp(phone: str, code: str) -> bool:
    minutes = settings.otp_expire_minutes
    return await send_sms(phone, f"Your verification code is {code}. Valid for {minutes} minutes.")

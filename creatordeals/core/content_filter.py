"""Chat content rules: markup stripping, profanity and off-platform contact detection."""

from __future__ import annotations

import html
import re

_BLOCK_TAGS = re.compile(r"<(script|style|iframe|object)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_ANY_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"[ \t]+")

_PROFANITY = (
    "damn",
    "shit",
    "fuck",
    "bitch",
    "bastard",
    "asshole",
    "crap",
    "dick",
    "piss",
)
_PROFANITY_PATTERN = re.compile(r"\b(" + "|".join(_PROFANITY) + r")\w*\b", re.IGNORECASE)

_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_PATTERNS = (
    re.compile(r"\+\d[\d\s-]{6,16}\d"),
    re.compile(r"\(?\b\d{3}\)?[\s.-]?\d{3}[\s.-]\d{4}\b"),
    re.compile(r"\b\d{10,15}\b"),
)
_HANDLE_PATTERN = re.compile(r"(?<![\w.])@[A-Za-z0-9_.]{2,30}")
_SOCIAL_LINK_PATTERN = re.compile(
    r"\b(?:instagram\.com|tiktok\.com|wa\.me|t\.me|snapchat\.com|facebook\.com|twitter\.com|x\.com)/",
    re.IGNORECASE,
)


class ContentRejected(ValueError):
    """Raised when message text breaks a content rule."""


def sanitize_text(text: str | None) -> str:
    """Remove markup; script/style blocks are dropped together with their contents."""
    if not text:
        return ""
    cleaned = _BLOCK_TAGS.sub("", text)
    cleaned = _ANY_TAG.sub("", cleaned)
    cleaned = html.unescape(cleaned)
    cleaned = _ANY_TAG.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def contains_profanity(text: str) -> bool:
    return bool(_PROFANITY_PATTERN.search(text))


def contains_contact_info(text: str) -> bool:
    if _EMAIL_PATTERN.search(text) or _SOCIAL_LINK_PATTERN.search(text):
        return True
    if any(p.search(text) for p in _PHONE_PATTERNS):
        return True
    return bool(_HANDLE_PATTERN.search(text))


def check_message_text(text: str | None, *, max_length: int) -> str:
    """Sanitise ``text`` and enforce chat rules. Returns the cleaned text.

    Empty text is allowed here; callers decide whether an empty message is
    acceptable (attachments-only messages are).
    """
    if text is not None and len(text) > max_length:
        raise ContentRejected(f"Message is too long (max {max_length} characters)")
    cleaned = sanitize_text(text)
    if not cleaned:
        return ""
    if contains_profanity(cleaned):
        raise ContentRejected("Message contains inappropriate content")
    if contains_contact_info(cleaned):
        raise ContentRejected("Message contains contact information. Keep communication on the platform")
    return cleaned

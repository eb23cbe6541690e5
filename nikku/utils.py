"""Shared utility helpers for nikku."""

from __future__ import annotations

import re
from datetime import datetime, timezone

_MENTION_RE = re.compile(r"^<@!?(\d+)>$")


def parse_timestamp(ts: str | None) -> datetime | None:
    """Parse SQLite TIMESTAMP string to timezone-aware datetime, or None."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
        # SQLite stores naive timestamps as UTC
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def extract_user_id(token: str) -> str | None:
    """Return the user id from a ``<@id>`` / ``<@!id>`` mention or a bare id."""
    token = token.strip()
    match = _MENTION_RE.match(token)
    if match:
        return match.group(1)
    if token.isdigit():
        return token
    return None


def mention(user_id: str) -> str:
    return f"<@!{user_id}>"


def normalize_text(text: str) -> str:
    """Lowercase and drop all whitespace, for keyword matching."""
    return re.sub(r"\s", "", text).lower()

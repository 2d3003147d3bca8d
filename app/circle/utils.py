from __future__ import annotations

import hashlib
import re
from datetime import date, timedelta

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    return bool(_EMAIL_RE.match((email or "").strip()))


def count_words(text: str | None) -> int:
    return len((text or "").split())


def first_name(full_name: str | None, default: str = "there") -> str:
    """First word of a display name, used in email greetings."""
    parts = (full_name or "").split()
    return parts[0] if parts else default


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def week_start(d: date | None = None) -> date:
    """Monday of the week containing d."""
    d = d or date.today()
    return d - timedelta(days=d.weekday())


def file_digest(data: bytes) -> tuple[str, int]:
    """SHA256 hex digest and size of an upload."""
    return hashlib.sha256(data).hexdigest(), len(data)

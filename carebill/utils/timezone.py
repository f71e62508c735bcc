# FILE: carebill/utils/timezone.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from carebill.core.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE or "Asia/Kolkata")


def now_local() -> datetime:
    """
    Returns a *naive* datetime representing hospital-local time.
    All DateTime columns are naive local time.
    """
    return datetime.now(local_tz()).replace(tzinfo=None)


def to_local_naive(dt: Optional[datetime]) -> Optional[datetime]:
    if not dt:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(local_tz()).replace(tzinfo=None)

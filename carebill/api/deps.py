# carebill/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Header
from sqlalchemy.orm import Session

from carebill.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_actor(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting user for audit fields; identity is established upstream."""
    actor = (x_user_id or "").strip()
    return actor or None

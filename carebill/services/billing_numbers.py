from __future__ import annotations

from datetime import datetime
from sqlalchemy.orm import Session

from carebill.core.config import settings
from carebill.models.billing import InvoiceSeries
from carebill.utils.timezone import now_local

INVOICE_PADDING = 6


def next_invoice_number(db: Session,
                        hospital_id: int,
                        at: datetime | None = None) -> str:
    """
    INV-2025-000001 style: the counter restarts at 1 each calendar year.
    The series row is locked until the caller's transaction ends; a first
    number raced by another writer surfaces as an IntegrityError, which
    run_atomic() replays.
    """
    year = (at or now_local()).year

    row = (db.query(InvoiceSeries).filter(
        InvoiceSeries.hospital_id == int(hospital_id),
        InvoiceSeries.year == year,
    ).with_for_update().first())

    if not row:
        row = InvoiceSeries(hospital_id=int(hospital_id), year=year,
                            next_number=1)
        db.add(row)
        db.flush()

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    return f"{settings.INVOICE_PREFIX}{year}-{str(n).zfill(INVOICE_PADDING)}"

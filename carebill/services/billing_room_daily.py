# FILE: carebill/services/billing_room_daily.py
"""
Nightly room accumulator.

For every live bill: walk from the watermark (last_billed_at) to the last
closed day and merge one "Room Charges daily" line per day. Each day is its
own transaction and the line key carries the date, so a crashed or repeated
run only replays no-ops.
"""
from __future__ import annotations

import logging
import time as _time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from carebill.core.config import settings
from carebill.models.billing import Bill
from carebill.models.ipd import Admission, Bed
from carebill.services.billing_charges import bed_daily_rate, build_daily_room_charge
from carebill.services.billing_errors import BillingStateError, MissingRateError
from carebill.services.billing_ledger import (
    get_bill_by_id_for_update,
    merge_charges,
    run_atomic,
)
from carebill.services.rate_resolver import (
    PayerContext,
    RateResolver,
    ResolvedRate,
    payer_context_for_case,
)
from carebill.utils.timezone import now_local, to_local_naive

logger = logging.getLogger(__name__)

_clock = _time.monotonic

SCOPE_BED = "bed"

OUTCOME_BILLED = "billed"
OUTCOME_NOTHING = "nothing"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"
OUTCOME_TIMEOUT = "timeout"


@dataclass
class CaseOutcome:
    bill_id: int
    case_id: str
    outcome: str = OUTCOME_NOTHING
    days_billed: int = 0
    days_failed: int = 0
    messages: List[str] = field(default_factory=list)


@dataclass
class AccumulatorSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    cases: List[CaseOutcome] = field(default_factory=list)

    @property
    def lines_added(self) -> int:
        return sum(c.days_billed for c in self.cases)

    def count(self, outcome: str) -> int:
        return sum(1 for c in self.cases if c.outcome == outcome)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "cases_seen": len(self.cases),
            "lines_added": self.lines_added,
            "totals": {
                o: self.count(o)
                for o in (OUTCOME_BILLED, OUTCOME_NOTHING, OUTCOME_SKIPPED,
                          OUTCOME_FAILED, OUTCOME_TIMEOUT)
            },
            "cases": [asdict(c) for c in self.cases],
        }


# ------------------------------------------------------------
# watermark <-> day
# ------------------------------------------------------------
def next_start_day(last_billed_at: datetime, include_today: bool) -> date:
    # closed-day mode bills through yesterday, so the watermark's own day is
    # still open; include-today mode already billed it
    d = last_billed_at.date()
    return d + timedelta(days=1) if include_today else d


def retry_watermark(day: date, include_today: bool) -> datetime:
    """Watermark that makes next_start_day() return `day`."""
    if include_today:
        return datetime.combine(day - timedelta(days=1), time.min)
    return datetime.combine(day, time.min)


def _occupied_bed(db: Session, bill: Bill) -> Optional[Bed]:
    return (db.query(Bed).filter(
        Bed.hospital_id == bill.hospital_id,
        Bed.assigned_patient_id == bill.patient_id,
        Bed.status == "Occupied",
    ).order_by(Bed.assigned_at.desc(), Bed.id.desc()).first())


def _start_day(db: Session, bill: Bill, bed: Bed, today: date,
               include_today: bool) -> date:
    if bill.last_billed_at:
        return next_start_day(bill.last_billed_at, include_today)

    adm = db.query(Admission).filter(Admission.case_id == bill.case_id).first()
    if adm and adm.admission_date:
        return adm.admission_date
    if adm and adm.admitted_at:
        return adm.admitted_at.date()
    if bed.assigned_at:
        return bed.assigned_at.date()
    return today


def _room_rate(resolver: RateResolver, payer: PayerContext, bed: Bed,
               room) -> ResolvedRate:
    """
    Room type through the catalog (insurer list first when approved). The
    bed's own daily rate is a last resort for self-pay only.
    """
    hit = resolver.lookup(room.room_type, payer, room.department_id)
    if hit is not None:
        return hit

    bed_rate = bed_daily_rate(bed)
    if (not payer.uses_insurer and settings.ROOM_RATE_FALLBACK_TO_BED
            and bed_rate is not None):
        return ResolvedRate(category=room.room_type,
                            rate=bed_rate,
                            scope=SCOPE_BED)

    raise MissingRateError(room.room_type or room.name)


def _bill_one_day(db: Session, bill_id: int, bed_id: int, day: date,
                  rate: ResolvedRate) -> int:
    def _work(db: Session) -> int:
        bill = get_bill_by_id_for_update(db, bill_id)
        if not bill.is_live:
            raise BillingStateError("Bill is no longer live")
        bed = db.get(Bed, bed_id)
        charge = build_daily_room_charge(bed, bed.room, day, rate)
        return merge_charges(db, case_id=bill.case_id, lines=[charge]).added

    return run_atomic(db, _work)


def _set_watermark(db: Session, bill_id: int, value: datetime) -> None:
    def _work(db: Session) -> None:
        bill = get_bill_by_id_for_update(db, bill_id)
        bill.last_billed_at = value
        db.flush()

    run_atomic(db, _work)


# ------------------------------------------------------------
# one case
# ------------------------------------------------------------
def _accumulate_case(db: Session, bill_id: int, now: datetime,
                     include_today: bool, budget: float) -> CaseOutcome:
    bill = db.get(Bill, bill_id)
    res = CaseOutcome(bill_id=bill_id, case_id=bill.case_id)

    bed = _occupied_bed(db, bill)
    if bed is None or bed.room is None:
        logger.warning("Case %s: no occupied bed for patient %s, skipped",
                       bill.case_id, bill.patient_id)
        res.outcome = OUTCOME_SKIPPED
        res.messages.append("No occupied bed")
        return res

    today = now.date()
    end_day = today if include_today else today - timedelta(days=1)
    start_day = _start_day(db, bill, bed, today, include_today)
    if start_day > end_day:
        return res

    resolver = RateResolver(db, bill.hospital_id)
    payer = payer_context_for_case(db, bill.case_id)
    bed_id, room = int(bed.id), bed.room

    t0 = _clock()
    days_ok = 0
    first_failed: Optional[date] = None
    aborted: Optional[str] = None

    day = start_day
    while day <= end_day:
        if budget and _clock() - t0 > budget:
            aborted = OUTCOME_TIMEOUT
            first_failed = first_failed or day
            res.messages.append(f"Time budget exceeded at {day.isoformat()}")
            logger.warning("Case %s: time budget exceeded at %s", res.case_id,
                           day)
            break

        try:
            rate = _room_rate(resolver, payer, bed, room)
            res.days_billed += _bill_one_day(db, bill_id, bed_id, day, rate)
            days_ok += 1
        except MissingRateError as e:
            res.days_failed += 1
            first_failed = first_failed or day
            res.messages.append(f"{day.isoformat()}: {e}")
            logger.error("Case %s: %s for %s, day skipped", res.case_id, e,
                         day)
        except Exception as e:
            aborted = OUTCOME_FAILED
            res.days_failed += 1
            first_failed = first_failed or day
            res.messages.append(f"{day.isoformat()}: {e}")
            logger.exception("Case %s: room billing failed on %s",
                             res.case_id, day)
            break
        day += timedelta(days=1)

    if days_ok:
        mark = now if first_failed is None else retry_watermark(
            first_failed, include_today)
        _set_watermark(db, bill_id, mark)

    if aborted:
        res.outcome = aborted
    elif days_ok:
        res.outcome = OUTCOME_BILLED
    else:
        res.outcome = OUTCOME_FAILED
    return res


# ------------------------------------------------------------
# run
# ------------------------------------------------------------
def accumulate_room_charges(
    db: Session,
    *,
    now: Optional[datetime] = None,
    include_today: Optional[bool] = None,
    case_timeout: Optional[float] = None,
) -> AccumulatorSummary:
    now = to_local_naive(now) or now_local()
    if include_today is None:
        include_today = settings.ROOM_BILLING_INCLUDE_TODAY
    budget = float(settings.ROOM_BILLING_CASE_TIMEOUT_SECONDS
                   if case_timeout is None else case_timeout)

    summary = AccumulatorSummary(started_at=now)

    # ids first: no lock or ORM state is carried across cases
    live = [(int(i), str(c)) for i, c in db.query(Bill.id, Bill.case_id).filter(
        Bill.is_live.is_(True)).order_by(Bill.id.asc()).all()]
    logger.info("Room billing run at %s: %s live bill(s)", now, len(live))

    for bill_id, case_id in live:
        try:
            out = _accumulate_case(db, bill_id, now, include_today, budget)
        except Exception as e:
            db.rollback()
            logger.exception("Case %s: room billing failed", case_id)
            out = CaseOutcome(bill_id=bill_id,
                              case_id=case_id,
                              outcome=OUTCOME_FAILED,
                              messages=[str(e)])
        summary.cases.append(out)

    summary.finished_at = now_local()
    logger.info(
        "Room billing done: %s line(s) added, billed=%s nothing=%s skipped=%s "
        "failed=%s timeout=%s", summary.lines_added,
        summary.count(OUTCOME_BILLED), summary.count(OUTCOME_NOTHING),
        summary.count(OUTCOME_SKIPPED), summary.count(OUTCOME_FAILED),
        summary.count(OUTCOME_TIMEOUT))
    return summary

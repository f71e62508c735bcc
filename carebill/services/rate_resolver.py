# FILE: carebill/services/rate_resolver.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from carebill.models.billing import RateCatalogEntry
from carebill.models.ipd import Admission
from carebill.services.billing_errors import MissingRateError
from carebill.services.billing_math import money2

SCOPE_HOSPITAL = "hospital"
SCOPE_INSURER = "insurer"

APPROVED = "approved"
APPROVAL_STATUSES = ("pending", "approved", "rejected")


@dataclass(frozen=True)
class PayerContext:
    has_insurance: bool = False
    approval_status: str = "pending"
    insurer_id: Optional[int] = None

    @property
    def uses_insurer(self) -> bool:
        # only an approved claim with a designated insurer switches price list
        return bool(self.has_insurance and self.approval_status == APPROVED
                    and self.insurer_id)


HOSPITAL_PAYER = PayerContext()


def payer_context_for_case(db: Session, case_id: str) -> PayerContext:
    adm = (db.query(Admission).filter(Admission.case_id == str(case_id)).first())
    if not adm:
        return HOSPITAL_PAYER
    return PayerContext(
        has_insurance=bool(adm.has_insurance),
        approval_status=(adm.insurance_approved or "pending").strip().lower(),
        insurer_id=int(adm.insurer_id) if adm.insurer_id else None,
    )


def norm_category(x: Optional[str]) -> str:
    return " ".join(str(x or "").lower().split())


@dataclass(frozen=True)
class ResolvedRate:
    category: str
    rate: Decimal
    scope: str
    insurer_id: Optional[int] = None
    department_id: Optional[int] = None
    entry_id: Optional[int] = None
    service_name: Optional[str] = None
    additional_details: Dict[str, Any] = field(default_factory=dict)

    @property
    def insurance_covered(self) -> bool:
        return self.scope == SCOPE_INSURER


_Key = Tuple[str, Optional[int]]


class RateResolver:
    """
    Catalog lookup for one hospital.

    Each payer scope (hospital list, or one insurer's list) is loaded once into
    a dict keyed by (normalized category, department_id); lookups are O(1).

    Precedence:
      approved insurer: insurer+dept -> insurer -> hospital+dept -> hospital
      otherwise:        hospital+dept -> hospital
    """

    def __init__(self, db: Session, hospital_id: int):
        self.db = db
        self.hospital_id = int(hospital_id)
        self._scopes: Dict[Optional[int], Dict[_Key, ResolvedRate]] = {}

    def _scope_index(self, insurer_id: Optional[int]) -> Dict[_Key, ResolvedRate]:
        idx = self._scopes.get(insurer_id)
        if idx is not None:
            return idx

        q = self.db.query(RateCatalogEntry).filter(
            RateCatalogEntry.hospital_id == self.hospital_id,
            RateCatalogEntry.is_active.is_(True),
        )
        if insurer_id is None:
            q = q.filter(RateCatalogEntry.insurer_id.is_(None))
        else:
            q = q.filter(RateCatalogEntry.insurer_id == int(insurer_id))

        idx = {}
        for row in q.all():
            key = (norm_category(row.category),
                   int(row.department_id) if row.department_id else None)
            idx[key] = ResolvedRate(
                category=row.category,
                rate=money2(row.rate),
                scope=SCOPE_HOSPITAL if insurer_id is None else SCOPE_INSURER,
                insurer_id=insurer_id,
                department_id=key[1],
                entry_id=int(row.id),
                service_name=row.service_name,
                additional_details=dict(row.additional_details or {}),
            )
        self._scopes[insurer_id] = idx
        return idx

    @staticmethod
    def _pick(idx: Dict[_Key, ResolvedRate], category: str,
              department_id: Optional[int]) -> Optional[ResolvedRate]:
        cat = norm_category(category)
        if department_id:
            hit = idx.get((cat, int(department_id)))
            if hit is not None:
                return hit
        return idx.get((cat, None))

    def lookup(self,
               category: str,
               payer: PayerContext,
               department_id: Optional[int] = None) -> Optional[ResolvedRate]:
        if payer.uses_insurer:
            hit = self._pick(self._scope_index(int(payer.insurer_id)),
                             category, department_id)
            if hit is not None:
                return hit
        return self._pick(self._scope_index(None), category, department_id)

    def resolve(self,
                category: str,
                payer: PayerContext,
                department_id: Optional[int] = None) -> ResolvedRate:
        hit = self.lookup(category, payer, department_id)
        if hit is None:
            raise MissingRateError(category, department_id=department_id)
        return hit

    def rate_map(self, payer: PayerContext) -> Dict[_Key, ResolvedRate]:
        """Whole price list of the single scope active for this payer."""
        if payer.uses_insurer:
            return dict(self._scope_index(int(payer.insurer_id)))
        return dict(self._scope_index(None))


def map_lookup(rate_map: Dict[_Key, ResolvedRate], key: Optional[str],
               department_id: Optional[int]) -> Optional[ResolvedRate]:
    if not key:
        return None
    return RateResolver._pick(rate_map, key, department_id)

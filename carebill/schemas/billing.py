# FILE: carebill/schemas/billing.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carebill.models.billing import BillMode, DiscountType, PayMode


class CatalogItemIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=120)
    quantity: Decimal = Decimal("1")
    department_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    @field_validator("quantity")
    @classmethod
    def _qty(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("quantity must be > 0")
        return v


class InitialPaymentIn(BaseModel):
    amount: Decimal
    mode: PayMode = PayMode.CASH
    reference: Optional[str] = None


class ItemizedBillCreate(BaseModel):
    case_id: str = Field(..., min_length=1, max_length=64)
    patient_id: int = Field(..., gt=0)
    hospital_id: int = Field(..., gt=0)
    doctor_id: Optional[int] = None
    mode: BillMode = BillMode.CASH
    services: List[CatalogItemIn]
    payment: Optional[InitialPaymentIn] = None

    @field_validator("services")
    @classmethod
    def _services(cls, v):
        if not v:
            raise ValueError("at least one service is required")
        return v


class ServiceLineEdit(BaseModel):
    """One line of a wholesale edit; rate is taken as given."""
    model_config = ConfigDict(extra="ignore")

    category: str = Field(..., min_length=1, max_length=120)
    quantity: Decimal = Decimal("1")
    rate: Decimal = Decimal("0")
    rate_key: Optional[str] = None
    department_id: Optional[int] = None
    catalog_entry_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    line_key: Optional[str] = Field(None, max_length=96)
    billed_date: Optional[date] = None
    is_recurring: bool = False
    is_manual: bool = False


class ServicesReplace(BaseModel):
    services: List[ServiceLineEdit]


class ExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=120)
    amount: Decimal
    quantity: Decimal = Decimal("1")
    details: Optional[Dict[str, Any]] = None


class DiscountIn(BaseModel):
    """Value is taken as given; the applied amount is clamped to the gross."""
    type: DiscountType
    value: Decimal
    reason: Optional[str] = Field(None, max_length=255)


class PaymentIn(BaseModel):
    amount: Decimal
    mode: PayMode = PayMode.CASH
    reference: Optional[str] = Field(None, max_length=100)

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("payment amount must be > 0")
        return v


class RoomBillingRunIn(BaseModel):
    include_today: Optional[bool] = None

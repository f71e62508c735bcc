# FILE: carebill/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    Date,
    DateTime,
    Enum,
    Index,
    ForeignKey,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.orm import relationship

from carebill.db.base import Base

MYSQL_ARGS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class BillStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"


class BillMode(str, enum.Enum):
    CASH = "Cash"
    ONLINE = "Online"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "Percentage"
    FLAT = "Flat"


class PayMode(str, enum.Enum):
    UPI = "UPI"
    CASH = "Cash"
    CARD = "Card"
    NET_BANKING = "Net Banking"
    INSURANCE = "Insurance"


class RateCatalogEntry(Base):
    """
    One priced category in a payer scope.

    insurer_id NULL   -> hospital's own price list
    insurer_id set    -> that insurer's negotiated price list
    department_id set -> department-specific price (wins over department-agnostic)
    """
    __tablename__ = "billing_rate_catalog"
    __table_args__ = (
        UniqueConstraint("hospital_id",
                         "insurer_id",
                         "category",
                         "department_id",
                         name="uq_billing_rate_scope_category_dept"),
        Index("ix_billing_rate_lookup", "hospital_id", "insurer_id",
              "is_active"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    insurer_id = Column(Integer,
                        ForeignKey("insurance_companies.id"),
                        nullable=True)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)

    # grouping shown to admins: Consultation | Medication | Room Type Service | ...
    service_name = Column(String(120), nullable=True)
    category = Column(String(120), nullable=False)
    rate_type = Column(String(30), default="Fixed")
    rate = Column(Numeric(12, 2), nullable=False)
    effective_date = Column(Date, nullable=True)
    additional_details = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)


class Bill(Base):
    """
    Running bill for one case (exactly one row per case_id).

    Totals are always derived from services + discount + paid_amount:
      gross_amount = sum(rate * quantity)
      net_amount   = gross_amount - discount_amount
      balance      = net_amount - paid_amount   (signed, audit)
      outstanding  = max(balance, 0)
      status       = Paid if balance <= 0 else Pending
    """

    __tablename__ = "billing_bills"
    __table_args__ = (
        UniqueConstraint("case_id", name="uq_billing_bills_case"),
        UniqueConstraint("hospital_id",
                         "invoice_number",
                         name="uq_billing_bills_invoice_number"),
        Index("ix_billing_bills_live", "is_live"),
        Index("ix_billing_bills_patient", "patient_id"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String(64), nullable=False)

    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)

    invoice_number = Column(String(32), nullable=False)
    invoice_date = Column(DateTime, default=datetime.utcnow)

    gross_amount = Column(Numeric(12, 2), default=0)

    # Header discount (at most one active)
    discount_type = Column(Enum(DiscountType, name="bill_discount_type"),
                           nullable=True)
    discount_value = Column(Numeric(12, 2), default=0)
    discount_amount = Column(Numeric(12, 2), default=0)
    discount_reason = Column(String(255), nullable=True)
    discount_applied_by = Column(String(64), nullable=True)
    discount_applied_at = Column(DateTime, nullable=True)

    net_amount = Column(Numeric(12, 2), default=0)
    # legacy alias of net_amount, kept for older clients
    total_amount = Column(Numeric(12, 2), default=0)

    paid_amount = Column(Numeric(12, 2), default=0)
    outstanding = Column(Numeric(12, 2), default=0)
    balance = Column(Numeric(12, 2), default=0)

    status = Column(Enum(BillStatus, name="bill_status"),
                    nullable=False,
                    default=BillStatus.PENDING)
    mode = Column(Enum(BillMode, name="bill_mode"),
                  nullable=False,
                  default=BillMode.CASH)

    # Recurring room charges
    is_live = Column(Boolean, default=False, nullable=False)
    last_billed_at = Column(DateTime, nullable=True)

    # optimistic concurrency counter (bumped on every UPDATE)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    services = relationship(
        "BillServiceLine",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillServiceLine.seq",
    )
    payments = relationship(
        "BillPayment",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillPayment.id",
    )
    patient = relationship("Patient")
    doctor = relationship("Doctor")


class BillServiceLine(Base):
    __tablename__ = "billing_bill_services"
    __table_args__ = (
        # idempotency: one line per key per bill (NULL keys never collide)
        UniqueConstraint("bill_id",
                         "line_key",
                         name="uq_billing_bill_services_key"),
        Index("ix_billing_bill_services_bill", "bill_id"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(
        Integer,
        ForeignKey("billing_bills.id", ondelete="CASCADE"),
        nullable=False,
    )

    # S.no order for UI/print
    seq = Column(Integer, default=1)

    catalog_entry_id = Column(Integer,
                              ForeignKey("billing_rate_catalog.id"),
                              nullable=True)
    category = Column(String(120), nullable=False)
    # catalog key used on re-resolution; NULL for manual lines
    rate_key = Column(String(120), nullable=True)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)

    quantity = Column(Numeric(10, 2), default=1)
    rate = Column(Numeric(12, 2), default=0)
    amount = Column(Numeric(12, 2), default=0)

    details = Column(JSON, nullable=True)

    line_key = Column(String(96), nullable=True)
    billed_date = Column(Date, nullable=True)
    is_recurring = Column(Boolean, default=False)
    is_manual = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    bill = relationship("Bill", back_populates="services")
    department = relationship("Department")


class BillPayment(Base):
    """Append-only payment rows (no refunds / voids in this core)."""

    __tablename__ = "billing_bill_payments"
    __table_args__ = (Index("ix_billing_bill_payments_bill", "bill_id"),
                      MYSQL_ARGS)

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(
        Integer,
        ForeignKey("billing_bills.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount = Column(Numeric(12, 2), nullable=False)
    mode = Column(Enum(PayMode, name="bill_pay_mode"), nullable=False)
    reference = Column(String(100), nullable=True)
    paid_at = Column(DateTime, default=datetime.utcnow)
    recorded_by = Column(String(64), nullable=True)

    bill = relationship("Bill", back_populates="payments")


class InvoiceSeries(Base):
    """One counter per hospital per calendar year."""
    __tablename__ = "billing_invoice_series"
    __table_args__ = (UniqueConstraint("hospital_id",
                                       "year",
                                       name="uq_billing_invoice_series"),
                      MYSQL_ARGS)

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    year = Column(Integer, nullable=False)
    next_number = Column(Integer, nullable=False, default=1)

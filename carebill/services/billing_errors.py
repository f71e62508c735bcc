# FILE: carebill/services/billing_errors.py
from __future__ import annotations


# ============================================================
# Errors
# ============================================================
class BillingError(RuntimeError):
    status_code = 400
    code = "BILLING_ERROR"


class BillingValidationError(BillingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class MissingRateError(BillingError):
    """No rate for a category in any applicable payer scope."""
    status_code = 422
    code = "MISSING_RATE"

    def __init__(self, category: str, *, department_id=None):
        self.category = category
        self.department_id = department_id
        msg = f"No rate configured for '{category}'"
        if department_id:
            msg += " in this department"
        super().__init__(msg)


class MissingDependencyError(BillingError):
    """Referenced bed / room / consultation / department / case / bill not found."""
    status_code = 404
    code = "NOT_FOUND"


class DateInconsistencyError(BillingError):
    status_code = 422
    code = "DATE_INCONSISTENCY"


class BillingStateError(BillingError):
    status_code = 409
    code = "INVALID_STATE"


class ConcurrentUpdateError(BillingError):
    status_code = 409
    code = "CONCURRENT_UPDATE"

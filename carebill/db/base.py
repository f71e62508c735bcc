# carebill/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All tables (patients, admissions, bills, catalog, etc.) inherit from this."""
    pass


# Import all models so metadata is complete for create_all()
from carebill.models import (  # noqa: E402,F401
    hospital,
    patient,
    payer,
    opd,
    ipd,
    billing,
)

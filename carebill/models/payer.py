# FILE: carebill/models/payer.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey

from carebill.db.base import Base


class InsuranceCompany(Base):
    """
    Insurer master. Its negotiated prices live in the rate catalog
    (RateCatalogEntry rows with insurer_id set).
    """
    __tablename__ = "insurance_companies"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer,
                         ForeignKey("hospitals.id"),
                         nullable=False,
                         index=True)
    code = Column(String(64), nullable=True, index=True)
    name = Column(String(191), nullable=False)
    is_active = Column(Boolean, default=True)

# FILE: carebill/models/patient.py
from sqlalchemy import Column, Integer, String, DateTime, func, ForeignKey

from carebill.db.base import Base


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer,
                         ForeignKey("hospitals.id"),
                         nullable=False,
                         index=True)
    name = Column(String(191), nullable=False)
    phone = Column(String(20), index=True, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

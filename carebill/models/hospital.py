# FILE: carebill/models/hospital.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from carebill.db.base import Base


class Hospital(Base):
    """Tenant scope for every bill, catalog row and clinical record."""
    __tablename__ = "hospitals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(191), nullable=False)
    code = Column(String(32), unique=True, nullable=True)
    is_active = Column(Boolean, default=True)

    departments = relationship("Department", back_populates="hospital")


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (UniqueConstraint("hospital_id",
                                       "name",
                                       name="uq_department_name_per_hospital"), )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer,
                         ForeignKey("hospitals.id"),
                         nullable=False,
                         index=True)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True)

    hospital = relationship("Hospital", back_populates="departments")


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer,
                         ForeignKey("hospitals.id"),
                         nullable=False,
                         index=True)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)
    name = Column(String(120), nullable=False)
    specialization = Column(String(120), nullable=True)

    department = relationship("Department")

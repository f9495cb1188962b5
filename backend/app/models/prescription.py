"""
Prescription: an immutable historical record.
There is no update path; corrections are a new prescription.
"""
import uuid

from sqlalchemy import Column, Date, DateTime, String, Text, Uuid
from sqlalchemy.sql import func

from app.db.base import Base


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    prescription_number = Column(String(64), unique=True, nullable=False, index=True)
    patient_name = Column(String(255), nullable=False)
    patient_phone = Column(String(64), nullable=True)
    doctor_name = Column(String(255), nullable=False)
    doctor_license = Column(String(128), nullable=True)
    prescription_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)  # opaque actor id
    created_at = Column(DateTime(timezone=True), server_default=func.now())

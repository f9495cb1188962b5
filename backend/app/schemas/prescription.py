from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class PrescriptionCreate(BaseModel):
    prescription_number: Optional[str] = None  # generated when omitted
    patient_name: str
    patient_phone: Optional[str] = None
    doctor_name: str
    doctor_license: Optional[str] = None
    prescription_date: Optional[date] = None
    notes: Optional[str] = None


class LinkedSale(BaseModel):
    id: UUID
    sale_number: str

    class Config:
        from_attributes = True


class PrescriptionResponse(BaseModel):
    id: UUID
    prescription_number: str
    patient_name: str
    patient_phone: Optional[str] = None
    doctor_name: str
    doctor_license: Optional[str] = None
    prescription_date: date
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    sales: List[LinkedSale] = []

    class Config:
        from_attributes = True

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class SupplierCreate(BaseModel):
    name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class SupplierResponse(BaseModel):
    id: UUID
    name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MedicineCreate(BaseModel):
    """Range checks live in catalogue_service so direct callers get them too."""
    name: str
    generic_name: Optional[str] = None
    category_id: Optional[UUID] = None
    supplier_id: Optional[UUID] = None
    batch_number: str
    unit_price: Decimal
    selling_price: Decimal
    quantity: int = 0
    reorder_level: Optional[int] = None
    expiry_date: Optional[date] = None
    manufacture_date: Optional[date] = None
    requires_prescription: bool = False


class MedicineUpdate(BaseModel):
    name: Optional[str] = None
    generic_name: Optional[str] = None
    category_id: Optional[UUID] = None
    supplier_id: Optional[UUID] = None
    batch_number: Optional[str] = None
    unit_price: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    quantity: Optional[int] = None
    reorder_level: Optional[int] = None
    expiry_date: Optional[date] = None
    manufacture_date: Optional[date] = None
    requires_prescription: Optional[bool] = None


class MedicineResponse(BaseModel):
    """Joined projection: medicine + category + supplier, with stock/expiry flags."""
    id: UUID
    name: str
    generic_name: Optional[str] = None
    category_id: Optional[UUID] = None
    category_name: Optional[str] = None
    supplier_id: Optional[UUID] = None
    supplier_name: Optional[str] = None
    batch_number: str
    unit_price: Decimal
    selling_price: Decimal
    quantity: int
    reorder_level: int
    expiry_date: date
    manufacture_date: Optional[date] = None
    requires_prescription: bool
    low_stock: bool
    expired: bool
    expiring_soon: bool
    updated_at: Optional[datetime] = None

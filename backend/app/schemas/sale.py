from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    CASH = "cash"
    MPESA = "mpesa"  # mobile money
    CARD = "card"
    INSURANCE = "insurance"


class SaleLineItem(BaseModel):
    medicine_id: UUID
    quantity: int


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[0-9\s-]*$")


class SaleCreate(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = Field(default=None, pattern=r"^\+?[0-9\s-]*$")
    payment_method: PaymentMethod = PaymentMethod.CASH
    prescription_id: Optional[UUID] = None
    line_items: List[SaleLineItem]


class SaleItemResponse(BaseModel):
    id: UUID
    medicine_id: UUID
    medicine_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class SaleResponse(BaseModel):
    """Sale header with its items and each item's medicine name."""
    id: UUID
    sale_number: str
    prescription_id: Optional[UUID] = None
    total_amount: Decimal
    payment_method: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    served_by: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[SaleItemResponse] = []

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class StockAdjustment(BaseModel):
    medicine_id: UUID
    delta: int
    reason: str
    kind: Optional[Literal["in", "adjustment", "expired"]] = None


class StockMovementResponse(BaseModel):
    id: UUID
    medicine_id: UUID
    movement_type: str
    quantity: int
    reason: Optional[str] = None
    reference_id: Optional[UUID] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

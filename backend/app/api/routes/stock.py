"""Stock: manual adjustments and the movement history."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.audit import AuditLog
from app.core.permissions import STOCK_MANAGERS, require_role
from app.models.user import User
from app.schemas.catalogue import MedicineResponse
from app.schemas.stock import StockAdjustment, StockMovementResponse
from app.services import catalogue_service, stock_movement_service

router = APIRouter()


@router.post("/adjustments", response_model=MedicineResponse)
def adjust_stock(
    data: StockAdjustment,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(*STOCK_MANAGERS, action="adjust", resource="stock")),
):
    """
    Receive, correct or write off stock.
    Positive delta adds units; negative removes them and never below zero.
    """
    catalogue_service.adjust_quantity(
        db, data.medicine_id, data.delta, data.reason, current_user.actor_id, kind=data.kind,
    )
    AuditLog.log_action(
        "adjust", "stock", data.medicine_id, current_user.actor_id,
        changes={"delta": data.delta, "kind": data.kind, "reason": data.reason},
    )
    return catalogue_service.present_medicine(catalogue_service.get_medicine(db, data.medicine_id))


@router.get("/movements", response_model=List[StockMovementResponse])
def list_movements(
    medicine_id: Optional[UUID] = Query(None),
    kind: Optional[str] = Query(None, description="in, out, adjustment or expired"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return stock_movement_service.list_movements(db, medicine_id=medicine_id, kind=kind, limit=limit)

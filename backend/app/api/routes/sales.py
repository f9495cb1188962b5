"""Sales: the point-of-sale write path and recent sales."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.models.user import User
from app.schemas.sale import CustomerInfo, SaleCreate, SaleResponse
from app.services import sale_service

router = APIRouter()


@router.post("", response_model=SaleResponse, status_code=201)
def create_sale(
    data: SaleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Record a sale. All lines succeed together or the sale is rejected."""
    sale = sale_service.record_sale(
        db,
        current_user.actor_id,
        CustomerInfo(name=data.customer_name, phone=data.customer_phone),
        data.payment_method,
        data.prescription_id,
        data.line_items,
    )
    return sale_service.present_sale(sale)


@router.get("", response_model=List[SaleResponse])
def list_sales(
    limit: int = Query(10, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Most recent sales first."""
    return [sale_service.present_sale(s) for s in sale_service.list_sales(db, limit=limit)]


@router.get("/{sale_id}", response_model=SaleResponse)
def get_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return sale_service.present_sale(sale_service.get_sale(db, sale_id))

"""Catalogue: medicines, categories, suppliers, and the inventory CSV export."""
import csv
import io
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.permissions import ADMINS, require_role
from app.models.user import User
from app.schemas.catalogue import (
    CategoryCreate,
    CategoryResponse,
    MedicineCreate,
    MedicineResponse,
    MedicineUpdate,
    SupplierCreate,
    SupplierResponse,
    SupplierUpdate,
)
from app.services import catalogue_service

router = APIRouter()


# ==============================================================================
# MEDICINES
# ==============================================================================

@router.get("/medicines", response_model=List[MedicineResponse])
def list_medicines(
    search: Optional[str] = Query(None),
    low_stock: bool = Query(False, description="Only items at or below their reorder level"),
    expiring_within: Optional[int] = Query(None, ge=0, description="Only items expiring within N days"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    medicines = catalogue_service.list_medicines(
        db, search=search, low_stock_only=low_stock, expiring_within_days=expiring_within,
    )
    return [catalogue_service.present_medicine(m) for m in medicines]


@router.get("/medicines/export")
def export_medicines_csv(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Export the catalogue as a CSV file."""
    medicines = catalogue_service.list_medicines(db)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "Name", "Generic Name", "Category", "Supplier", "Batch", "Quantity",
        "Reorder Level", "Unit Price", "Selling Price", "Expiry Date", "Requires Rx",
    ])
    for m in medicines:
        writer.writerow([
            m.name,
            m.generic_name or "",
            m.category.name if m.category else "",
            m.supplier.name if m.supplier else "",
            m.batch_number,
            m.quantity,
            m.reorder_level,
            m.unit_price,
            m.selling_price,
            m.expiry_date.isoformat(),
            "Yes" if m.requires_prescription else "No",
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=medicines_{date.today()}.csv"},
    )


@router.get("/medicines/{medicine_id}", response_model=MedicineResponse)
def get_medicine(
    medicine_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalogue_service.present_medicine(catalogue_service.get_medicine(db, medicine_id))


@router.post("/medicines", response_model=MedicineResponse, status_code=201)
def create_medicine(
    data: MedicineCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Add a catalogue entry; a non-zero quantity is booked as opening stock."""
    medicine = catalogue_service.upsert_medicine(db, data.model_dump(), current_user.actor_id)
    return catalogue_service.present_medicine(catalogue_service.get_medicine(db, medicine.id))


@router.patch("/medicines/{medicine_id}", response_model=MedicineResponse)
def update_medicine(
    medicine_id: UUID,
    updates: MedicineUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Partial update. Only the fields sent are changed."""
    catalogue_service.upsert_medicine(
        db, updates.model_dump(exclude_unset=True), current_user.actor_id, medicine_id=medicine_id,
    )
    return catalogue_service.present_medicine(catalogue_service.get_medicine(db, medicine_id))


@router.delete("/medicines/{medicine_id}")
def delete_medicine(
    medicine_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role(*ADMINS, action="delete", resource="medicine")),
):
    catalogue_service.delete_medicine(db, medicine_id, admin.actor_id)
    return {"message": "Medicine deleted", "id": str(medicine_id)}


# ==============================================================================
# CATEGORIES
# ==============================================================================

@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return catalogue_service.list_categories(db)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(
    data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalogue_service.create_category(db, data.name, data.description)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role(*ADMINS, action="delete", resource="category")),
):
    catalogue_service.delete_category(db, category_id, admin.actor_id)
    return {"message": "Category deleted", "id": str(category_id)}


# ==============================================================================
# SUPPLIERS
# ==============================================================================

@router.get("/suppliers", response_model=List[SupplierResponse])
def list_suppliers(
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalogue_service.list_suppliers(db, search=search)


@router.post("/suppliers", response_model=SupplierResponse, status_code=201)
def create_supplier(
    data: SupplierCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalogue_service.create_supplier(db, data.model_dump(), current_user.actor_id)


@router.patch("/suppliers/{supplier_id}", response_model=SupplierResponse)
def update_supplier(
    supplier_id: UUID,
    updates: SupplierUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalogue_service.update_supplier(
        db, supplier_id, updates.model_dump(exclude_unset=True), current_user.actor_id,
    )


@router.delete("/suppliers/{supplier_id}")
def delete_supplier(
    supplier_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role(*ADMINS, action="delete", resource="supplier")),
):
    catalogue_service.delete_supplier(db, supplier_id, admin.actor_id)
    return {"message": "Supplier deleted", "id": str(supplier_id)}

"""Prescriptions: register and look up."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.models.user import User
from app.schemas.prescription import PrescriptionCreate, PrescriptionResponse
from app.services import prescription_service

router = APIRouter()


@router.post("", response_model=PrescriptionResponse, status_code=201)
def create_prescription(
    data: PrescriptionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return prescription_service.record_prescription(db, current_user.actor_id, data.model_dump())


@router.get("", response_model=List[PrescriptionResponse])
def list_prescriptions(
    search: Optional[str] = Query(None, description="Number, patient or doctor"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return prescription_service.list_prescriptions(db, search=search, limit=limit)


@router.get("/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription(
    prescription_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return prescription_service.get_prescription(db, prescription_id)

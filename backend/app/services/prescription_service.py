"""
Prescription Register. Insert and read only: prescriptions are historical
records and no update or delete path exists.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.audit import AuditLog
from app.core.exceptions import (
    DuplicateIdentifier,
    LedgerError,
    ReferentialViolation,
    TransactionFailure,
    ValidationError,
)
from app.models.prescription import Prescription
from app.services.identifier_service import (
    PRESCRIPTION_SEQUENCE,
    is_generated_format,
    next_prescription_number,
)

logger = logging.getLogger(__name__)

_OPTIONAL_TEXT = ("patient_phone", "doctor_license", "notes")


def _required_text(fields: Dict[str, Any], field: str, label: str) -> str:
    value = (fields.get(field) or "").strip()
    if not value:
        raise ValidationError(field, f"{label} is required")
    return value


def record_prescription(db: Session, actor: str | None, fields: Dict[str, Any]) -> Prescription:
    """Store a prescription, generating its number when the caller gives none.

    Raises:
        ValidationError: missing patient name, doctor name or date, or a
            supplied number in the generated RX-YYYYMMDD-NNN form
        DuplicateIdentifier: the supplied prescription number is taken
    """
    patient_name = _required_text(fields, "patient_name", "Patient name")
    doctor_name = _required_text(fields, "doctor_name", "Doctor name")
    prescription_date = fields.get("prescription_date")
    if prescription_date is None:
        raise ValidationError("prescription_date", "Prescription date is required")
    if not isinstance(prescription_date, date):
        raise ValidationError("prescription_date", "Expected a calendar date")

    number = (fields.get("prescription_number") or "").strip() or None
    if number and is_generated_format(PRESCRIPTION_SEQUENCE, number):
        raise ValidationError(
            "prescription_number",
            "Numbers of the form RX-YYYYMMDD-NNN are reserved for generated prescriptions",
        )
    if number and db.query(Prescription.id).filter(Prescription.prescription_number == number).first():
        raise DuplicateIdentifier("Prescription", number)

    try:
        if number is None:
            number = next_prescription_number(db)
        prescription = Prescription(
            prescription_number=number,
            patient_name=patient_name,
            doctor_name=doctor_name,
            prescription_date=prescription_date,
            created_by=actor,
            **{k: (fields.get(k) or None) for k in _OPTIONAL_TEXT},
        )
        db.add(prescription)
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        raise DuplicateIdentifier("Prescription", number)
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure("Recording prescription", e)

    db.refresh(prescription)
    AuditLog.log_action("create", "prescription", prescription.id, actor,
                        changes={"prescription_number": number})
    logger.info(f"Recorded prescription {number}")
    return prescription


def get_prescription(db: Session, prescription_id: UUID) -> Prescription:
    prescription = (
        db.query(Prescription)
        .options(selectinload(Prescription.sales))
        .filter(Prescription.id == prescription_id)
        .first()
    )
    if prescription is None:
        raise ReferentialViolation("Prescription", prescription_id)
    return prescription


def list_prescriptions(db: Session, search: Optional[str] = None, limit: int = 50) -> List[Prescription]:
    q = db.query(Prescription).options(selectinload(Prescription.sales))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Prescription.prescription_number.ilike(pattern),
                Prescription.patient_name.ilike(pattern),
                Prescription.doctor_name.ilike(pattern),
            )
        )
    return (
        q.order_by(Prescription.prescription_date.desc(), Prescription.created_at.desc())
        .limit(limit)
        .all()
    )

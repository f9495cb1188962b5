"""
Catalogue Store: medicines, categories, suppliers, and stock levels.

STOCK MUTATION:
- adjust_quantity() is the only code path that changes Medicine.quantity
- it issues UPDATE ... SET quantity = quantity + :delta
  WHERE id = :id AND quantity + :delta >= 0
  and treats zero affected rows as InsufficientStock, so the check and the
  write are one statement and a stale read can never oversell
- every successful adjustment appends a StockMovement in the same transaction
"""
import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import (
    DuplicateIdentifier,
    InsufficientStock,
    LedgerError,
    ReferentialViolation,
    TransactionFailure,
    ValidationError,
)
from app.models.category import Category
from app.models.medicine import Medicine
from app.models.sale import SaleItem
from app.models.stock_movement import MOVEMENT_TYPES, StockMovement
from app.models.supplier import Supplier
from app.services import stock_movement_service

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Columns that may not be cleared once set
_REQUIRED_FIELDS = {
    "name": "Name",
    "batch_number": "Batch number",
    "unit_price": "Unit price",
    "selling_price": "Selling price",
    "expiry_date": "Expiry date",
    "quantity": "Quantity",
    "reorder_level": "Reorder level",
    "requires_prescription": "Prescription flag",
}
_MEDICINE_FIELDS = set(_REQUIRED_FIELDS) | {
    "generic_name",
    "category_id",
    "supplier_id",
    "manufacture_date",
}


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Convert to a two-place Decimal, rounding half up."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(field, f"'{value}' is not a valid amount")
    if not amount.is_finite():
        raise ValidationError(field, f"'{value}' is not a valid amount")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _is_whole_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_medicine_fields(fields: Dict[str, Any], creating: bool) -> Dict[str, Any]:
    unknown = set(fields) - _MEDICINE_FIELDS
    if unknown:
        raise ValidationError(sorted(unknown)[0], "Unknown medicine field")

    cleaned = dict(fields)
    if creating:
        for field in ("name", "batch_number", "unit_price", "selling_price", "expiry_date"):
            cleaned.setdefault(field, None)
        if cleaned.get("reorder_level") is None:
            cleaned["reorder_level"] = settings.DEFAULT_REORDER_LEVEL
        if cleaned.get("quantity") is None:
            cleaned["quantity"] = 0
        if cleaned.get("requires_prescription") is None:
            cleaned["requires_prescription"] = False

    for field, label in _REQUIRED_FIELDS.items():
        if field in cleaned and cleaned[field] is None:
            raise ValidationError(field, f"{label} is required")

    for field in ("name", "batch_number"):
        if field in cleaned:
            value = str(cleaned[field]).strip()
            if not value:
                raise ValidationError(field, f"{_REQUIRED_FIELDS[field]} cannot be empty")
            cleaned[field] = value
    if cleaned.get("generic_name") is not None:
        cleaned["generic_name"] = cleaned["generic_name"].strip() or None

    for field in ("unit_price", "selling_price"):
        if field in cleaned:
            amount = to_money(cleaned[field], field)
            if amount < 0:
                raise ValidationError(field, f"{_REQUIRED_FIELDS[field]} cannot be negative")
            cleaned[field] = amount

    for field in ("quantity", "reorder_level"):
        if field in cleaned:
            if not _is_whole_number(cleaned[field]):
                raise ValidationError(field, f"{_REQUIRED_FIELDS[field]} must be a whole number")
            if cleaned[field] < 0:
                raise ValidationError(field, f"{_REQUIRED_FIELDS[field]} cannot be negative")

    for field in ("expiry_date", "manufacture_date"):
        if cleaned.get(field) is not None and not isinstance(cleaned[field], date):
            raise ValidationError(field, "Expected a calendar date")
    return cleaned


def _check_references(db: Session, fields: Dict[str, Any]) -> None:
    if fields.get("category_id") is not None and db.get(Category, fields["category_id"]) is None:
        raise ReferentialViolation("Category", fields["category_id"])
    if fields.get("supplier_id") is not None and db.get(Supplier, fields["supplier_id"]) is None:
        raise ReferentialViolation("Supplier", fields["supplier_id"])


def upsert_medicine(
    db: Session,
    fields: Dict[str, Any],
    actor: str | None,
    medicine_id: UUID | None = None,
) -> Medicine:
    """Create a catalogue entry, or update one when medicine_id is given.

    Quantity is never assigned directly: a new entry starts at zero and
    receives an "in" movement for its opening stock; an edited quantity is
    applied as an "adjustment" for the difference against the stored
    quantity, read inside this transaction after the row is locked.
    """
    creating = medicine_id is None
    cleaned = _validate_medicine_fields(fields, creating)

    medicine = None
    if not creating:
        medicine = db.get(Medicine, medicine_id)
        if medicine is None:
            raise ReferentialViolation("Medicine", medicine_id)
    _check_references(db, cleaned)

    expiry = cleaned.get("expiry_date", medicine.expiry_date if medicine else None)
    manufactured = cleaned.get("manufacture_date", medicine.manufacture_date if medicine else None)
    if manufactured and expiry and manufactured > expiry:
        raise ValidationError("manufacture_date", "Manufacture date is after the expiry date")

    target_quantity = cleaned.pop("quantity", None)
    try:
        if creating:
            medicine = Medicine(quantity=0, **cleaned)
            db.add(medicine)
            db.flush()
            if target_quantity:
                adjust_quantity(
                    db, medicine.id, target_quantity, "initial stock", actor,
                    kind="in", auto_commit=False,
                )
        else:
            for key, value in cleaned.items():
                setattr(medicine, key, value)
            if target_quantity is not None:
                # Write the row before reading its quantity so no sale can commit in between
                medicine.updated_at = func.now()
            db.flush()
            if target_quantity is not None:
                current = db.query(Medicine.quantity).filter(Medicine.id == medicine.id).scalar()
                if target_quantity != current:
                    adjust_quantity(
                        db, medicine.id, target_quantity - current, "manual adjustment", actor,
                        kind="adjustment", auto_commit=False,
                    )
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure("Saving medicine", e)

    db.refresh(medicine)
    AuditLog.log_action(
        "create" if creating else "update", "medicine", medicine.id, actor,
        changes={k: v for k, v in fields.items() if k != "quantity"} or None,
    )
    logger.info(f"{'Created' if creating else 'Updated'} medicine {medicine.id} ({medicine.name})")
    return medicine


def adjust_quantity(
    db: Session,
    medicine_id: UUID,
    delta: int,
    reason: str | None,
    actor: str | None,
    kind: str | None = None,
    reference_id: UUID | None = None,
    auto_commit: bool = True,
) -> Medicine:
    """Apply a signed quantity change and log it as a StockMovement.

    Args:
        kind: movement type; defaults to "in" for positive and "adjustment"
            for negative deltas
        auto_commit: If True, commits (or rolls back) here. If False, the
            caller owns the transaction and must roll back on error.

    Raises:
        InsufficientStock: the change would take quantity below zero
        ReferentialViolation: unknown medicine
        ValidationError: zero delta, or a kind/sign mismatch
    """
    if not _is_whole_number(delta):
        raise ValidationError("delta", "Quantity change must be a whole number")
    if delta == 0:
        raise ValidationError("delta", "Quantity change cannot be zero")
    kind = kind or ("in" if delta > 0 else "adjustment")
    if kind not in MOVEMENT_TYPES:
        raise ValidationError("kind", f"Unknown movement kind '{kind}'")
    if kind == "in" and delta < 0:
        raise ValidationError("delta", "Inbound stock must increase the quantity")
    if kind in ("out", "expired") and delta > 0:
        raise ValidationError("delta", f"'{kind}' movements must reduce the quantity")

    try:
        medicine = db.get(Medicine, medicine_id)
        if medicine is None:
            raise ReferentialViolation("Medicine", medicine_id)

        result = db.execute(
            update(Medicine)
            .where(Medicine.id == medicine_id, Medicine.quantity + delta >= 0)
            .values(quantity=Medicine.quantity + delta, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = db.query(Medicine.quantity).filter(Medicine.id == medicine_id).scalar()
            raise InsufficientStock(medicine_id, -delta, available)

        stock_movement_service.append(db, medicine_id, kind, delta, reason, reference_id, actor)
        if auto_commit:
            db.commit()
    except LedgerError:
        if auto_commit:
            db.rollback()
        raise
    except SQLAlchemyError as e:
        if auto_commit:
            db.rollback()
        raise TransactionFailure("Stock adjustment", e)

    db.refresh(medicine)
    return medicine


def delete_medicine(db: Session, medicine_id: UUID, actor: str | None) -> None:
    """Hard delete, allowed only for entries with no sales or stock history."""
    medicine = db.get(Medicine, medicine_id)
    if medicine is None:
        raise ReferentialViolation("Medicine", medicine_id)
    if db.query(SaleItem.id).filter(SaleItem.medicine_id == medicine_id).first():
        raise ReferentialViolation.still_referenced("Medicine", medicine_id, "sale items")
    if db.query(StockMovement.id).filter(StockMovement.medicine_id == medicine_id).first():
        raise ReferentialViolation.still_referenced("Medicine", medicine_id, "stock movements")

    name = medicine.name
    db.delete(medicine)
    _commit_or_fail(db, "Deleting medicine")
    AuditLog.log_action("delete", "medicine", medicine_id, actor, changes={"name": name})


def get_medicine(db: Session, medicine_id: UUID) -> Medicine:
    medicine = (
        db.query(Medicine)
        .options(joinedload(Medicine.category), joinedload(Medicine.supplier))
        .filter(Medicine.id == medicine_id)
        .first()
    )
    if medicine is None:
        raise ReferentialViolation("Medicine", medicine_id)
    return medicine


def list_medicines(
    db: Session,
    search: Optional[str] = None,
    low_stock_only: bool = False,
    expiring_within_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Medicine]:
    today = today or date.today()
    q = db.query(Medicine).options(joinedload(Medicine.category), joinedload(Medicine.supplier))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Medicine.name.ilike(pattern),
                Medicine.generic_name.ilike(pattern),
                Medicine.batch_number.ilike(pattern),
            )
        )
    if low_stock_only:
        q = q.filter(Medicine.quantity <= Medicine.reorder_level)
    if expiring_within_days is not None:
        q = q.filter(
            Medicine.expiry_date >= today,
            Medicine.expiry_date <= today + timedelta(days=expiring_within_days),
        )
    return q.order_by(Medicine.name).all()


def present_medicine(medicine: Medicine, today: Optional[date] = None) -> Dict[str, Any]:
    """Joined read projection with derived status flags."""
    today = today or date.today()
    expired = medicine.expiry_date < today
    return {
        "id": medicine.id,
        "name": medicine.name,
        "generic_name": medicine.generic_name,
        "category_id": medicine.category_id,
        "category_name": medicine.category.name if medicine.category else None,
        "supplier_id": medicine.supplier_id,
        "supplier_name": medicine.supplier.name if medicine.supplier else None,
        "batch_number": medicine.batch_number,
        "unit_price": medicine.unit_price,
        "selling_price": medicine.selling_price,
        "quantity": medicine.quantity,
        "reorder_level": medicine.reorder_level,
        "expiry_date": medicine.expiry_date,
        "manufacture_date": medicine.manufacture_date,
        "requires_prescription": bool(medicine.requires_prescription),
        "low_stock": medicine.is_low_stock,
        "expired": expired,
        "expiring_soon": not expired
        and medicine.expiry_date <= today + timedelta(days=settings.EXPIRY_WARNING_DAYS),
        "updated_at": medicine.updated_at,
    }


# ==============================================================================
# CATEGORIES
# ==============================================================================

def create_category(db: Session, name: str, description: str | None = None) -> Category:
    """Create a category. Names are unique, compared exactly as stored."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name", "Category name cannot be empty")
    if db.query(Category.id).filter(Category.name == name).first():
        raise DuplicateIdentifier("Category", name)

    category = Category(name=name, description=description)
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same name
        db.rollback()
        raise DuplicateIdentifier("Category", name)
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure("Creating category", e)
    db.refresh(category)
    return category


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()


def delete_category(db: Session, category_id: UUID, actor: str | None) -> None:
    category = db.get(Category, category_id)
    if category is None:
        raise ReferentialViolation("Category", category_id)
    if db.query(Medicine.id).filter(Medicine.category_id == category_id).first():
        raise ReferentialViolation.still_referenced("Category", category_id, "medicines")
    name = category.name
    db.delete(category)
    _commit_or_fail(db, "Deleting category")
    AuditLog.log_action("delete", "category", category_id, actor, changes={"name": name})


# ==============================================================================
# SUPPLIERS
# ==============================================================================

_SUPPLIER_FIELDS = ("name", "contact_person", "phone", "email", "address")


def _clean_supplier_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {k: v for k, v in fields.items() if k in _SUPPLIER_FIELDS}
    if "name" in cleaned:
        if cleaned["name"] is None or not cleaned["name"].strip():
            raise ValidationError("name", "Supplier name cannot be empty")
        cleaned["name"] = cleaned["name"].strip()
    return cleaned


def create_supplier(db: Session, fields: Dict[str, Any], actor: str | None) -> Supplier:
    cleaned = _clean_supplier_fields({"name": None, **fields})
    supplier = Supplier(**cleaned)
    db.add(supplier)
    _commit_or_fail(db, "Creating supplier")
    db.refresh(supplier)
    AuditLog.log_action("create", "supplier", supplier.id, actor)
    return supplier


def update_supplier(db: Session, supplier_id: UUID, fields: Dict[str, Any], actor: str | None) -> Supplier:
    supplier = get_supplier(db, supplier_id)
    for key, value in _clean_supplier_fields(fields).items():
        setattr(supplier, key, value)
    _commit_or_fail(db, "Updating supplier")
    db.refresh(supplier)
    AuditLog.log_action("update", "supplier", supplier.id, actor, changes=fields or None)
    return supplier


def get_supplier(db: Session, supplier_id: UUID) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise ReferentialViolation("Supplier", supplier_id)
    return supplier


def list_suppliers(db: Session, search: Optional[str] = None) -> List[Supplier]:
    q = db.query(Supplier)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(pattern), Supplier.contact_person.ilike(pattern)))
    return q.order_by(Supplier.name).all()


def delete_supplier(db: Session, supplier_id: UUID, actor: str | None) -> None:
    supplier = get_supplier(db, supplier_id)
    if db.query(Medicine.id).filter(Medicine.supplier_id == supplier_id).first():
        raise ReferentialViolation.still_referenced("Supplier", supplier_id, "medicines")
    name = supplier.name
    db.delete(supplier)
    _commit_or_fail(db, "Deleting supplier")
    AuditLog.log_action("delete", "supplier", supplier_id, actor, changes={"name": name})


def _commit_or_fail(db: Session, operation: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ReferentialViolation(operation, "-", f"{operation} violates a database constraint", in_use=True) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure(operation, e)

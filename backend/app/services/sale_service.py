"""
Sale Transaction Processor.

ATOMICITY (the rule everything else here serves):
- header, line items, stock decrements and stock movements commit together
- if any line fails its stock check, nothing is persisted: no sale row, no
  items, no movements, no quantity change, no consumed sale number
- stock sufficiency is decided by the conditional UPDATE inside
  catalogue_service.adjust_quantity at commit time, never by the quantity the
  cashier saw when building the cart
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import (
    DuplicateIdentifier,
    EmptyLineItems,
    LedgerError,
    PrescriptionAlreadyUsed,
    PrescriptionRequired,
    ReferentialViolation,
    TransactionFailure,
    ValidationError,
)
from app.models.medicine import Medicine
from app.models.prescription import Prescription
from app.models.sale import PAYMENT_METHODS, Sale, SaleItem
from app.schemas.sale import CustomerInfo, SaleLineItem
from app.services.catalogue_service import adjust_quantity, to_money
from app.services.identifier_service import next_sale_number

logger = logging.getLogger(__name__)


def _validate_lines(line_items: List[SaleLineItem]) -> None:
    if not line_items:
        raise EmptyLineItems()
    for index, line in enumerate(line_items):
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"line_items[{index}].quantity", "Quantity must be a positive whole number")


def _payment_method_value(payment_method) -> str:
    value = getattr(payment_method, "value", payment_method)
    if value not in PAYMENT_METHODS:
        raise ValidationError(
            "payment_method",
            f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}",
        )
    return value


def record_sale(
    db: Session,
    actor: str | None,
    customer: Optional[CustomerInfo],
    payment_method,
    prescription_id: Optional[UUID],
    line_items: Iterable[SaleLineItem],
) -> Sale:
    """Record a sale and decrement stock for every line, all or nothing.

    Unit prices are captured from each medicine's selling price as of this
    call and stored on the line; later price edits never change the sale.

    Returns:
        The committed Sale, items loaded.

    Raises:
        EmptyLineItems: no lines
        ValidationError: bad quantity or payment method
        PrescriptionRequired: a prescription-only medicine with no prescription
        PrescriptionAlreadyUsed: the prescription was already dispensed by another sale
        ReferentialViolation: unknown medicine or prescription
        InsufficientStock: first line whose quantity exceeds the stock on hand
        TransactionFailure: storage fault; nothing was committed
    """
    line_items = list(line_items)
    _validate_lines(line_items)
    method = _payment_method_value(payment_method)
    customer = customer or CustomerInfo()

    if prescription_id is not None:
        if db.get(Prescription, prescription_id) is None:
            raise ReferentialViolation("Prescription", prescription_id)
        linked = db.query(Sale.sale_number).filter(Sale.prescription_id == prescription_id).limit(1).scalar()
        if linked:
            raise PrescriptionAlreadyUsed(prescription_id, linked)

    # Price snapshot, read before the write transaction starts
    priced = []
    for line in line_items:
        medicine = db.get(Medicine, line.medicine_id)
        if medicine is None:
            raise ReferentialViolation("Medicine", line.medicine_id)
        if settings.ENFORCE_PRESCRIPTIONS and medicine.requires_prescription and prescription_id is None:
            raise PrescriptionRequired(medicine.id, medicine.name)
        unit_price = to_money(medicine.selling_price, "unit_price")
        priced.append((line, unit_price, to_money(unit_price * line.quantity, "total_price")))

    total = sum((line_total for _, _, line_total in priced), Decimal("0.00"))
    sale_number = None
    try:
        sale_number = next_sale_number(db)
        sale = Sale(
            sale_number=sale_number,
            prescription_id=prescription_id,
            total_amount=total,
            payment_method=method,
            customer_name=(customer.name or "").strip() or None,
            customer_phone=(customer.phone or "").strip() or None,
            served_by=actor,
        )
        db.add(sale)
        db.flush()

        for line, unit_price, line_total in priced:
            db.add(SaleItem(
                sale_id=sale.id,
                medicine_id=line.medicine_id,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=line_total,
            ))
        db.flush()

        for line, _, _ in priced:
            adjust_quantity(
                db, line.medicine_id, -line.quantity, "sale", actor,
                kind="out", reference_id=sale.id, auto_commit=False,
            )
        db.commit()
    except LedgerError as e:
        db.rollback()
        logger.info(f"Sale rejected, rolled back: {e.message}")
        raise
    except IntegrityError as e:
        db.rollback()
        if "sale_number" in str(e.orig):
            logger.warning(f"Sale number collision on {sale_number}")
            raise DuplicateIdentifier("Sale", sale_number)
        if "prescription_id" in str(e.orig):
            # Lost a race with a concurrent sale on the same prescription
            raise PrescriptionAlreadyUsed(prescription_id)
        raise TransactionFailure("Recording sale", e)
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure("Recording sale", e)

    sale = get_sale(db, sale.id)
    AuditLog.log_action(
        "create", "sale", sale.id, actor,
        changes={"sale_number": sale.sale_number, "total_amount": str(sale.total_amount), "lines": len(priced)},
    )
    logger.info(f"Recorded sale {sale.sale_number}: {len(priced)} line(s), total {sale.total_amount}")
    return sale


def get_sale(db: Session, sale_id: UUID) -> Sale:
    sale = (
        db.query(Sale)
        .options(selectinload(Sale.items).joinedload(SaleItem.medicine))
        .filter(Sale.id == sale_id)
        .first()
    )
    if sale is None:
        raise ReferentialViolation("Sale", sale_id)
    return sale


def list_sales(db: Session, limit: int = 10) -> List[Sale]:
    return (
        db.query(Sale)
        .options(selectinload(Sale.items).joinedload(SaleItem.medicine))
        .order_by(Sale.created_at.desc())
        .limit(limit)
        .all()
    )


def present_sale(sale: Sale) -> dict:
    """Sale + items + each item's medicine name."""
    return {
        "id": sale.id,
        "sale_number": sale.sale_number,
        "prescription_id": sale.prescription_id,
        "total_amount": sale.total_amount,
        "payment_method": sale.payment_method,
        "customer_name": sale.customer_name,
        "customer_phone": sale.customer_phone,
        "served_by": sale.served_by,
        "created_at": sale.created_at,
        "items": [
            {
                "id": item.id,
                "medicine_id": item.medicine_id,
                "medicine_name": item.medicine.name if item.medicine else None,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            }
            for item in sale.items
        ],
    }

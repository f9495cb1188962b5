"""Sale transaction processor: totals, atomicity, concurrency, prescriptions."""
import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.config import settings
from app.core.exceptions import (
    EmptyLineItems,
    InsufficientStock,
    PrescriptionAlreadyUsed,
    PrescriptionRequired,
    ReferentialViolation,
    ValidationError,
)
from app.models.medicine import Medicine
from app.models.sale import Sale, SaleItem
from app.models.stock_movement import StockMovement
from app.schemas.sale import CustomerInfo, SaleLineItem
from app.services import prescription_service, sale_service


def _line(medicine, quantity):
    return SaleLineItem(medicine_id=medicine.id, quantity=quantity)


def _quantity(db, medicine_id):
    db.expire_all()
    return db.get(Medicine, medicine_id).quantity


# ==============================================================================
# AMOXICILLIN SCENARIOS
# ==============================================================================

def test_sale_decrements_stock_and_logs_movement(db, amoxicillin, actor):
    sale = sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, 5)])

    assert sale.total_amount == Decimal("250.00")
    assert sale.served_by == actor
    assert sale.sale_number.startswith("SALE-")
    assert _quantity(db, amoxicillin.id) == 15

    outs = db.query(StockMovement).filter(StockMovement.movement_type == "out").all()
    assert len(outs) == 1
    assert outs[0].quantity == -5
    assert outs[0].reference_id == sale.id
    assert outs[0].created_by == actor


def test_oversell_leaves_no_trace(db, amoxicillin, actor):
    movements_before = db.query(StockMovement).count()

    with pytest.raises(InsufficientStock) as exc:
        sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, 25)])

    assert exc.value.medicine_id == amoxicillin.id
    assert exc.value.requested == 25
    assert exc.value.available == 20
    assert _quantity(db, amoxicillin.id) == 20
    assert db.query(Sale).count() == 0
    assert db.query(SaleItem).count() == 0
    assert db.query(StockMovement).count() == movements_before


# ==============================================================================
# TOTALS & PRICE SNAPSHOT
# ==============================================================================

def test_total_equals_sum_of_line_totals(db, amoxicillin, make_medicine, actor):
    syrup = make_medicine(selling_price="12.35", quantity=10)
    sale = sale_service.record_sale(
        db, actor, CustomerInfo(name="  Wanjiku ", phone="+254 700 000000"), "mpesa", None,
        [_line(amoxicillin, 2), _line(syrup, 3)],
    )

    assert sale.total_amount == Decimal("137.05")
    assert sale.total_amount == sum(i.total_price for i in sale.items)
    for item in sale.items:
        assert item.total_price == item.unit_price * item.quantity
    assert sale.customer_name == "Wanjiku"
    assert sale.payment_method == "mpesa"


def test_price_change_does_not_rewrite_history(db, amoxicillin, actor):
    from app.services import catalogue_service

    sale = sale_service.record_sale(db, actor, None, "card", None, [_line(amoxicillin, 1)])
    catalogue_service.upsert_medicine(db, {"selling_price": "80.00"}, actor, medicine_id=amoxicillin.id)

    reloaded = sale_service.get_sale(db, sale.id)
    assert reloaded.items[0].unit_price == Decimal("50.00")
    assert reloaded.total_amount == Decimal("50.00")


def test_present_sale_includes_medicine_names(db, amoxicillin, actor):
    sale = sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, 1)])
    view = sale_service.present_sale(sale)
    assert view["items"][0]["medicine_name"] == "Amoxicillin"
    assert [s.id for s in sale_service.list_sales(db)] == [sale.id]


# ==============================================================================
# ATOMICITY
# ==============================================================================

def test_mixed_batch_rolls_back_entirely(db, amoxicillin, make_medicine, actor):
    scarce = make_medicine(name="Scarce", quantity=2)
    movements_before = db.query(StockMovement).count()

    with pytest.raises(InsufficientStock) as exc:
        sale_service.record_sale(
            db, actor, None, "cash", None, [_line(amoxicillin, 4), _line(scarce, 3)],
        )

    assert exc.value.medicine_id == scarce.id
    assert _quantity(db, amoxicillin.id) == 20
    assert _quantity(db, scarce.id) == 2
    assert db.query(Sale).count() == 0
    assert db.query(StockMovement).count() == movements_before


def test_failed_sale_releases_its_number(db, amoxicillin, actor):
    with pytest.raises(InsufficientStock):
        sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, 99)])
    sale = sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, 1)])
    assert sale.sale_number.endswith("-0001")


def test_same_medicine_on_two_lines_is_checked_cumulatively(db, amoxicillin, actor):
    with pytest.raises(InsufficientStock):
        sale_service.record_sale(
            db, actor, None, "cash", None, [_line(amoxicillin, 15), _line(amoxicillin, 6)],
        )
    assert _quantity(db, amoxicillin.id) == 20


# ==============================================================================
# VALIDATION
# ==============================================================================

def test_empty_sale_is_rejected(db, actor):
    with pytest.raises(EmptyLineItems):
        sale_service.record_sale(db, actor, None, "cash", None, [])


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantity_is_rejected(db, amoxicillin, actor, quantity):
    with pytest.raises(ValidationError) as exc:
        sale_service.record_sale(db, actor, None, "cash", None, [_line(amoxicillin, quantity)])
    assert exc.value.field == "line_items[0].quantity"
    assert _quantity(db, amoxicillin.id) == 20


def test_unknown_payment_method(db, amoxicillin, actor):
    with pytest.raises(ValidationError) as exc:
        sale_service.record_sale(db, actor, None, "cheque", None, [_line(amoxicillin, 1)])
    assert exc.value.field == "payment_method"


def test_unknown_medicine(db, actor):
    with pytest.raises(ReferentialViolation):
        sale_service.record_sale(db, actor, None, "cash", None, [SaleLineItem(medicine_id=uuid4(), quantity=1)])
    assert db.query(Sale).count() == 0


def test_unknown_prescription(db, amoxicillin, actor):
    with pytest.raises(ReferentialViolation):
        sale_service.record_sale(db, actor, None, "cash", uuid4(), [_line(amoxicillin, 1)])


# ==============================================================================
# PRESCRIPTION-ONLY MEDICINES
# ==============================================================================

def test_prescription_only_medicine_needs_prescription(db, make_medicine, actor):
    antibiotic = make_medicine(name="Ciprofloxacin", requires_prescription=True)
    with pytest.raises(PrescriptionRequired) as exc:
        sale_service.record_sale(db, actor, None, "cash", None, [_line(antibiotic, 1)])
    assert exc.value.medicine_id == antibiotic.id

    rx = prescription_service.record_prescription(db, actor, {
        "patient_name": "Otieno", "doctor_name": "Dr. Achieng", "prescription_date": date.today(),
    })
    sale = sale_service.record_sale(db, actor, None, "insurance", rx.id, [_line(antibiotic, 1)])
    assert sale.prescription_id == rx.id
    assert [s.id for s in prescription_service.get_prescription(db, rx.id).sales] == [sale.id]


def test_prescription_check_can_be_disabled(db, make_medicine, actor, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_PRESCRIPTIONS", False)
    antibiotic = make_medicine(requires_prescription=True)
    sale = sale_service.record_sale(db, actor, None, "cash", None, [_line(antibiotic, 1)])
    assert sale.prescription_id is None


# ==============================================================================
# CONCURRENCY
# ==============================================================================

def test_concurrent_sales_cannot_oversell(session_factory, make_medicine, actor):
    """Two cashiers sell 3 of the last 5 at the same moment: one wins."""
    medicine = make_medicine(quantity=5)
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def sell():
        session = session_factory()
        try:
            barrier.wait()
            sale_service.record_sale(session, actor, None, "cash", None, [_line(medicine, 3)])
            outcome = "ok"
        except InsufficientStock:
            outcome = "insufficient"
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=sell) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == ["insufficient", "ok"]
    check = session_factory()
    try:
        assert check.get(Medicine, medicine.id).quantity == 2
        assert check.query(Sale).count() == 1
    finally:
        check.close()


def test_prescription_is_dispensed_by_one_sale_only(db, make_medicine, actor):
    antibiotic = make_medicine(name="Azithromycin", requires_prescription=True)
    rx = prescription_service.record_prescription(db, actor, {
        "patient_name": "Kiprop", "doctor_name": "Dr. Mutua", "prescription_date": date.today(),
    })
    first = sale_service.record_sale(db, actor, None, "cash", rx.id, [_line(antibiotic, 1)])

    with pytest.raises(PrescriptionAlreadyUsed) as exc:
        sale_service.record_sale(db, actor, None, "cash", rx.id, [_line(antibiotic, 1)])

    assert first.sale_number in exc.value.message
    assert db.query(Sale).filter(Sale.prescription_id == rx.id).count() == 1
    assert _quantity(db, antibiotic.id) == 9


def test_database_refuses_second_sale_on_prescription(db, actor):
    """The unique constraint backs up the pre-check."""
    from sqlalchemy.exc import IntegrityError

    rx = prescription_service.record_prescription(db, actor, {
        "patient_name": "Kiprop", "doctor_name": "Dr. Mutua", "prescription_date": date.today(),
    })
    for number in ("SALE-A", "SALE-B"):
        db.add(Sale(sale_number=number, prescription_id=rx.id, total_amount=Decimal("0.00"), payment_method="cash"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

"""HTTP layer: routing, role checks, and mapping of ledger errors to status codes."""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from app.db.init_db import DEFAULT_ADMIN_EMAIL, init_db
from app.models.identifier_sequence import IdentifierSequence
from app.models.user import User
from app.services import sale_service


def _medicine_payload(**overrides):
    payload = {
        "name": "Paracetamol 500mg",
        "batch_number": "PCM-01",
        "unit_price": "2.00",
        "selling_price": "5.00",
        "quantity": 100,
        "expiry_date": (date.today() + timedelta(days=400)).isoformat(),
    }
    payload.update(overrides)
    return payload


def test_health(anon_client):
    assert anon_client.get("/health").json()["status"] == "ok"


def test_init_db_is_idempotent(engine, db):
    init_db(bind=engine)
    init_db(bind=engine)
    admins = db.query(User).all()
    assert [(u.email, u.role) for u in admins] == [(DEFAULT_ADMIN_EMAIL, "admin")]
    assert db.query(IdentifierSequence).count() == 2


def test_routes_require_authentication(anon_client):
    assert anon_client.get("/catalogue/medicines").status_code == 401
    assert anon_client.post("/sales", json={"line_items": []}).status_code == 401


# ==============================================================================
# AUTH
# ==============================================================================

def test_register_login_me(anon_client):
    r = anon_client.post("/auth/register", json={
        "email": "cashier@pharmacy.co.ke", "password": "Counter#2025", "full_name": "Amina Hassan",
    })
    assert r.status_code == 200
    assert r.json()["role"] == "cashier"

    r = anon_client.post("/auth/login", json={"email": "cashier@pharmacy.co.ke", "password": "Counter#2025"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    me = anon_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "cashier@pharmacy.co.ke"


def test_login_with_wrong_password(anon_client):
    anon_client.post("/auth/register", json={
        "email": "x@pharmacy.co.ke", "password": "Correct#123", "full_name": "X",
    })
    r = anon_client.post("/auth/login", json={"email": "x@pharmacy.co.ke", "password": "wrong-one"})
    assert r.status_code == 401


def test_register_rejects_short_password_and_duplicates(anon_client):
    short = anon_client.post("/auth/register", json={
        "email": "y@pharmacy.co.ke", "password": "abc", "full_name": "Y",
    })
    assert short.status_code == 400

    body = {"email": "y@pharmacy.co.ke", "password": "LongEnough1", "full_name": "Y"}
    assert anon_client.post("/auth/register", json=body).status_code == 200
    assert anon_client.post("/auth/register", json=body).status_code == 409


def test_invalid_token_is_rejected(anon_client):
    r = anon_client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


def test_admin_changes_role(client_for):
    cashier = client_for("cashier")
    cashier_id = cashier.get("/auth/me").json()["id"]
    admin = client_for("admin")
    r = admin.patch(f"/auth/users/{cashier_id}/role", json={"role": "pharmacist"})
    assert r.status_code == 200
    assert r.json()["role"] == "pharmacist"


# ==============================================================================
# CATALOGUE
# ==============================================================================

def test_create_and_fetch_medicine(client):
    r = client.post("/catalogue/medicines", json=_medicine_payload())
    assert r.status_code == 201
    body = r.json()
    assert body["quantity"] == 100
    assert body["low_stock"] is False
    assert Decimal(body["selling_price"]) == Decimal("5.00")

    fetched = client.get(f"/catalogue/medicines/{body['id']}")
    assert fetched.json()["name"] == "Paracetamol 500mg"


def test_negative_quantity_is_422_with_field(client):
    r = client.post("/catalogue/medicines", json=_medicine_payload(quantity=-1))
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"
    assert r.json()["field"] == "quantity"


def test_missing_expiry_is_422(client):
    r = client.post("/catalogue/medicines", json=_medicine_payload(expiry_date=None))
    assert r.status_code == 422
    assert r.json()["field"] == "expiry_date"


def test_unknown_medicine_is_404(client):
    r = client.get(f"/catalogue/medicines/{uuid4()}")
    assert r.status_code == 404
    assert r.json()["error"] == "referential_violation"


def test_duplicate_category_is_409(client):
    assert client.post("/catalogue/categories", json={"name": "Antibiotics"}).status_code == 201
    r = client.post("/catalogue/categories", json={"name": "Antibiotics"})
    assert r.status_code == 409
    assert r.json()["error"] == "duplicate_identifier"
    assert len(client.get("/catalogue/categories").json()) == 1


def test_delete_requires_admin(client_for, amoxicillin):
    cashier = client_for("cashier")
    assert cashier.delete(f"/catalogue/medicines/{amoxicillin.id}").status_code == 403


def test_delete_with_history_is_409(client, amoxicillin):
    r = client.delete(f"/catalogue/medicines/{amoxicillin.id}")
    assert r.status_code == 409
    assert r.json()["error"] == "referential_violation"


def test_supplier_endpoints(client):
    created = client.post("/catalogue/suppliers", json={"name": "Medisel", "phone": "0700 100200"})
    assert created.status_code == 201
    supplier_id = created.json()["id"]
    updated = client.patch(f"/catalogue/suppliers/{supplier_id}", json={"contact_person": "Grace"})
    assert updated.json()["contact_person"] == "Grace"
    assert client.delete(f"/catalogue/suppliers/{supplier_id}").status_code == 200


def test_csv_export(client, amoxicillin):
    r = client.get("/catalogue/medicines/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.strip().splitlines()
    assert lines[0].startswith("Name,")
    assert lines[1].startswith("Amoxicillin,")


# ==============================================================================
# STOCK
# ==============================================================================

def test_cashier_cannot_adjust_stock(client_for, amoxicillin):
    cashier = client_for("cashier")
    r = cashier.post("/stock/adjustments", json={
        "medicine_id": str(amoxicillin.id), "delta": 5, "reason": "delivery",
    })
    assert r.status_code == 403


def test_pharmacist_adjusts_stock(client_for, amoxicillin):
    pharmacist = client_for("pharmacist")
    r = pharmacist.post("/stock/adjustments", json={
        "medicine_id": str(amoxicillin.id), "delta": 5, "reason": "delivery", "kind": "in",
    })
    assert r.status_code == 200
    assert r.json()["quantity"] == 25

    movements = pharmacist.get("/stock/movements", params={"medicine_id": str(amoxicillin.id)}).json()
    assert sorted(m["quantity"] for m in movements) == [5, 20]


def test_write_off_below_zero_is_409(client, amoxicillin):
    r = client.post("/stock/adjustments", json={
        "medicine_id": str(amoxicillin.id), "delta": -21, "reason": "expired batch", "kind": "expired",
    })
    assert r.status_code == 409
    assert r.json()["available"] == 20


# ==============================================================================
# SALES
# ==============================================================================

def test_sale_round_trip(client, amoxicillin):
    r = client.post("/sales", json={
        "customer_name": "Wanjiku",
        "payment_method": "mpesa",
        "line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 5}],
    })
    assert r.status_code == 201
    sale = r.json()
    assert Decimal(sale["total_amount"]) == Decimal("250.00")
    assert sale["items"][0]["medicine_name"] == "Amoxicillin"

    assert client.get(f"/sales/{sale['id']}").json()["sale_number"] == sale["sale_number"]
    assert [s["id"] for s in client.get("/sales").json()] == [sale["id"]]


def test_oversell_is_409_with_medicine(client, amoxicillin):
    r = client.post("/sales", json={"line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 25}]})
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "insufficient_stock"
    assert body["medicine_id"] == str(amoxicillin.id)
    assert body["requested"] == 25


def test_empty_sale_is_422(client):
    r = client.post("/sales", json={"line_items": []})
    assert r.status_code == 422
    assert r.json()["error"] == "empty_line_items"


def test_unknown_payment_method_is_422(client, amoxicillin):
    r = client.post("/sales", json={
        "payment_method": "cheque",
        "line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 1}],
    })
    assert r.status_code == 422


def test_storage_fault_is_503(client, amoxicillin, monkeypatch):
    def broken(db, on=None):
        raise OperationalError("UPDATE identifier_sequences", {}, Exception("database is locked"))

    monkeypatch.setattr(sale_service, "next_sale_number", broken)
    r = client.post("/sales", json={"line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 1}]})
    assert r.status_code == 503
    assert r.json()["error"] == "transaction_failure"
    assert "locked" not in r.text


# ==============================================================================
# PRESCRIPTIONS & DASHBOARD
# ==============================================================================

def test_prescription_endpoints(client):
    r = client.post("/prescriptions", json={
        "patient_name": "Mary Njeri",
        "doctor_name": "Dr. Kamau",
        "prescription_date": date.today().isoformat(),
    })
    assert r.status_code == 201
    rx = r.json()
    assert rx["prescription_number"].startswith("RX-")
    assert rx["sales"] == []

    assert client.get(f"/prescriptions/{rx['id']}").json()["patient_name"] == "Mary Njeri"
    assert len(client.get("/prescriptions", params={"search": "kamau"}).json()) == 1


def test_prescription_without_date_is_422(client):
    r = client.post("/prescriptions", json={"patient_name": "A", "doctor_name": "B"})
    assert r.status_code == 422
    assert r.json()["field"] == "prescription_date"


def test_dashboard_endpoints(client, amoxicillin):
    client.post("/sales", json={"line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 2}]})

    summary = client.get("/dashboard/summary").json()
    assert summary["total_medicines"] == 1
    assert summary["today_sales"] == 1

    days = client.get("/dashboard/daily-sales", params={"days": 3}).json()
    assert len(days) == 3

    top = client.get("/dashboard/top-medicines").json()
    assert top[0]["name"] == "Amoxicillin"
    assert top[0]["units_sold"] == 2


def test_second_sale_on_prescription_is_409(client, amoxicillin):
    rx = client.post("/prescriptions", json={
        "patient_name": "Mary Njeri", "doctor_name": "Dr. Kamau", "prescription_date": date.today().isoformat(),
    }).json()
    body = {"prescription_id": rx["id"], "line_items": [{"medicine_id": str(amoxicillin.id), "quantity": 1}]}

    assert client.post("/sales", json=body).status_code == 201
    r = client.post("/sales", json=body)
    assert r.status_code == 409
    assert r.json()["error"] == "prescription_already_used"
    assert len(client.get(f"/prescriptions/{rx['id']}").json()["sales"]) == 1


def test_reserved_prescription_number_is_422(client):
    r = client.post("/prescriptions", json={
        "prescription_number": f"RX-{date.today():%Y%m%d}-001",
        "patient_name": "A", "doctor_name": "B", "prescription_date": date.today().isoformat(),
    })
    assert r.status_code == 422
    assert r.json()["field"] == "prescription_number"

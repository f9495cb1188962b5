"""Seed the catalogue with categories, suppliers and common medicines.

Stock is booked through the catalogue service, so every seeded quantity
shows up as an "initial stock" movement.
"""
from datetime import date, timedelta

from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.services import catalogue_service

CATEGORIES = {
    "Analgesics": "Pain and fever relief",
    "Antibiotics": "Bacterial infections",
    "Antihistamines": "Allergy relief",
    "Antidiabetics": "Blood sugar control",
    "Supplements": "Vitamins and minerals",
}

SUPPLIERS = [
    {"name": "Medisel Kenya", "contact_person": "Grace Wanjiru", "phone": "+254 700 100200"},
    {"name": "Harleys Limited", "contact_person": "Peter Otieno", "phone": "+254 722 300400"},
]

# name, generic, category, supplier index, cost, price, units, prescription-only
MEDICINES = [
    ("Panadol 500mg", "Paracetamol", "Analgesics", 0, "3.00", "5.00", 400, False),
    ("Brufen 400mg", "Ibuprofen", "Analgesics", 0, "6.50", "10.00", 250, False),
    ("Amoxil 500mg", "Amoxicillin", "Antibiotics", 1, "12.00", "20.00", 120, True),
    ("Augmentin 625mg", "Amoxicillin/Clavulanate", "Antibiotics", 1, "45.00", "70.00", 60, True),
    ("Ciprobid 500mg", "Ciprofloxacin", "Antibiotics", 1, "15.00", "25.00", 8, True),
    ("Piriton 4mg", "Chlorphenamine", "Antihistamines", 0, "1.50", "3.00", 300, False),
    ("Cetrizet 10mg", "Cetirizine", "Antihistamines", 0, "4.00", "7.00", 180, False),
    ("Glucophage 500mg", "Metformin", "Antidiabetics", 1, "5.00", "9.00", 90, True),
    ("Vitamin C 1000mg", "Ascorbic acid", "Supplements", 0, "8.00", "15.00", 5, False),
]


def seed_inventory():
    init_db()
    db = SessionLocal()
    actor = "seed"
    try:
        existing = {c.name: c for c in catalogue_service.list_categories(db)}
        categories = {}
        for name, description in CATEGORIES.items():
            categories[name] = existing.get(name) or catalogue_service.create_category(db, name, description)

        suppliers = [catalogue_service.create_supplier(db, fields, actor) for fields in SUPPLIERS]

        today = date.today()
        for i, (name, generic, category, supplier, cost, price, units, rx) in enumerate(MEDICINES):
            medicine = catalogue_service.upsert_medicine(db, {
                "name": name,
                "generic_name": generic,
                "category_id": categories[category].id,
                "supplier_id": suppliers[supplier].id,
                "batch_number": f"B{today:%y%m}-{i + 1:03d}",
                "unit_price": cost,
                "selling_price": price,
                "quantity": units,
                "expiry_date": today + timedelta(days=60 + 90 * i),
                "requires_prescription": rx,
            }, actor)
            flag = " (Rx)" if medicine.requires_prescription else ""
            print(f"  {medicine.name}{flag}: {medicine.quantity} units @ {medicine.selling_price}")

        print(f"\nSeeded {len(MEDICINES)} medicines in {len(CATEGORIES)} categories")
    finally:
        db.close()


if __name__ == "__main__":
    seed_inventory()

"""
Sale header and its line items.

A Sale owns its SaleItems (delete cascades). SaleItem.unit_price is a snapshot
of the medicine's selling price when the sale was recorded, never a live link.
"""
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base

PAYMENT_METHODS = ("cash", "mpesa", "card", "insurance")


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint(
            "payment_method IN ('cash', 'mpesa', 'card', 'insurance')",
            name="ck_sales_payment_method",
        ),
        CheckConstraint("total_amount >= 0", name="ck_sales_total_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_number = Column(String(64), unique=True, nullable=False, index=True)
    # At most one sale dispenses a prescription; NULLs are not compared
    prescription_id = Column(Uuid, ForeignKey("prescriptions.id"), unique=True, nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(32), nullable=False)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    served_by = Column(String(64), nullable=True)  # opaque actor id
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    prescription = relationship("Prescription", backref="sales")
    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SaleItem.created_at",
    )


class SaleItem(Base):
    __tablename__ = "sale_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    medicine_id = Column(Uuid, ForeignKey("medicines.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sale = relationship("Sale", back_populates="items")
    medicine = relationship("Medicine")

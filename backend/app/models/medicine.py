import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
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


class Medicine(Base):
    """
    Pharmacy catalogue entry.

    STOCK RULE:
    - quantity is only ever changed through catalogue_service.adjust_quantity,
      which applies a conditional UPDATE and writes a StockMovement
    - the CHECK constraint is the last line: a negative quantity never commits
    """
    __tablename__ = "medicines"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_medicines_quantity_non_negative"),
        CheckConstraint("reorder_level >= 0", name="ck_medicines_reorder_level_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_medicines_unit_price_non_negative"),
        CheckConstraint("selling_price >= 0", name="ck_medicines_selling_price_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, index=True)
    generic_name = Column(String(255), nullable=True)
    category_id = Column(Uuid, ForeignKey("medicine_categories.id"), nullable=True)
    supplier_id = Column(Uuid, ForeignKey("suppliers.id"), nullable=True)
    batch_number = Column(String(128), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)  # cost per unit
    selling_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=10)
    expiry_date = Column(Date, nullable=False)
    manufacture_date = Column(Date, nullable=True)
    requires_prescription = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", backref="medicines")
    supplier = relationship("Supplier", backref="medicines")

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level

    def __repr__(self):
        return f"<Medicine {self.name} batch={self.batch_number} qty={self.quantity}>"

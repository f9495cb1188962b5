"""
Append-only stock history. Rows are inserted, never updated or deleted.
Medicine.quantity stays authoritative; nothing sums this table to get stock.
"""
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base

MOVEMENT_TYPES = ("in", "out", "adjustment", "expired")


class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment', 'expired')",
            name="ck_stock_movements_type",
        ),
        CheckConstraint("quantity <> 0", name="ck_stock_movements_non_zero"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    medicine_id = Column(Uuid, ForeignKey("medicines.id"), nullable=False, index=True)
    movement_type = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False)  # signed delta
    reason = Column(String(512), nullable=True)
    reference_id = Column(Uuid, nullable=True)  # e.g. the Sale that caused it
    created_by = Column(String(64), nullable=True)  # opaque actor id
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    medicine = relationship("Medicine")

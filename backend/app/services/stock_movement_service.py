"""Stock movement log. Insert-only; read back for history screens, never for stock levels."""
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import ReferentialViolation, ValidationError
from app.models.medicine import Medicine
from app.models.stock_movement import MOVEMENT_TYPES, StockMovement


def append(
    db: Session,
    medicine_id: UUID,
    kind: str,
    delta: int,
    reason: str | None,
    reference_id: UUID | None,
    actor: str | None,
) -> StockMovement:
    """Add one movement to the current unit of work. Flushes, never commits."""
    if kind not in MOVEMENT_TYPES:
        raise ValidationError("kind", f"Unknown movement kind '{kind}'")
    if delta == 0:
        raise ValidationError("delta", "A stock movement must change the quantity")
    if db.get(Medicine, medicine_id) is None:
        raise ReferentialViolation("Medicine", medicine_id)

    movement = StockMovement(
        medicine_id=medicine_id,
        movement_type=kind,
        quantity=delta,
        reason=reason,
        reference_id=reference_id,
        created_by=actor,
    )
    db.add(movement)
    db.flush()
    return movement


def list_movements(
    db: Session,
    medicine_id: Optional[UUID] = None,
    kind: Optional[str] = None,
    limit: int = 100,
) -> List[StockMovement]:
    q = db.query(StockMovement)
    if medicine_id:
        q = q.filter(StockMovement.medicine_id == medicine_id)
    if kind:
        q = q.filter(StockMovement.movement_type == kind)
    return q.order_by(StockMovement.created_at.desc()).limit(limit).all()

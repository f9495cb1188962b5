"""
Human-readable identifiers: SALE-YYYYMMDD-NNNN and RX-YYYYMMDD-NNN.

The date prefix is informational; uniqueness comes from one global counter per
kind stored in identifier_sequences. Allocation is a single
UPDATE ... SET value = value + 1 executed inside the caller's transaction, so
the row lock (or SQLite's write lock) serializes concurrent callers across
processes. If the caller rolls back, the number is released with it.
Externally supplied numbers may not take the generated shape (see
is_generated_format), so a generated number can never already be taken.
"""
import logging
import re
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.identifier_sequence import IdentifierSequence

logger = logging.getLogger(__name__)

SALE_SEQUENCE = "sale_number"
PRESCRIPTION_SEQUENCE = "prescription_number"

# name -> (prefix, minimum digits)
_FORMATS = {
    SALE_SEQUENCE: ("SALE", 4),
    PRESCRIPTION_SEQUENCE: ("RX", 3),
}


def ensure_sequences(db: Session) -> None:
    """Create missing counter rows. Idempotent; commits."""
    existing = {name for (name,) in db.query(IdentifierSequence.name).all()}
    for name in _FORMATS:
        if name not in existing:
            db.add(IdentifierSequence(name=name, value=0))
    db.commit()


def allocate(db: Session, name: str) -> int:
    """Reserve the next counter value for `name`. Does not commit."""
    result = db.execute(
        update(IdentifierSequence)
        .where(IdentifierSequence.name == name)
        .values(value=IdentifierSequence.value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Counter row not seeded yet; the primary key guards a racing insert
        logger.warning(f"Sequence '{name}' missing, creating it")
        db.add(IdentifierSequence(name=name, value=1))
        db.flush()
        return 1
    return db.query(IdentifierSequence.value).filter(IdentifierSequence.name == name).scalar()


def is_generated_format(name: str, value: str) -> bool:
    """True if `value` looks like a number this module hands out for `name`."""
    prefix, _ = _FORMATS[name]
    return re.fullmatch(rf"{prefix}-\d{{8}}-\d+", value.strip(), flags=re.IGNORECASE) is not None


def format_identifier(name: str, value: int, on: date) -> str:
    prefix, width = _FORMATS[name]
    # Zero-pad to the minimum width; wider counters are never truncated
    return f"{prefix}-{on:%Y%m%d}-{value:0{width}d}"


def _today() -> date:
    return datetime.now(timezone.utc).date()


def next_sale_number(db: Session, on: date | None = None) -> str:
    return format_identifier(SALE_SEQUENCE, allocate(db, SALE_SEQUENCE), on or _today())


def next_prescription_number(db: Session, on: date | None = None) -> str:
    return format_identifier(PRESCRIPTION_SEQUENCE, allocate(db, PRESCRIPTION_SEQUENCE), on or _today())

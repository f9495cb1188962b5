"""
Staff user: the authenticated actor behind every mutating call.

Role replaces the row-level policies of a hosted database: the API layer
checks it before calling a service; services only store the actor id.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.db.base import Base

STAFF_ROLES = ("admin", "pharmacist", "cashier")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'pharmacist', 'cashier')", name="ck_users_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="New User")
    phone = Column(String(64), nullable=True)
    role = Column(String(32), nullable=False, default="cashier")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def actor_id(self) -> str:
        """Opaque identity handed to the ledger services."""
        return str(self.id)

    def __repr__(self):
        return f"<User {self.email} role={self.role}>"

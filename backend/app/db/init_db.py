"""Create all tables and identifier counters. Run on app startup.

SECURITY: Auto-generates a random default admin password (not hardcoded).
The admin must change it after first login.
"""
import logging
import secrets

from sqlalchemy.engine import Engine

from app import models  # noqa: F401 - register models
from app.core.security import get_password_hash
from app.db.base import Base
from app.db.session import build_session_factory, engine
from app.models.user import User
from app.services.identifier_service import ensure_sequences

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@pharmacy.co.ke"


def init_db(bind: Engine | None = None) -> None:
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    db = build_session_factory(bind)()
    try:
        ensure_sequences(db)

        if db.query(User).count() == 0:
            default_password = secrets.token_urlsafe(16)
            db.add(User(
                email=DEFAULT_ADMIN_EMAIL,
                hashed_password=get_password_hash(default_password),
                full_name="Administrator",
                role="admin",
            ))
            db.commit()

            # Printed once, on initial setup only; never logged
            print("\n" + "=" * 70)
            print("DEFAULT ADMIN USER CREATED")
            print("=" * 70)
            print(f"Email:    {DEFAULT_ADMIN_EMAIL}")
            print(f"Password: {default_password}")
            print("\nSECURITY: Change this password immediately after first login!")
            print("=" * 70 + "\n")
    finally:
        db.close()

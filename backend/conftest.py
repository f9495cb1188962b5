"""
Shared fixtures.

Each test gets a fresh file-backed SQLite database so that sessions opened
from different threads see each other's commits (":memory:" is per-connection).
"""
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from app import models  # noqa: F401 - register models
from app.api.deps import get_current_user, get_db
from app.db.base import Base
from app.db.session import build_engine, build_session_factory
from app.main import app
from app.models.user import User
from app.services import catalogue_service
from app.services.identifier_service import ensure_sequences

ACTOR = "7"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = build_session_factory(engine)
    db = factory()
    ensure_sequences(db)
    db.close()
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def actor():
    return ACTOR


@pytest.fixture
def amoxicillin(db, actor):
    """Amoxicillin: 20 in stock, reorder at 10, sells at 50.00."""
    return catalogue_service.upsert_medicine(db, {
        "name": "Amoxicillin",
        "batch_number": "AMX-001",
        "unit_price": "30.00",
        "selling_price": "50.00",
        "quantity": 20,
        "reorder_level": 10,
        "expiry_date": date.today() + timedelta(days=365),
    }, actor)


@pytest.fixture
def make_medicine(db, actor):
    """Factory for extra catalogue entries; keyword overrides win."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "name": f"Medicine {counter['n']}",
            "batch_number": f"B-{counter['n']:03d}",
            "unit_price": "5.00",
            "selling_price": "8.00",
            "quantity": 10,
            "expiry_date": date.today() + timedelta(days=365),
        }
        fields.update(overrides)
        return catalogue_service.upsert_medicine(db, fields, actor)

    return _make


def _make_user(db, role: str, email: str) -> User:
    user = User(email=email, hashed_password="not-used", full_name=f"Test {role}", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    # Detached so later commits on the fixture session never expire it
    db.expunge(user)
    return user


@pytest.fixture
def anon_client(session_factory):
    """TestClient on the test database with real authentication."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client_for(anon_client, db):
    """Build a TestClient authenticated as a user with the given role."""

    def _client(role: str = "admin") -> TestClient:
        user = _make_user(db, role, f"{role}-{db.query(User).count() + 1}@pharmacy.co.ke")
        app.dependency_overrides[get_current_user] = lambda: user
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_for):
    return client_for("admin")

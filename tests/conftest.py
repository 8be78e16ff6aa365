# tests/conftest.py

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.session import Base, get_db
from app.core.security import create_access_token
from app.services import catalog_service, notification_service, slot_service

# Register every table on Base.metadata
from app.models import (  # noqa: F401
    audit_log, booking, booking_item, booking_request, booking_settings,
    notification_log, product, slot, slot_price, waitlist_entry,
)

# --- Test Database Setup: one shared in-memory SQLite connection ---
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)
SLOT_DATE = "2030-06-02"
SLOT_TIME = "10:00"
PRICES = [
    {"personType": "adult", "price": "40.00"},
    {"personType": "child", "price": "20.50"},
]


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def sent(monkeypatch):
    """Replaces the notification transport; collects every delivered message."""
    messages = []
    monkeypatch.setattr(notification_service, "deliver", lambda message: messages.append(message))
    return messages


@pytest.fixture(scope="function")
def product_id(db):
    p = catalog_service.register_product(db, "Harbour Tour", enable_waitlist=True)
    return p.id


@pytest.fixture(scope="function")
def make_slot(db, product_id):
    def _make(capacity=2, slot_date=SLOT_DATE, slot_time=SLOT_TIME, prices=None, now=NOW):
        return slot_service.create_slot(db, product_id, slot_date, slot_time, capacity, PRICES if prices is None else prices, now=now)
    return _make


# --- Test Client Fixtures ---
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db, sent):
    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth():
    def _headers(user_id: str, role: str = "customer") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
    return _headers

"""Pytest configuration: in-memory SQLite for services and the HTTP layer."""

from __future__ import annotations

import os

# Settings read the environment at import time, so this has to come first.
# Tests never need a running PostgreSQL or Kafka.
os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("KAFKA_ENABLED", "false")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from handmade_store.api.deps import get_db
from handmade_store.core.config import settings
from handmade_store.db.models import Item
from handmade_store.db.session import Base
from handmade_store.main import app
from handmade_store.schemas import OrderCreate, OrderItemIn


def _enable_sqlite_fks(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(eng, "connect", _enable_sqlite_fks)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_token(role: str = "admin", token_type: str = "access") -> str:
    payload = {"sub": "staff@yarnshop.io", "role": role, "type": token_type}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def make_token():
    return _make_token


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {_make_token()}"}


@pytest.fixture
def make_item(db):
    def _make(title="Doggy Dog", price_cents=3500, quantity_available=0, active=True):
        item = Item(title=title, price_cents=price_cents, quantity_available=quantity_available, active=active)
        db.add(item)
        db.commit()
        return item.id

    return _make


def _order_request(*lines, email="ada@yarnshop.io", **kwargs) -> OrderCreate:
    return OrderCreate(
        email=email,
        items=[OrderItemIn(item_id=item_id, quantity=qty) for item_id, qty in lines],
        **kwargs,
    )


@pytest.fixture
def order_request():
    """``order_request((item_id, qty), ...)`` -> OrderCreate."""
    return _order_request

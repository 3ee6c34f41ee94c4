"""Shared test fixtures.

Every test gets its own in-memory SQLite database, so services are free to
commit and roll back exactly as they do in production.
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from autoparts.app.core.database import Base, create_db_engine, get_db
from autoparts.app.core.security import create_access_token, get_password_hash
from autoparts.app.main import app
from autoparts.app.models.customer import Customer
from autoparts.app.models.inventory import Product
from autoparts.app.models.supplier import Supplier
from autoparts.app.models.user import RoleEnum, User


# ─── Fresh database per test ──────────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    engine = create_db_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = Session(bind=engine, autoflush=False)

    yield session

    session.close()
    engine.dispose()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Auth helpers ─────────────────────────────────────────────────────────────


def _make_user(db: Session, username: str, role: RoleEnum) -> User:
    user = User(
        username=username,
        full_name=username.replace("_", " ").title(),
        hashed_password=get_password_hash("pass1234"),
        role=role,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin_user(db: Session) -> User:
    return _make_user(db, "test_admin", RoleEnum.ADMIN)


@pytest.fixture()
def cashier_user(db: Session) -> User:
    return _make_user(db, "test_cashier", RoleEnum.CASHIER)


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return create_access_token(subject=str(admin_user.id))


@pytest.fixture()
def cashier_token(cashier_user: User) -> str:
    return create_access_token(subject=str(cashier_user.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


# ─── Catalog fixtures ─────────────────────────────────────────────────────────


@pytest.fixture()
def supplier(db: Session) -> Supplier:
    s = Supplier(name="Repuestos del Norte", phone="809-555-0101")
    db.add(s)
    db.commit()
    return s


@pytest.fixture()
def product_a(db: Session, supplier: Supplier) -> Product:
    p = Product(
        sku="BRK-PAD-01",
        name="Brake Pad Set",
        purchase_price=Decimal("60.0000"),
        selling_price=Decimal("100.0000"),
        stock=10,
        low_stock_threshold=3,
        supplier_id=supplier.id,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def product_b(db: Session) -> Product:
    p = Product(
        sku="OIL-FLT-02",
        name="Oil Filter",
        purchase_price=Decimal("70.0000"),
        selling_price=Decimal("120.0000"),
        stock=20,
        low_stock_threshold=5,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def customer(db: Session) -> Customer:
    c = Customer(full_name="Juan Perez", phone="809-555-0199")
    db.add(c)
    db.commit()
    return c

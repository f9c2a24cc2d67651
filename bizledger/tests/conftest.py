"""Shared test fixtures.

The schema is created once on an in-memory SQLite database. Each test runs
inside a transaction that is rolled back after the test completes, so tests
never pollute each other.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.orm import Session

from bizledger.app.core.database import Base, engine, get_db
from bizledger.app.main import app
from bizledger.app.models import Company, Customer, Employee, Product


# ─── SQLite transaction handling ─────────────────────────────────────────────
# pysqlite defers BEGIN on its own; take over so SAVEPOINTs behave.


@event.listens_for(engine, "connect")
def _disable_pysqlite_begin(dbapi_connection: object, connection_record: object) -> None:
    dbapi_connection.isolation_level = None  # type: ignore[attr-defined]


@event.listens_for(engine, "begin")
def _emit_begin(conn: object) -> None:
    conn.exec_driver_sql("BEGIN")  # type: ignore[attr-defined]


Base.metadata.create_all(bind=engine)


# ─── DB session that rolls back after every test ──────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a DB session wrapped in a SAVEPOINT; rolled back after the test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    nested = connection.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(session: Session, trans: object) -> None:
        nonlocal nested
        if trans is nested:
            nested = connection.begin_nested()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the transactional test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Company & people ────────────────────────────────────────────────────────


@pytest.fixture()
def company(db: Session) -> Company:
    c = Company(
        name="Test Trading Co",
        address="12 Galle Road, Colombo",
        email="accounts@test.lk",
        phone="0112345678",
    )
    db.add(c)
    db.flush()
    return c


@pytest.fixture()
def other_company(db: Session) -> Company:
    c = Company(name="Other Tenant Ltd", currency_code="USD")
    db.add(c)
    db.flush()
    return c


@pytest.fixture()
def customer(db: Session, company: Company) -> Customer:
    c = Customer(
        company_id=company.id,
        name="Acme Retail",
        email="buyer@acme.test",
        phone="0771234567",
    )
    db.add(c)
    db.flush()
    return c


@pytest.fixture()
def customer_b(db: Session, company: Company) -> Customer:
    c = Customer(company_id=company.id, name="Beta Stores")
    db.add(c)
    db.flush()
    return c


@pytest.fixture()
def employee(db: Session, company: Company) -> Employee:
    e = Employee(company_id=company.id, name="Nimal Perera", email="nimal@test.lk")
    db.add(e)
    db.flush()
    return e


@pytest.fixture()
def employee_b(db: Session, company: Company) -> Employee:
    e = Employee(company_id=company.id, name="Sunil Silva", email="sunil@test.lk")
    db.add(e)
    db.flush()
    return e


# ─── Inventory fixtures ───────────────────────────────────────────────────────


@pytest.fixture()
def product_a(db: Session, company: Company, employee: Employee) -> Product:
    p = Product(
        company_id=company.id,
        name="Product A",
        sku="SKU-A",
        unit_price=Decimal("90.0000"),
        cost_price=Decimal("40.0000"),
        commission=Decimal("5.0000"),
        quantity_on_hand=50,
        added_employee_id=employee.id,
    )
    db.add(p)
    db.flush()
    return p


@pytest.fixture()
def product_b(db: Session, company: Company, employee_b: Employee) -> Product:
    p = Product(
        company_id=company.id,
        name="Product B",
        sku="SKU-B",
        unit_price=Decimal("200.0000"),
        cost_price=Decimal("120.0000"),
        commission=Decimal("12.5000"),
        quantity_on_hand=30,
        added_employee_id=employee_b.id,
    )
    db.add(p)
    db.flush()
    return p


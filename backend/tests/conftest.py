"""
Pytest fixtures for SIGRAP backend tests.

Each test gets its own SQLite file database so that two independent sessions
can race on the same purchase order.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sigrap.database import Base
from sigrap.models import Product, Supplier, User
from sigrap.permissions import ADMINISTRATOR, EMPLOYEE, Subject
from sigrap.security import subject_from_user
from sigrap.use_cases.roles import sync_policy_permissions


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sigrap-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def roles(db_session):
    """Built-in roles with their policy permissions materialized."""
    created = sync_policy_permissions(db_session)
    db_session.commit()
    return created


@pytest.fixture()
def admin_user(db_session, roles):
    user = User(
        email="admin@sigrap.local",
        name="Administrador",
        password_hash="not-a-real-hash",
        is_active=True,
    )
    user.roles.append(roles[ADMINISTRATOR])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def employee_user(db_session, roles):
    user = User(
        email="empleado@sigrap.local",
        name="Empleado",
        password_hash="not-a-real-hash",
        is_active=True,
    )
    user.roles.append(roles[EMPLOYEE])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def admin(admin_user) -> Subject:
    return subject_from_user(admin_user)


@pytest.fixture()
def employee(employee_user) -> Subject:
    return subject_from_user(employee_user)


@pytest.fixture()
def supplier(db_session):
    supplier = Supplier(
        name="Distribuidora Andina",
        tax_id="900123456-7",
        payment_method="BANK_TRANSFER",
        payment_terms="30 días",
        status="ACTIVE",
    )
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture()
def products(db_session):
    rows = [
        Product(name="Arroz 500g", sku="ARZ-500", cost_price=Decimal("2500.00"), sale_price=Decimal("3200.00")),
        Product(name="Aceite 1L", sku="ACE-1000", cost_price=Decimal("9800.50"), sale_price=Decimal("12500.00")),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture()
def order_date() -> date:
    return date(2025, 3, 10)


def make_subject(*roles: str, granted=frozenset()) -> Subject:
    return Subject(
        id=uuid4(),
        email=f"{'-'.join(roles).lower() or 'anon'}@sigrap.local",
        roles=frozenset(roles),
        granted=frozenset(granted),
    )


def make_item(*, quantity: int, unit_price: str, line_number: int = 1, status: str = "PENDING"):
    return SimpleNamespace(
        id=uuid4(),
        line_number=line_number,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        total_price=Decimal("0.00"),
        received_quantity=0,
        status=status,
    )

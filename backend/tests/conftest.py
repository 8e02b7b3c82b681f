"""
Test Configuration and Fixtures
Each test gets its own sqlite file so worker threads and concurrent sessions
see committed data the way they would against a real database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256-signing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REPORT_TIMEZONE", "Africa/Khartoum")

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from balance_service.core.database import get_db, init_db, use_wal
from balance_service.core.security import create_access_token, get_password_hash
from balance_service.main import app
from balance_service.models import (
    User, Role, Customer, Supplier, Invoice, ProcurementOrder, OrderStatus
)

PASSWORD = "secret-pass-123"
PASSWORD_HASH = get_password_hash(PASSWORD)


# ======================
# Database Fixtures
# ======================

@pytest.fixture
def engine(tmp_path):
    engine = use_wal(create_engine(
        f"sqlite:///{tmp_path / 'balance_test.db'}",
        connect_args={"check_same_thread": False}
    ))
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ======================
# HTTP Client Fixtures
# ======================

@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ======================
# User Fixtures
# ======================

def make_user(db, role: Role, username: str = None, is_active: bool = True) -> User:
    user = User(
        username=username or role.value.lower(),
        hashed_password=PASSWORD_HASH,
        full_name=role.value.title(),
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def accountant(db):
    return make_user(db, Role.ACCOUNTANT, username="bookkeeper")


@pytest.fixture
def auth_headers(db):
    """Returns a factory: auth_headers(Role.MANAGER) -> Authorization header for a fresh user"""
    created = {}

    def _headers(role: Role = Role.ACCOUNTANT):
        if role not in created:
            created[role] = make_user(db, role)
        token = create_access_token({"sub": created[role].username, "role": role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ======================
# Document Fixtures
# ======================

def make_invoice(db, total, paid=Decimal("0"), customer_name="Customer A",
                 created_at: datetime = None, number: str = None) -> Invoice:
    customer = db.query(Customer).filter(Customer.name == customer_name).first()
    if customer is None:
        customer = Customer(name=customer_name)
        db.add(customer)
        db.flush()
    count = db.query(Invoice).count()
    invoice = Invoice(
        invoice_number=number or f"INV-{count + 1:05d}",
        customer_id=customer.id,
        total=Decimal(str(total)),
        paid_amount=Decimal(str(paid)),
        created_at=created_at or datetime.utcnow(),
    )
    db.add(invoice)
    db.commit()
    return invoice


def make_order(db, total, paid=Decimal("0"), supplier_name="Supplier A",
               status: OrderStatus = OrderStatus.CREATED, created_at: datetime = None) -> ProcurementOrder:
    supplier = db.query(Supplier).filter(Supplier.name == supplier_name).first()
    if supplier is None:
        supplier = Supplier(name=supplier_name)
        db.add(supplier)
        db.flush()
    count = db.query(ProcurementOrder).count()
    order = ProcurementOrder(
        order_number=f"PO-{count + 1:05d}",
        supplier_id=supplier.id,
        total=Decimal(str(total)),
        paid=Decimal(str(paid)),
        status=status.value,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(order)
    db.commit()
    return order

"""
Shared fixtures.

Every test gets its own SQLite database file; delivery does its database work
in worker threads, so each thread needs its own connection. Delivery is driven
by fake vendor/receipt transports so nothing leaves the process.
"""
import inspect
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ANTHROPIC_API_KEY"] = ""

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db import Base, get_db
from app.main import app
from app.models.campaign import Campaign
from app.models.customer import Customer
from app.models.user import User
from app.services.delivery_service import DeliveryDispatcher
from app.services.vendor_service import VendorSimulator
from app.utils.time import utcnow


# =============================================================================
# FAKE TRANSPORTS
# =============================================================================


class RecordingVendor:
    """Vendor transport that records sends and optionally raises or reacts."""

    def __init__(self, error: Exception | None = None, on_send=None):
        self.sent = []
        self.error = error
        self.on_send = on_send

    async def send(self, *, message_id, customer_id, message):
        self.sent.append({"message_id": message_id, "customer_id": customer_id, "message": message})
        if self.error is not None:
            raise self.error
        if self.on_send is not None:
            result = self.on_send(message_id=message_id, customer_id=customer_id, message=message)
            if inspect.isawaitable(result):
                await result
        return {"status": "accepted"}


class RecordingReceipts:
    """Receipt transport that records receipts and optionally forwards them."""

    def __init__(self, error: Exception | None = None, forward=None):
        self.receipts = []
        self.error = error
        self.forward = forward

    async def post_receipt(self, receipt: dict):
        self.receipts.append(receipt)
        if self.error is not None:
            raise self.error
        if self.forward is not None:
            result = self.forward(receipt)
            if inspect.isawaitable(result):
                await result


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'crm.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


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


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture
def make_customer(db):
    counter = {"n": 0}

    def _make(name: str = "Customer", **kwargs) -> Customer:
        counter["n"] += 1
        kwargs.setdefault("email", f"customer{counter['n']}@example.com")
        kwargs.setdefault("total_spent", Decimal("0"))
        kwargs.setdefault("visit_count", 0)
        kwargs.setdefault("status", "active")
        kwargs.setdefault("email_verified", False)
        customer = Customer(name=name, **kwargs)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    return _make


@pytest.fixture
def user(db) -> User:
    u = User(email="demo@example.com", name="Demo User")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def other_user(db) -> User:
    u = User(email="other@example.com", name="Other User")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def make_campaign(db, user):
    def _make(rules, message: str = "Hi {{name}}", **kwargs) -> Campaign:
        campaign = Campaign(
            name=kwargs.pop("name", "Test campaign"),
            rules=rules,
            message=message,
            audience_size=kwargs.pop("audience_size", 0),
            status=kwargs.pop("status", "draft"),
            created_by=kwargs.pop("created_by", user.id),
            **kwargs,
        )
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    return _make


@pytest.fixture
def sample_customers(make_customer):
    """Four customers spanning every segment field."""
    now = utcnow()
    return {
        "alice": make_customer(
            "Alice Johnson",
            total_spent=Decimal("15500.00"),
            visit_count=8,
            last_visit=now - timedelta(days=7),
            status="vip",
            location="Mumbai",
            email_verified=True,
        ),
        "bob": make_customer(
            "Bob Smith",
            total_spent=Decimal("8200.00"),
            visit_count=3,
            last_visit=now - timedelta(days=2),
            status="active",
            location="Delhi",
            email_verified=True,
        ),
        "carol": make_customer(
            "Carol Davis",
            total_spent=Decimal("22100.00"),
            visit_count=12,
            last_visit=now - timedelta(days=1),
            status="vip",
            location="Bangalore",
            email_verified=True,
        ),
        "david": make_customer(
            "David Wilson",
            total_spent=Decimal("3500.00"),
            visit_count=2,
            last_visit=now - timedelta(days=45),
            status="inactive",
            location="Chennai",
            email_verified=False,
        ),
    }


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def make_vendor():
    """
    Factory for fake vendor transports.

    Usage:
        def test_send(make_vendor):
            vendor = make_vendor(error=httpx.ConnectError("down"))
    """
    return RecordingVendor


@pytest.fixture
def make_receipts():
    """Factory for fake receipt transports (see make_vendor)."""
    return RecordingReceipts


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


@pytest.fixture
def client(session_factory, vendor):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        # Long delays keep every send pending for the duration of a test.
        app.state.dispatcher = DeliveryDispatcher(
            vendor=vendor,
            session_factory=session_factory,
            send_delay_max=3600,
            completion_deadline=3600,
        )
        app.state.vendor_simulator = VendorSimulator(
            receipts=RecordingReceipts(),
            delay_min=3600,
            delay_max=3600,
        )
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"X-User-Email": user.email}

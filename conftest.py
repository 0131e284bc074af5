import asyncio
from decimal import Decimal
from typing import Optional

import httpx
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401 ensure model registration
from core.gateway import FlutterwaveGateway
from core.ledger import CustomerInfo, TransactionLedger
from core.pricing import compute_price
from crud.payment_link import create_payment_link
from db.base import Base
from models import ProtectedFile, SellerProfile

BUYER_EMAIL = "buyer@example.com"
WEBHOOK_HASH = "test-webhook-hash"


def _use_immediate_transactions(engine):
    """SQLite: take the write lock at BEGIN so concurrent writers queue instead of erroring"""
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite for tests that use several connections at once"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'paylink-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _use_immediate_transactions(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_file(db, plan_type: Optional[str] = "professional", price="50.00") -> ProtectedFile:
    seller = SellerProfile(full_name="Ada Seller", email="ada@example.com", plan_type=plan_type)
    db.add(seller)
    db.flush()
    file = ProtectedFile(
        owner_id=seller.id,
        title="Design Kit",
        description="Icons and templates",
        price=Decimal(price),
        file_size=2048,
        file_type="application/zip",
        file_path="kits/design-kit.zip",
        original_filename="design-kit.zip",
    )
    db.add(file)
    db.commit()
    db.refresh(file)
    return file


@pytest.fixture
def protected_file(db):
    return seed_file(db)


@pytest.fixture
def make_link(db, protected_file):
    def _make(**kwargs):
        return create_payment_link(db, protected_file, **kwargs)
    return _make


def create_transaction(db, link, reference: str, currency: str = "USD", rate="1",
                       email: str = BUYER_EMAIL, status: str = "pending"):
    """Insert a priced transaction, optionally settled"""
    quote = compute_price(link.base_price, "USD", currency, link.owner.plan_type, Decimal(rate))
    ledger = TransactionLedger(db)
    txn = ledger.create_pending(link, CustomerInfo(email=email, name="Bea Buyer"), quote, reference)
    if status == "completed":
        txn = ledger.mark_completed(reference, f"flw-{reference}")
    elif status == "failed":
        txn = ledger.mark_failed(reference, "gateway_failed")
    return txn


@pytest.fixture
def make_transaction(db):
    def _make(link, reference: str, **kwargs):
        return create_transaction(db, link, reference, **kwargs)
    return _make


class FakeFlutterwave:
    """Records requests and answers like Flutterwave's v3 API"""

    def __init__(self):
        self.requests = []
        self.verify_status = {}  # tx_ref -> (status, amount, currency)
        self.fail_initialize = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v3/payments":
            if self.fail_initialize:
                return httpx.Response(500, json={"status": "error", "message": "boom"})
            return httpx.Response(200, json={
                "status": "success",
                "data": {"link": f"https://checkout.flutterwave.test/pay/{len(self.requests)}"},
            })
        if request.url.path == "/v3/transactions/verify_by_reference":
            tx_ref = request.url.params.get("tx_ref")
            if tx_ref not in self.verify_status:
                return httpx.Response(404, json={"status": "error", "message": "No transaction was found"})
            status, amount, currency = self.verify_status[tx_ref]
            return httpx.Response(200, json={
                "status": "success",
                "data": {"id": 4242, "tx_ref": tx_ref, "status": status,
                         "amount": amount, "currency": currency},
            })
        return httpx.Response(404)

    def gateway(self) -> FlutterwaveGateway:
        return FlutterwaveGateway(
            secret_key="FLWSECK_TEST-xxx",
            base_url="https://api.flutterwave.test",
            webhook_hash=WEBHOOK_HASH,
            redirect_url="http://localhost:3000/payment-success",
            client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


@pytest.fixture
def flutterwave():
    return FakeFlutterwave()


async def no_sleep(delay: float):
    await asyncio.sleep(0)

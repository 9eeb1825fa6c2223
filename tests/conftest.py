"""Shared test fixtures for the splitpay settlement service tests.

Uses a SQLite file database so tests run without PostgreSQL.  The
processor is replaced by a scripted ``FakeGateway`` and notifications are
captured by a ``RecordingNotifier``; both are injected through the
service container, the same way production wiring works.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from splitpay - the
# Settings model reads .env eagerly via pydantic-settings, and the
# module-level ``engine`` in splitpay.core.database would try to connect
# to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import splitpay.models  # noqa: F401
from splitpay.api.dependencies import get_session_factory
from splitpay.core.config import Settings
from splitpay.core.database import Base, get_db
from splitpay.main import app
from splitpay.models.credential import MerchantCredential
from splitpay.models.ownership import ProductOwnership
from splitpay.models.storefront import CartItem, CatalogProduct, Order, OrderLine
from splitpay.services.container import ServiceContainer, get_container
from splitpay.services.notifications import BaseNotifier
from splitpay.services.processor.card import CardData
from splitpay.services.processor.gateway import (
    OUTCOME_APPROVED,
    OUTCOME_DECLINED,
    OUTCOME_ERROR,
    ProcessorResult,
)

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"
TEST_WEBHOOK_KEY = "test-webhook-key"
LISTING_SITE_ID = 1

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ── Test doubles ─────────────────────────────────────────────────────


class FakeGateway:
    """Scripted processor.  Behaviour is keyed on the merchant username."""

    def __init__(self) -> None:
        self.charges: list[tuple[str, Decimal]] = []
        self.voids: list[str] = []
        self.refunds: list[tuple[str, Decimal]] = []
        self.decline_users: set[str] = set()
        self.error_users: set[str] = set()
        self.failing_void_transactions: set[str] = set()
        self.failing_refund_users: set[str] = set()
        self.valid_credentials = True
        self.tested_usernames: list[str] = []
        self._counter = 0

    def charge(self, credentials, order, card, amount, description=None):
        username = credentials.processor_username
        self.charges.append((username, Decimal(amount)))
        if username in self.decline_users:
            return ProcessorResult(
                success=False,
                outcome=OUTCOME_DECLINED,
                message="Insufficient funds. Please use a different card.",
                response_code="2",
            )
        if username in self.error_users:
            return ProcessorResult(
                success=False,
                outcome=OUTCOME_ERROR,
                message="Payment processing error. Please try again.",
            )
        self._counter += 1
        return ProcessorResult(
            success=True,
            outcome=OUTCOME_APPROVED,
            message="Payment successful",
            transaction_id=f"T{self._counter}",
            auth_code="123456",
            response_code="1",
        )

    def void(self, credentials, transaction_id):
        self.voids.append(transaction_id)
        if transaction_id in self.failing_void_transactions:
            return ProcessorResult(
                success=False, outcome=OUTCOME_ERROR, message="Void failed"
            )
        return ProcessorResult(
            success=True, outcome=OUTCOME_APPROVED, message="Transaction voided"
        )

    def refund(self, credentials, transaction_id, amount, reason=""):
        username = credentials.processor_username
        self.refunds.append((transaction_id, Decimal(amount)))
        if username in self.failing_refund_users:
            return ProcessorResult(
                success=False,
                outcome=OUTCOME_DECLINED,
                message="Refund amount exceeds settled amount",
            )
        self._counter += 1
        return ProcessorResult(
            success=True,
            outcome=OUTCOME_APPROVED,
            message="Refund processed successfully",
            transaction_id=f"R{self._counter}",
        )

    def test_credentials(self, username, password, api_key=None):
        self.tested_usernames.append(username)
        return self.valid_credentials

    def close(self):
        pass


class RecordingNotifier(BaseNotifier):
    def __init__(self) -> None:
        self.sales: list[tuple] = []
        self.refunds: list[tuple] = []
        self.confirmations: list[tuple] = []
        self.alerts: list[int] = []

    def notify_merchant_sale(self, merchant_user_id, order_id, amount, commission):
        self.sales.append((merchant_user_id, order_id, amount, commission))

    def notify_merchant_refund(self, merchant_user_id, order_id, refund_amount, reason):
        self.refunds.append((merchant_user_id, order_id, refund_amount, reason))

    def send_payment_confirmation(self, merchant_user_id, order_id, amount):
        self.confirmations.append((merchant_user_id, order_id, amount))

    def alert_admin_sync_failures(self, failed_count):
        self.alerts.append(failed_count)


class Seeder:
    """Creates credentials, ownership, catalog products and orders."""

    def __init__(self, db) -> None:
        self.db = db

    def merchant(
        self,
        user_id: int,
        site_id: int,
        username: str | None = None,
        password: str = "secret-pw",
        is_active: bool = True,
    ) -> MerchantCredential:
        cred = MerchantCredential(
            user_id=user_id,
            site_id=site_id,
            processor_username=username if username is not None else f"merchant{user_id}",
            processor_password=password,
            is_active=is_active,
        )
        self.db.add(cred)
        self.db.commit()
        return cred

    def ownership(
        self,
        product_id: int,
        owner_user_id: int,
        owner_site_id: int,
        commission_rate: str = "10.00",
        listing_site_id: int = LISTING_SITE_ID,
    ) -> ProductOwnership:
        ownership = ProductOwnership(
            product_id=product_id,
            listing_site_id=listing_site_id,
            owner_user_id=owner_user_id,
            owner_site_id=owner_site_id,
            commission_rate=Decimal(commission_rate),
        )
        self.db.add(ownership)
        self.db.commit()
        return ownership

    def product(
        self, site_id: int, product_id: int, name: str, stock: int | None = None
    ) -> CatalogProduct:
        product = CatalogProduct(
            site_id=site_id, product_id=product_id, name=name, stock_quantity=stock
        )
        self.db.add(product)
        self.db.commit()
        return product

    def order(
        self,
        lines: list[tuple[int, str, str]],
        site_id: int = LISTING_SITE_ID,
        cart_token: str | None = "cart-abc",
        shipping: dict | None = None,
    ) -> Order:
        """``lines`` is a list of (product_id, name, amount)."""
        order = Order(
            site_id=site_id,
            cart_token=cart_token,
            total=sum((Decimal(a) for _, _, a in lines), Decimal("0.00")),
            billing={
                "first_name": "Ada",
                "last_name": "Lovelace",
                "address_1": "1 Analytical Way",
                "city": "London",
                "postcode": "N1 1AA",
                "country": "GB",
                "email": "ada@example.com",
            },
            shipping=shipping,
            customer_ip="203.0.113.7",
        )
        for position, (product_id, name, amount) in enumerate(lines):
            order.lines.append(
                OrderLine(
                    position=position,
                    product_id=product_id,
                    name=name,
                    quantity=1,
                    amount=Decimal(amount),
                )
            )
        self.db.add(order)
        if cart_token:
            for product_id, _, _ in lines:
                self.db.add(CartItem(cart_token=cart_token, product_id=product_id))
        self.db.commit()
        return order


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        test_database_url=TEST_DATABASE_URL,
        webhook_key=TEST_WEBHOOK_KEY,
        listing_site_id=LISTING_SITE_ID,
        site_name="Test Network",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def container(test_settings, gateway, notifier) -> ServiceContainer:
    return ServiceContainer(config=test_settings, gateway=gateway, notifier=notifier)


@pytest.fixture
def seed(db_session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture
def card() -> CardData:
    expiry_year = (date.today().year + 2) % 100
    return CardData(number="4111 1111 1111 1111", expiry=f"12/{expiry_year:02d}", cvc="123")


@pytest.fixture(scope="function")
def client(db_session, container):
    """FastAPI test client with overridden DB and service dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_container] = lambda: container
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

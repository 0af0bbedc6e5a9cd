"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from collections.abc import Sequence
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paysettle.core import database as db_module
from paysettle.core.database import Base, get_db
from paysettle.core.exceptions import IndexSyncFailure
from paysettle.models.order import Order, OrderStatus
from paysettle.models.payment import Payment, PaymentStatus
from paysettle.models.settlement import Settlement
from paysettle.services.search_index import SettlementSearchIndexBase

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

DEFAULT_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class RecordingSearchIndex(SettlementSearchIndexBase):
    """In-memory search index that records calls and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.documents: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    @property
    def search_enabled(self) -> bool:
        return True

    def _check(self, call: str) -> None:
        self.calls.append(call)
        if self.fail:
            raise IndexSyncFailure(f"{call} failed")

    def upsert(self, document: dict[str, Any]) -> None:
        self._check("upsert")
        self.documents[document["id"]] = document

    def delete(self, settlement_id: uuid.UUID) -> None:
        self._check("delete")
        self.documents.pop(str(settlement_id), None)

    def bulk_upsert(self, documents: Sequence[dict[str, Any]]) -> None:
        self._check("bulk_upsert")
        for document in documents:
            self.documents[document["id"]] = document

    def delete_all(self) -> None:
        self._check("delete_all")
        self.documents.clear()


@pytest.fixture
def search_index():
    return RecordingSearchIndex()


def make_captured_payment(
    db,
    amount: str = "10000.00",
    captured_at: datetime | None = None,
) -> tuple[Order, Payment]:
    """Insert a PAID order with one CAPTURED payment."""
    captured_at = captured_at or datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
    order = Order.create(DEFAULT_USER_ID, Decimal(amount))
    order.status = OrderStatus.PAID.value
    db.add(order)
    db.flush()
    payment = Payment.create(order.id, Decimal(amount), "CARD")
    payment.pg_transaction_id = f"pg-{uuid.uuid4().hex[:12]}"
    payment.status = PaymentStatus.CAPTURED.value
    payment.captured_at = captured_at
    db.add(payment)
    db.commit()
    return order, payment


def make_settlement(db, payment: Payment, settlement_date: date | None = None) -> Settlement:
    """Insert a PENDING settlement for a captured payment."""
    settlement = Settlement.create_from_payment(
        payment_id=payment.id,
        order_id=payment.order_id,
        payment_amount=payment.amount,
        settlement_date=settlement_date or date(2026, 10, 1),
    )
    db.add(settlement)
    db.commit()
    return settlement

"""
Pytest fixtures for the order-to-ledger engine test suite.

Provides:
- One engine and one schema per test session
- Per-test sessions isolated by an outer transaction that is rolled back
- Seeded master data: units, products, warehouses, a supplier, a customer
- Services wired to a DeterministicClock

Environment Variables:
- DATABASE_URL: database to test against.  Defaults to in-memory SQLite;
  a PostgreSQL URL runs the same suite against PostgreSQL.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_kernel.config import EngineConfig
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.catalog import Product, UnitOfMeasure, Warehouse
from ledger_kernel.models.party import Customer, Supplier
from ledger_kernel.services.cash_ledger import CashLedger
from ledger_kernel.services.debt_ledger import DebtLedger
from ledger_kernel.services.stock_ledger import StockLedger
from order_modules.engine import OrderEngine
from order_modules.purchasing.service import PurchasingService
from order_modules.returns.service import ReturnsService
from order_modules.sales.service import SalesService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_engine logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, purchasing_service):
            purchasing_service.create_order(...)
            logs = captured_logs()
            assert any(r["message"] == "purchase_order_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_engine")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session; immutability listeners stay active."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection.
    Service commits release savepoints; the outer transaction is rolled
    back at teardown, undoing everything the test wrote.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing (2024-01-01 12:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def engine_config():
    return EngineConfig.with_defaults()


# =============================================================================
# Master data
# =============================================================================

# Master data is committed (savepoint released) so a service rollback
# inside a test leaves it in place.


@pytest.fixture
def piece_unit(session, test_actor_id) -> UnitOfMeasure:
    unit = UnitOfMeasure(code="PCS", name="piece", created_by_id=test_actor_id)
    session.add(unit)
    session.commit()
    return unit


@pytest.fixture
def box_unit(session, test_actor_id) -> UnitOfMeasure:
    unit = UnitOfMeasure(code="BOX", name="box", created_by_id=test_actor_id)
    session.add(unit)
    session.commit()
    return unit


@pytest.fixture
def product(session, test_actor_id, piece_unit) -> Product:
    """Sold and stocked by the piece; no base unit."""
    prod = Product(
        code="P-001",
        name="Paracetamol 500mg",
        unit_id=piece_unit.id,
        conversion_rate=Decimal("1"),
        cost_price=Decimal("60"),
        sale_price=Decimal("100"),
        created_by_id=test_actor_id,
    )
    session.add(prod)
    session.commit()
    return prod


@pytest.fixture
def boxed_product(session, test_actor_id, piece_unit, box_unit) -> Product:
    """Traded by the box, stocked by the piece: 1 box = 10 pieces."""
    prod = Product(
        code="P-002",
        name="Vitamin C 1000mg",
        unit_id=box_unit.id,
        base_unit_id=piece_unit.id,
        conversion_rate=Decimal("10"),
        cost_price=Decimal("50"),
        sale_price=Decimal("80"),
        created_by_id=test_actor_id,
    )
    session.add(prod)
    session.commit()
    return prod


@pytest.fixture
def warehouse(session, test_actor_id) -> Warehouse:
    wh = Warehouse(code="WH-MAIN", name="Main store", is_default=True, created_by_id=test_actor_id)
    session.add(wh)
    session.commit()
    return wh


@pytest.fixture
def second_warehouse(session, test_actor_id) -> Warehouse:
    wh = Warehouse(code="WH-B", name="Branch store", created_by_id=test_actor_id)
    session.add(wh)
    session.commit()
    return wh


@pytest.fixture
def supplier(session, test_actor_id) -> Supplier:
    sup = Supplier(code="SUP-001", name="Pharma Wholesale", created_by_id=test_actor_id)
    session.add(sup)
    session.commit()
    return sup


@pytest.fixture
def customer(session, test_actor_id) -> Customer:
    cust = Customer(code="CUS-001", name="Corner Clinic", created_by_id=test_actor_id)
    session.add(cust)
    session.commit()
    return cust


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def stock_ledger(session, deterministic_clock, engine_config) -> StockLedger:
    return StockLedger(session, deterministic_clock, engine_config)


@pytest.fixture
def payables(session, deterministic_clock, engine_config) -> DebtLedger:
    return DebtLedger.payables(session, deterministic_clock, engine_config)


@pytest.fixture
def receivables(session, deterministic_clock, engine_config) -> DebtLedger:
    return DebtLedger.receivables(session, deterministic_clock, engine_config)


@pytest.fixture
def cash_ledger(session, deterministic_clock) -> CashLedger:
    return CashLedger(session, deterministic_clock)


@pytest.fixture
def purchasing_service(session, deterministic_clock, engine_config) -> PurchasingService:
    return PurchasingService(session, deterministic_clock, engine_config)


@pytest.fixture
def sales_service(session, deterministic_clock, engine_config) -> SalesService:
    return SalesService(session, deterministic_clock, engine_config)


@pytest.fixture
def returns_service(session, deterministic_clock, engine_config) -> ReturnsService:
    return ReturnsService(session, deterministic_clock, engine_config)


@pytest.fixture
def order_engine(session, deterministic_clock, engine_config) -> OrderEngine:
    return OrderEngine(session, deterministic_clock, engine_config)


@pytest.fixture
def stocked_product(session, stock_ledger, product, warehouse, test_actor_id) -> Product:
    """``product`` with 10 pieces on hand in ``warehouse`` at cost 60."""
    stock_ledger.receive(
        product.id, warehouse.id, Decimal("10"), None, Decimal("60"), test_actor_id
    )
    session.commit()
    return product

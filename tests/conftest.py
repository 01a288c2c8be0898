"""
Pytest fixtures for the inventory test suite.

Provides:
- A session-scoped engine and schema (SQLite file by default, PostgreSQL
  when DATABASE_URL points at one)
- ``session``: per-test session rolled back at teardown
- ``session_factory`` / ``inventory``: real commits, tables cleared at teardown
- Clock, service and data-builder fixtures
- ``captured_logs`` for asserting on structured log output

Environment Variables:
- DATABASE_URL: database to test against.  If unset, a SQLite file under
  the pytest temp directory is used.
"""

import json
import logging
import os
import threading
from collections.abc import Generator
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.dtos import ItemSpec, MovementDraft, MovementType, TrackingMode
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_projector import StockProjector
from inventory_kernel.services.batch_store import BatchStore
from inventory_kernel.services.item_catalog import ItemCatalog
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_services.allocation_engine import AllocationEngine
from inventory_services.inventory_service import InventoryService


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, inventory):
            inventory.consume(...)
            logs = captured_logs()
            assert any(r["message"] == "consume_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine(tmp_path_factory):
    """Single engine for the entire test session."""
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        db_file = tmp_path_factory.mktemp("db") / "inventory_test.db"
        db_url = f"sqlite:///{db_file}"
    eng = init_engine_from_url(
        db_url, echo=False,
        pool_size=30, max_overflow=20, pool_timeout=30,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session; immutability listeners stay active."""
    try:
        drop_tables()
    except Exception:
        # Fresh database: nothing to drop yet.
        pass
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture
def is_postgres(db_engine) -> bool:
    return db_engine.dialect.name == "postgresql"


def _clear_all_tables(engine):
    """Remove all rows.

    PostgreSQL uses TRUNCATE, which bypasses the row-level append-only
    triggers; SQLite has no such triggers and deletes directly.
    """
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        else:
            for name in table_names:
                conn.execute(text(f"DELETE FROM {name}"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; any
    ``session.commit()`` inside the test releases a savepoint, and the outer
    transaction is rolled back at teardown.
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


# =============================================================================
# Real-commit fixtures (facade, API and concurrency tests)
# =============================================================================


@pytest.fixture
def session_factory(db_engine, db_tables):
    """A tracked session factory whose sessions really commit.

    On teardown every session it created is closed and all rows are removed.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        s.close()
    _clear_all_tables(db_engine)


@pytest.fixture
def inventory(session_factory, deterministic_clock) -> InventoryService:
    """The transactional facade over a real-commit session factory."""
    return InventoryService(session_factory, clock=deterministic_clock)


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing (2024-01-01 12:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def today(deterministic_clock) -> date:
    return deterministic_clock.today()


# =============================================================================
# Kernel service fixtures (rolled-back session)
# =============================================================================


@pytest.fixture
def catalog(session, deterministic_clock) -> ItemCatalog:
    return ItemCatalog(session, deterministic_clock)


@pytest.fixture
def batch_store(session, deterministic_clock, catalog) -> BatchStore:
    return BatchStore(session, deterministic_clock, catalog)


@pytest.fixture
def ledger(session, deterministic_clock, batch_store) -> MovementLedger:
    return MovementLedger(session, deterministic_clock, batch_store)


@pytest.fixture
def projector(session) -> StockProjector:
    return StockProjector(session)


@pytest.fixture
def movement_selector(session) -> MovementSelector:
    return MovementSelector(session)


@pytest.fixture
def allocation_engine(
    session, deterministic_clock, catalog, batch_store, ledger, projector
) -> AllocationEngine:
    return AllocationEngine(
        session, deterministic_clock, catalog, batch_store, ledger, projector
    )


# =============================================================================
# Data builders
# =============================================================================


def _item_spec(**overrides) -> ItemSpec:
    values = {
        "name": f"Item {uuid4().hex[:8]}",
        "category": "Nutrients",
        "unit_of_measure": "L",
        "tracking_mode": TrackingMode.BATCHED,
    }
    values.update(overrides)
    return ItemSpec(**values)


@pytest.fixture
def make_item(catalog):
    """Create an item in the rolled-back session."""

    def _make(**overrides):
        return catalog.create_item(_item_spec(**overrides))

    return _make


@pytest.fixture
def receive_lot(batch_store, ledger, deterministic_clock):
    """
    Receive a lot into a batched item in the rolled-back session.

    ``received_offset_days`` shifts received_at relative to the clock.
    """

    def _receive(
        item,
        lot_number,
        quantity,
        cost_per_unit_minor=1000,
        expires_on=None,
        received_offset_days=0,
    ):
        received_at = deterministic_clock.now() + timedelta(days=received_offset_days)
        batch = batch_store.receive_batch(
            item.id,
            lot_number,
            Decimal(quantity),
            cost_per_unit_minor,
            received_at=received_at,
            expires_on=expires_on,
        )
        if Decimal(quantity) > 0:
            ledger.append(
                [
                    MovementDraft(
                        item_id=item.id,
                        movement_type=MovementType.RECEIPT,
                        quantity_delta=Decimal(quantity),
                        reason="receipt",
                        batch_id=batch.id,
                        cost_per_unit_minor=cost_per_unit_minor,
                    )
                ],
                apply_batch_deltas=False,
            )
        return batch

    return _receive


@pytest.fixture
def batched_item(inventory):
    """Create a batched item through the facade (real commits)."""

    def _make(**overrides):
        return inventory.create_item(_item_spec(**overrides))

    return _make


@pytest.fixture
def item_spec():
    """Builder for ItemSpec: batched Nutrients item in litres, unique name."""
    return _item_spec

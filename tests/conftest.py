"""
Pytest fixtures for the procurement test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A captured-log fixture returning parsed JSON records
- SQLite in-memory database sessions and a ledger service
- Builders for baseline items, quotations, orders and deliveries

Environment Variables:
- DATABASE_URL: optional database URL.  Defaults to an in-memory SQLite
  database; set a PostgreSQL URL to run the module tests against it.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    DeliveryLine,
    OfferLine,
    OrderLine,
    PurchaseOrder,
    Quotation,
)
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_modules.quotations.service import ProcurementLedgerService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


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
    Capture procurement logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            engine.compare(...)
            logs = captured_logs()
            assert any(r["message"] == "comparison_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement")
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
# Clock and actor
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture
def db_engine():
    """Fresh schema per test; dropped afterwards."""
    engine = init_engine_from_url(get_database_url(), echo=False)
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine):
    db_session = get_session()
    yield db_session
    db_session.rollback()
    db_session.close()


@pytest.fixture
def ledger(session, deterministic_clock) -> ProcurementLedgerService:
    return ProcurementLedgerService(session, TEST_ACTOR_ID, clock=deterministic_clock)


# =============================================================================
# Document builders
# =============================================================================


@pytest.fixture
def process_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_baseline_item(process_id):
    """Build a BaselineItem with sensible defaults."""

    def _make(
        description: str = "Cable THW 14 AWG",
        required: str | Decimal = "10",
        unit: str | None = "m",
        unit_price: str | Decimal | None = None,
        total_price: str | Decimal | None = None,
        **fields,
    ) -> BaselineItem:
        return BaselineItem(
            id=fields.pop("id", uuid4()),
            process_id=fields.pop("process_id", process_id),
            description=description,
            unit=unit,
            required_quantity=Decimal(required),
            reference_unit_price=Decimal(unit_price) if unit_price is not None else None,
            reference_total_price=Decimal(total_price) if total_price is not None else None,
            **fields,
        )

    return _make


@pytest.fixture
def make_quotation(process_id):
    """Build a Quotation from ``(baseline_item, unit_price)`` pairs or OfferLines."""

    def _make(
        supplier_name: str,
        offers=(),
        currency: str = "PEN",
        exchange_rate: str | Decimal | None = None,
    ) -> Quotation:
        quotation_id = uuid4()
        lines = []
        for row_order, offer in enumerate(offers, start=1):
            if isinstance(offer, OfferLine):
                lines.append(offer)
                continue
            item, unit_price = offer
            lines.append(
                OfferLine(
                    id=uuid4(),
                    quotation_id=quotation_id,
                    description=item.description,
                    baseline_id=item.id,
                    unit=item.unit,
                    quantity=item.required_quantity,
                    unit_price=Decimal(unit_price) if unit_price is not None else None,
                    row_order=row_order,
                )
            )
        return Quotation(
            id=quotation_id,
            process_id=process_id,
            supplier_name=supplier_name,
            currency=currency,
            exchange_rate=Decimal(exchange_rate) if exchange_rate is not None else None,
            lines=tuple(lines),
        )

    return _make


@pytest.fixture
def make_order(process_id):
    """Build a PurchaseOrder from ``(baseline_item, quantity)`` pairs."""

    def _make(lines, supplier_name: str = "Acme", sequence: int = 1) -> PurchaseOrder:
        return PurchaseOrder(
            id=uuid4(),
            process_id=process_id,
            supplier_name=supplier_name,
            order_number=f"{sequence:03d}/CP",
            sequence=sequence,
            lines=tuple(
                OrderLine(
                    description=item.description,
                    quantity=Decimal(quantity),
                    unit_price=Decimal("1"),
                    unit=item.unit,
                    baseline_id=item.id,
                )
                for item, quantity in lines
            ),
        )

    return _make


@pytest.fixture
def make_delivery(process_id):
    """Build a Delivery from ``(baseline_item, quantity)`` pairs."""

    def _make(lines, order_id: UUID | None = None, guide_number: str | None = None) -> Delivery:
        return Delivery(
            id=uuid4(),
            process_id=process_id,
            order_id=order_id,
            guide_number=guide_number,
            lines=tuple(
                DeliveryLine(
                    description=item.description,
                    quantity=Decimal(quantity),
                    unit=item.unit,
                    baseline_id=item.id,
                )
                for item, quantity in lines
            ),
        )

    return _make

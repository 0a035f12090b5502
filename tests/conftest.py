"""Shared test fixtures for the invoicing test suite."""

import pytest
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock
from uuid import UUID, uuid4

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_USER_EMAIL = "testuser@example.com"

# Secondary test user - use for multi-user job tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_USER_B_EMAIL = "testuser-b@example.com"

FIXED_NOW = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test user's ID."""
    return TEST_USER_B_ID


@pytest.fixture
def authenticated_context(test_user_id):
    """Provide an authenticated user context for the primary test user."""
    with user_context(test_user_id):
        yield test_user_id


# =============================================================================
# DATABASE DOUBLES
# =============================================================================


@pytest.fixture
def mock_postgres():
    """
    PostgresClient double.

    transaction() is a working context manager; each use appends an
    outcome dict to mock_postgres.transactions so tests can assert on
    commit and rollback.
    """
    postgres = MagicMock(spec=PostgresClient)
    postgres.in_transaction.return_value = False
    postgres.execute.return_value = []
    postgres.execute_single.return_value = None
    postgres.transactions = []

    @contextmanager
    def transaction():
        outcome = {"committed": False, "rolled_back": False}
        postgres.transactions.append(outcome)
        try:
            yield
        except Exception:
            outcome["rolled_back"] = True
            raise
        outcome["committed"] = True

    postgres.transaction.side_effect = transaction
    return postgres


@pytest.fixture
def mock_audit():
    """AuditLogger double."""
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def echo_params():
    """execute_returning side effect: the inserted row is the dict of params."""

    def _returning(query, params=None):
        return [dict(params)]

    return _returning


@pytest.fixture
def merge_into():
    """
    Build an execute_returning side effect for UPDATEs: the stored row
    overlaid with the SET params.
    """

    def _build(base_row: dict):
        def _returning(query, params=None):
            return [{**base_row, **{k: v for k, v in params.items() if k in base_row}}]

        return _returning

    return _build


# =============================================================================
# ROW FACTORIES
# =============================================================================


@pytest.fixture
def make_client_row():
    """Factory for clients rows as the database returns them."""

    def _make(**overrides) -> dict:
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "name": "Jane Doe",
            "email": "billing@acme.example.com",
            "company_name": "Acme GmbH",
            "address": "Hauptstrasse 1, Berlin",
            "phone": None,
            "vat_number": None,
            "tax_exempt": False,
            "notes": None,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_invoice_row():
    """Factory for invoices rows. Defaults: sent, 100.00 USD, nothing paid."""

    def _make(**overrides) -> dict:
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "client_id": uuid4(),
            "recurring_invoice_id": None,
            "invoice_number": "INV-0001",
            "status": "sent",
            "currency": "USD",
            "subtotal": Decimal("100.00"),
            "discount_type": None,
            "discount_value": None,
            "discount_amount": Decimal("0.00"),
            "tax_rate": Decimal("0"),
            "tax_amount": Decimal("0.00"),
            "total": Decimal("100.00"),
            "amount_paid": Decimal("0.00"),
            "reverse_charge": False,
            "notes": None,
            "payment_terms": None,
            "issue_date": date(2024, 1, 1),
            "due_date": date(2024, 1, 31),
            "sent_at": FIXED_NOW,
            "paid_at": None,
            "canceled_at": None,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_line_item_row():
    """Factory for invoice_line_items rows."""

    def _make(**overrides) -> dict:
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "invoice_id": uuid4(),
            "description": "Consulting",
            "quantity": Decimal("1"),
            "rate": Decimal("100"),
            "amount": Decimal("100.00"),
            "sort_order": 0,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_schedule_row():
    """Factory for recurring_invoices rows. Defaults: active monthly schedule."""

    def _make(**overrides) -> dict:
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "client_id": uuid4(),
            "frequency": "monthly",
            "start_date": date(2024, 1, 1),
            "next_invoice_date": date(2024, 2, 1),
            "end_date": None,
            "is_active": True,
            "last_generated_at": None,
            "invoice_number_prefix": "INV",
            "currency": "USD",
            "discount_type": None,
            "discount_value": None,
            "tax_rate": Decimal("0"),
            "notes": None,
            "payment_terms": None,
            "payment_terms_days": None,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_template_line_row():
    """Factory for recurring_invoice_line_items rows."""

    def _make(**overrides) -> dict:
        row = {
            "id": uuid4(),
            "recurring_invoice_id": uuid4(),
            "description": "Monthly retainer",
            "quantity": Decimal("1"),
            "rate": Decimal("500"),
            "sort_order": 0,
        }
        row.update(overrides)
        return row

    return _make

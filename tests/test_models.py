"""
Tests for spendsync

Test strategy:
1. Unit tests for individual components (models, identity, reports)
2. Integration tests for flows (with a scripted fake server)
3. No real API calls in tests (httpx.MockTransport)
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter

from spendsync.models.expense import (
    DEFAULT_CATEGORY,
    Expense,
    Product,
    normalize_category,
    sort_newest_first,
    sorted_categories,
)
from spendsync.models.identity import (
    ExpenseIdentity,
    LocalId,
    ServerId,
    is_server_id,
    new_local_id,
    resolve_identity,
)
from spendsync.models.sync import ImportResult, UserSession
from spendsync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestExpenseModel:
    """Tests for the Expense and Product models."""

    def test_expense_creation(self):
        """Test Expense model creation."""
        expense = Expense(
            product=Product(name="Café"),
            price=Decimal("5500"),
            category="Bebidas",
            timestamp=datetime(2024, 1, 15, 10, 0),
        )
        assert expense.product.name == "Café"
        assert expense.price == Decimal("5500")
        assert expense.category == "Bebidas"
        assert isinstance(expense.identity, LocalId)

    def test_product_name_may_be_given_as_string(self):
        """Test that a bare product name is accepted."""
        expense = Expense(product="  Pan  ", price=1000, timestamp=datetime(2024, 1, 1))
        assert expense.product == Product(name="Pan")
        assert expense.product_name == "Pan"

    @pytest.mark.parametrize("price", [0, -1, "-0.01", Decimal("0")])
    def test_non_positive_price_rejected(self, price):
        """Test that zero and negative prices are rejected."""
        with pytest.raises(ValueError):
            Expense(product="Pan", price=price, timestamp=datetime(2024, 1, 1))

    @pytest.mark.parametrize("price", ["NaN", "Infinity"])
    def test_non_finite_price_rejected(self, price):
        """Test that NaN and infinite prices are rejected."""
        with pytest.raises(ValueError):
            Expense(product="Pan", price=Decimal(price), timestamp=datetime(2024, 1, 1))

    def test_float_price_keeps_its_decimal_text(self):
        """Test that 12.34 becomes Decimal('12.34'), not its binary expansion."""
        expense = Expense(product="Pan", price=12.34, timestamp=datetime(2024, 1, 1))
        assert expense.price == Decimal("12.34")

    def test_empty_product_rejected(self):
        """Test that an empty product name is rejected."""
        with pytest.raises(ValueError):
            Expense(product="   ", price=100, timestamp=datetime(2024, 1, 1))

    def test_unparsable_timestamp_rejected(self):
        """Test that a timestamp that is not a date is rejected."""
        with pytest.raises(ValueError):
            Expense(product="Pan", price=100, timestamp="last tuesday")

    @pytest.mark.parametrize("category", ["", "   ", None])
    def test_empty_category_becomes_default(self, category):
        """Test that missing categories are normalized to the sentinel."""
        expense = Expense(product="Pan", price=100, category=category, timestamp=datetime(2024, 1, 1))
        assert expense.category == DEFAULT_CATEGORY

    def test_assignment_is_validated(self):
        """Test that invariants also hold on attribute assignment."""
        expense = Expense(product="Pan", price=100, timestamp=datetime(2024, 1, 1))
        with pytest.raises(ValueError):
            expense.price = Decimal("0")
        expense.category = ""
        assert expense.category == DEFAULT_CATEGORY

    def test_normalize_category_strips(self):
        """Test normalize_category trims surrounding whitespace."""
        assert normalize_category("  Comida ") == "Comida"

    def test_sort_newest_first(self):
        """Test ordering by timestamp, newest first."""
        older = Expense(product="A", price=1, timestamp=datetime(2024, 1, 1))
        newer = Expense(product="B", price=1, timestamp=datetime(2024, 2, 1))
        assert sort_newest_first([older, newer]) == [newer, older]

    def test_sorted_categories_always_has_default(self):
        """Test the registry is sorted, de-duplicated and has the sentinel."""
        registry = sorted_categories(["Transporte", "Comida", "Comida", ""])
        assert registry == sorted(["Comida", "Transporte", DEFAULT_CATEGORY])


class TestIdentity:
    """Tests for expense identity classification."""

    @pytest.mark.parametrize("raw,expected", [
        ("123", True),
        ("0", True),
        ("0123", False),
        ("-5", False),
        ("abc", False),
        ("1.5", False),
        (" 7", False),
        ("", False),
        (str(uuid4()), False),
    ])
    def test_is_server_id(self, raw, expected):
        """Test the canonical non-negative integer rule."""
        assert is_server_id(raw) is expected

    def test_resolve_server_identity(self):
        """Test that numeric strings resolve to ServerId."""
        identity = resolve_identity("42")
        assert identity == ServerId(id=42)
        assert str(identity) == "42"

    def test_resolve_local_identity(self):
        """Test that anything else resolves to LocalId."""
        token = new_local_id()
        identity = resolve_identity(token)
        assert identity == LocalId(token=token)
        assert str(identity) == token

    def test_tagged_identity_union(self):
        """Test the discriminated union picks the variant by kind."""
        adapter = TypeAdapter(ExpenseIdentity)
        assert adapter.validate_python({"kind": "server", "id": 3}) == ServerId(id=3)
        assert adapter.validate_python({"kind": "local", "token": "abc"}) == LocalId(token="abc")

    def test_expense_server_backed(self):
        """Test is_server_backed follows the id shape."""
        server = Expense(id="42", product="Pan", price=1, timestamp=datetime(2024, 1, 1))
        local = Expense(product="Pan", price=1, timestamp=datetime(2024, 1, 1))
        assert server.is_server_backed is True
        assert local.is_server_backed is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            description="Expense added",
        )
        assert event.event_type == AuditEventType.EXPENSE_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SYNC_SUCCEEDED,
            description="Sync finished",
            details={"pulled": 3},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "sync_succeeded"
        assert log_dict["details"]["pulled"] == 3

    def test_long_description_is_clipped(self):
        """Test user-supplied names cannot push a description past its limit."""
        event = AuditEventBuilder.bulk_deleted(
            AuditEventType.CATEGORY_DELETED, "category", "x" * 600, 1, 0,
        )
        assert len(event.description) == 500
        assert event.description.endswith("...")
        assert event.entity_id == "x" * 600

    def test_audit_event_builder_sync_failed(self):
        """Test AuditEventBuilder.sync_failed picks the phase's event type."""
        correlation_id = uuid4()

        push = AuditEventBuilder.sync_failed("push", "network", "refused", correlation_id)
        pull = AuditEventBuilder.sync_failed("pull", "timeout", "slow", correlation_id)

        assert push.event_type == AuditEventType.SYNC_PUSH_FAILED
        assert pull.event_type == AuditEventType.SYNC_PULL_FAILED
        assert push.severity == AuditSeverity.ERROR
        assert push.correlation_id == correlation_id

    def test_audit_event_builder_expense_deleted(self):
        """Test AuditEventBuilder.expense_deleted."""
        event = AuditEventBuilder.expense_deleted("42", tombstoned=True)
        assert event.entity_id == "42"
        assert event.details == {"tombstoned": True}
        assert event.is_user_action is True


class TestSyncModels:
    """Tests for session and import result models."""

    def test_user_session_authorization_header(self):
        """Test bearer header rendering."""
        session = UserSession(email="ana@example.com", access_token="abc")
        assert session.authorization_header == {"Authorization": "Bearer abc"}

    def test_import_result_counts(self):
        """Test imported_count and has_skips."""
        result = ImportResult(
            expenses=[Expense(product="Pan", price=1, timestamp=datetime(2024, 1, 1))],
            skipped_count=2,
            skipped_reasons=["line 3: missing product", "line 4: invalid price ''"],
        )
        assert result.imported_count == 1
        assert result.has_skips is True

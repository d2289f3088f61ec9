"""
Integration tests for the ExpenseBook flows.

Components are wired by create_app_components() over an in-memory backend
and the fake server, exactly as the app wires them over real files and
the real API.
"""

import asyncio
import logging

import pytest
from datetime import datetime
from decimal import Decimal

from spendsync.auth import NotAuthenticatedError
from spendsync.models.audit import AuditEventType
from spendsync.models.expense import DEFAULT_CATEGORY, Expense
from spendsync.orchestrator import (
    ExpenseNotFoundError,
    ExpenseValidationError,
    create_app_components,
)
from spendsync.reports import ExpenseFilter
from spendsync.services.remote import SyncApiClient
from spendsync.config import get_settings
from spendsync.services.storage import InMemoryBackend, LocalRecordStore, StoreKeys
from spendsync.sync import PullFailure, PushFailure, SyncInProgressError

from conftest import pull_body, wire_record


@pytest.fixture
def components(backend, client):
    return create_app_components(backend=backend, client=client)


@pytest.fixture
def book(components):
    return components[0]


@pytest.fixture
def sessions(components):
    return components[1]


@pytest.fixture
def audit(components):
    return components[2]


@pytest.fixture
def seed(backend):
    """Write expenses straight into the store the book reads."""

    def _seed(*expenses: Expense) -> None:
        LocalRecordStore(backend).save_expenses(list(expenses))

    return _seed


class TestAddAndUpdate:
    """Tests for creating and editing expenses."""

    def test_add_expense_persists(self, book, backend):
        """Test a new expense is stored under a local id."""
        expense = book.add_expense("Café", Decimal("5500"), "Bebidas", datetime(2024, 3, 1, 9, 0))

        assert book.expenses() == [expense]
        assert expense.is_server_backed is False
        assert "Bebidas" in book.categories()
        assert StoreKeys.EXPENSES in backend.keys()

    def test_add_expense_defaults(self, book):
        """Test empty category becomes the sentinel and timestamp defaults to now."""
        expense = book.add_expense("Pan", 1000)
        assert expense.category == DEFAULT_CATEGORY
        assert book.categories() == [DEFAULT_CATEGORY]
        assert isinstance(expense.timestamp, datetime)

    @pytest.mark.parametrize("product,price,timestamp", [
        ("Pan", 0, None),
        ("Pan", -10, None),
        ("", 100, None),
        ("Pan", 100, "not a date"),
    ])
    def test_invalid_input_rejected_before_persisting(self, book, audit, product, price, timestamp):
        """Test bad input raises and writes nothing."""
        with pytest.raises(ExpenseValidationError):
            book.add_expense(product, price, timestamp=timestamp)

        assert book.expenses() == []
        assert audit.recent_events()[0].event_type == AuditEventType.VALIDATION_REJECTED

    def test_update_keeps_id(self, book):
        """Test editing in place preserves the identifier."""
        expense = book.add_expense("Café", 5000, "Bebidas", datetime(2024, 3, 1))

        updated = book.update_expense(expense.id, price=5500, category="Oficina")

        assert updated.id == expense.id
        assert updated.price == Decimal("5500")
        assert book.get_expense(expense.id).category == "Oficina"
        assert "Oficina" in book.categories()

    def test_update_to_invalid_price_rejected(self, book):
        """Test a rejected edit leaves the stored expense untouched."""
        expense = book.add_expense("Café", 5000, "Bebidas", datetime(2024, 3, 1))

        with pytest.raises(ExpenseValidationError):
            book.update_expense(expense.id, price=0)

        assert book.get_expense(expense.id).price == Decimal("5000")

    def test_update_unknown_id(self, book):
        """Test editing a missing expense raises."""
        with pytest.raises(ExpenseNotFoundError):
            book.update_expense("999", price=10)


class TestDeletion:
    """Tests for deletes and tombstones."""

    def test_delete_server_backed_adds_tombstone(self, book, seed, make_expense):
        """Test deleting id '42' records 42 as a pending deletion."""
        seed(make_expense(expense_id="42"))

        book.delete_expense("42")

        assert book.expenses() == []
        assert book.pending_deletions() == {42}

    def test_delete_local_expense_leaves_no_tombstone(self, book, make_expense, seed):
        """Test deleting a UUID-identified expense touches no tombstone."""
        local = make_expense()
        seed(local)

        book.delete_expense(local.id)

        assert book.expenses() == []
        assert book.pending_deletions() == set()

    def test_delete_unknown_id(self, book):
        """Test deleting a missing expense raises."""
        with pytest.raises(ExpenseNotFoundError):
            book.delete_expense("42")

    def test_delete_product(self, book, seed, make_expense):
        """Test all expenses of a product go, only server ones tombstoned."""
        keep = make_expense(product="Pan")
        seed(
            make_expense(product="Café", expense_id="7"),
            make_expense(product="Café"),
            keep,
        )

        removed = book.delete_product("Café")

        assert removed == 2
        assert book.expenses() == [keep]
        assert book.pending_deletions() == {7}

    def test_delete_category(self, book, seed, make_expense):
        """Test a category and its expenses are removed together."""
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        seed(*book.expenses(), make_expense(category="Bebidas", expense_id="11"))

        removed = book.delete_category("Bebidas")

        assert removed == 1
        assert [e.category for e in book.expenses()] == ["Comida"]
        assert "Bebidas" not in book.categories()
        assert book.pending_deletions() == {11}

    def test_default_category_survives_deletion(self, book):
        """Test deleting the sentinel removes its expenses but not itself."""
        book.add_expense("Pan", 1000)

        removed = book.delete_category(DEFAULT_CATEGORY)

        assert removed == 1
        assert book.expenses() == []
        assert DEFAULT_CATEGORY in book.categories()

    def test_delete_category_with_long_name(self, book, audit):
        """Test a very long category name is still deleted and audited."""
        name = "x" * 600
        book.add_expense("Pan", 1000, name, datetime(2024, 3, 1))

        assert book.delete_category(name) == 1
        assert book.expenses() == []
        assert name not in book.categories()
        event = audit.recent_events()[0]
        assert event.event_type == AuditEventType.CATEGORY_DELETED
        assert len(event.description) <= 500


class TestCsvFlows:
    """Tests for import and export through the book."""

    def test_import_merges_and_registers_categories(self, book):
        """Test imported rows are added to existing expenses."""
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        text = (
            "Producto,Precio,Categoria,Timestamp\n"
            "Café,5500,Bebidas,2024-03-02T09:00:00\n"
            "Roto,0,Bebidas,2024-03-02T09:00:00\n"
        )

        result = book.import_csv(text)

        assert result.imported_count == 1
        assert result.skipped_count == 1
        assert [e.product.name for e in book.expenses()] == ["Café", "Pan"]
        assert "Bebidas" in book.categories()

    def test_export(self, book):
        """Test export renders the stored expenses."""
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1, 8, 0))
        assert book.export_csv().splitlines()[1] == "Pan,1000,Comida,2024-03-01T08:00:00"

    def test_history_filter(self, book):
        """Test the book exposes filtered history."""
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        book.add_expense("Café", 5500, "Bebidas", datetime(2024, 3, 2))
        assert [e.product.name for e in book.history(ExpenseFilter(product="Café"))] == ["Café"]


class TestSyncFlow:
    """Tests for the sync round-trip through the book."""

    @pytest.mark.asyncio
    async def test_sync_requires_login(self, book, server):
        """Test nothing is sent while logged out."""
        with pytest.raises(NotAuthenticatedError):
            await book.sync()
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_successful_sync_replaces_local_state(self, book, sessions, server, seed, make_expense):
        """Test the store becomes an exact copy of the server."""
        await sessions.login("ana@example.com", "secret")
        seed(make_expense(product="A"), make_expense(product="B"), make_expense(expense_id="42"))
        book.delete_expense("42")
        server.respond(
            SyncApiClient.PULL_PATH, 200,
            pull_body([wire_record(9, product="C", category="Mercado")]),
        )

        result = await book.sync()

        assert server.pushed[0]["deleted_ids"] == [42]
        assert len(server.pushed[0]["expenses"]) == 2
        assert [e.id for e in book.expenses()] == ["9"]
        assert book.pending_deletions() == set()
        assert book.categories() == sorted([DEFAULT_CATEGORY, "Mercado"])
        assert book.last_sync_timestamp() == result.server_timestamp
        assert book.is_syncing is False

    @pytest.mark.asyncio
    async def test_push_failure_leaves_store_untouched(self, book, sessions, server, backend, seed, make_expense):
        """Test a failed push changes no persisted byte."""
        await sessions.login("ana@example.com", "secret")
        seed(make_expense(product="A"), make_expense(expense_id="42"))
        book.delete_expense("42")
        before = {key: backend.get_raw(key) for key in backend.keys()}
        server.respond(SyncApiClient.PUSH_PATH, 503, {"message": "maintenance"})

        with pytest.raises(PushFailure):
            await book.sync()

        assert {key: backend.get_raw(key) for key in backend.keys()} == before
        assert book.pending_deletions() == {42}

    @pytest.mark.asyncio
    async def test_pull_failure_keeps_tombstones(self, book, sessions, server, seed, make_expense):
        """Test a failed pull keeps local expenses and pending deletions."""
        await sessions.login("ana@example.com", "secret")
        local = make_expense(product="A")
        seed(local, make_expense(expense_id="42"))
        book.delete_expense("42")
        server.respond(SyncApiClient.PULL_PATH, 500, {"message": "boom"})

        with pytest.raises(PullFailure):
            await book.sync()

        assert book.expenses() == [local]
        assert book.pending_deletions() == {42}
        assert book.last_sync_timestamp() is None

    @pytest.mark.asyncio
    async def test_sync_twice_is_idempotent(self, book, sessions, server, backend):
        """Test two syncs against a stable server leave identical state."""
        await sessions.login("ana@example.com", "secret")
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        server.respond(
            SyncApiClient.PULL_PATH, 200,
            pull_body([wire_record(1, product="Pan", price=1000, category="Comida")]),
        )

        await book.sync()
        first = {key: backend.get_raw(key) for key in backend.keys()}
        await book.sync()
        second = {key: backend.get_raw(key) for key in backend.keys()}

        assert first == second

    @pytest.mark.asyncio
    async def test_mutations_rejected_while_syncing(self, book, sessions, server, backend, seed, make_expense):
        """Test edits during a running sync are refused, not silently lost."""
        await sessions.login("ana@example.com", "secret")
        seed(make_expense(product="A"), make_expense(expense_id="42"))
        server.gate = asyncio.Event()
        task = asyncio.create_task(book.sync())
        while not server.pushed:
            await asyncio.sleep(0)
        before = {key: backend.get_raw(key) for key in backend.keys()}

        assert book.is_syncing is True
        with pytest.raises(SyncInProgressError):
            book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        with pytest.raises(SyncInProgressError):
            book.delete_expense("42")
        with pytest.raises(SyncInProgressError):
            book.import_csv("Producto,Precio\nPan,1000\n")
        assert {key: backend.get_raw(key) for key in backend.keys()} == before

        server.gate.set()
        await task
        book.add_expense("Pan", 1000, "Comida", datetime(2024, 3, 1))
        assert [e.product.name for e in book.expenses()] == ["Pan"]


class TestComponentWiring:
    """Tests for create_app_components() settings handling."""

    def test_debug_mode_forces_debug_logging(self, monkeypatch, client):
        """Test DEBUG_MODE lowers the package log level to DEBUG."""
        monkeypatch.setenv("DEBUG_MODE", "true")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        get_settings.cache_clear()
        try:
            create_app_components(backend=InMemoryBackend(), client=client)
        finally:
            get_settings.cache_clear()

        assert logging.getLogger("spendsync").level == logging.DEBUG

    def test_log_level_used_without_debug_mode(self, monkeypatch, client):
        """Test LOG_LEVEL applies when debug mode is off."""
        monkeypatch.setenv("DEBUG_MODE", "false")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        get_settings.cache_clear()
        try:
            create_app_components(backend=InMemoryBackend(), client=client)
        finally:
            get_settings.cache_clear()

        assert logging.getLogger("spendsync").level == logging.WARNING

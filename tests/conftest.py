"""
Shared fixtures.

No test talks to a real server: the remote API is a FakeSyncServer served
through httpx.MockTransport, and storage is in memory unless a test asks
for tmp_path.
"""

import asyncio
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx
import pytest

from spendsync.audit import AuditLogger
from spendsync.config import RemoteSettings
from spendsync.models.expense import Expense
from spendsync.models.identity import new_local_id
from spendsync.services.remote import SyncApiClient
from spendsync.services.storage import InMemoryBackend, LocalRecordStore
from spendsync.sync import SyncEngine


BASE_URL = "https://sync.test"
SERVER_TIMESTAMP = "2024-03-20T12:00:00Z"


def wire_record(
    record_id: Any,
    product: str = "Café",
    price: Any = "5500.00",
    category: Optional[str] = "Bebidas",
    timestamp: str = "2024-03-15T10:30:00",
    deleted_at: Optional[str] = None,
) -> dict:
    """One expense as the pull endpoint returns it."""
    return {
        "id": record_id,
        "local_id": None,
        "productName": product,
        "price": price,
        "category": category,
        "timestamp": timestamp,
        "updated_at": timestamp,
        "deleted_at": deleted_at,
    }


def pull_body(
    expenses: Optional[list] = None,
    categories: Optional[list] = None,
    product_names: Optional[list] = None,
    server_timestamp: str = SERVER_TIMESTAMP,
) -> dict:
    return {
        "expenses": expenses or [],
        "categories": categories or [],
        "productNames": product_names or [],
        "server_timestamp": server_timestamp,
    }


class FakeSyncServer:
    """
    Scripted stand-in for the remote API.

    Each endpoint answers with a (status, body) tuple; a body that is an
    exception instance is raised instead, a str body is sent as plain text.
    Set `gate` to hold the push request until the event is set.
    """

    def __init__(self):
        self.responses: dict[str, tuple[int, Any]] = {
            SyncApiClient.PUSH_PATH: (200, {"created_count": 0, "updated_count": 0}),
            SyncApiClient.PULL_PATH: (200, pull_body()),
            SyncApiClient.LOGIN_PATH: (200, {"access_token": "tok-123", "token_type": "bearer"}),
            SyncApiClient.LOGOUT_PATH: (200, {"message": "bye"}),
        }
        self.requests: list[httpx.Request] = []
        self.pushed: list[dict] = []
        self.delay_seconds = 0.0
        self.gate: Optional[asyncio.Event] = None

    def respond(self, path: str, status: int, body: Any) -> None:
        self.responses[path] = (status, body)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == SyncApiClient.PUSH_PATH:
            self.pushed.append(json.loads(request.content))
            if self.gate is not None:
                await self.gate.wait()
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        status, body = self.responses[path]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def audit_logger():
    return AuditLogger(buffer_size=200)


@pytest.fixture
def store(backend, audit_logger):
    return LocalRecordStore(backend, audit_logger=audit_logger)


@pytest.fixture
def remote_settings():
    return RemoteSettings(
        base_url=BASE_URL,
        push_timeout_seconds=5,
        pull_timeout_seconds=5,
        auth_timeout_seconds=5,
    )


@pytest.fixture
def server():
    return FakeSyncServer()


@pytest.fixture
def client(remote_settings, server):
    return SyncApiClient(remote_settings, transport=server.transport())


@pytest.fixture
def engine(client, audit_logger):
    return SyncEngine(client, audit_logger=audit_logger)


@pytest.fixture
def make_expense():
    """Factory for valid expenses; a fresh local id unless one is given."""

    def _make(
        product: str = "Café",
        price: Any = Decimal("5500"),
        category: str = "Bebidas",
        timestamp: Optional[datetime] = None,
        expense_id: Optional[str] = None,
    ) -> Expense:
        return Expense(
            id=expense_id or new_local_id(),
            product=product,
            price=price,
            category=category,
            timestamp=timestamp or datetime(2024, 3, 15, 10, 30),
        )

    return _make

"""
Tests for the remote API client: request shape and failure classification.
"""

import httpx
import pytest

from spendsync.config import RemoteSettings
from spendsync.models.sync import FailureReason
from spendsync.services.remote import RemoteServiceError, SyncApiClient

from conftest import BASE_URL


class TestRequests:
    """Tests for what the client sends."""

    @pytest.mark.asyncio
    async def test_push_sends_bearer_and_full_batch(self, client, server):
        """Test the push body and authorization header."""
        body = await client.push_all([{"id": "1"}], [5, 9], "tok-abc")

        request = server.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}{SyncApiClient.PUSH_PATH}"
        assert request.headers["Authorization"] == "Bearer tok-abc"
        assert server.pushed == [{"expenses": [{"id": "1"}], "deleted_ids": [5, 9]}]
        assert body == {"created_count": 0, "updated_count": 0}

    @pytest.mark.asyncio
    async def test_fetch_uses_get(self, client, server):
        """Test the pull request."""
        await client.fetch_all("tok-abc")
        assert server.requests[0].method == "GET"
        assert server.paths == [SyncApiClient.PULL_PATH]

    @pytest.mark.asyncio
    async def test_login_has_no_bearer(self, client, server):
        """Test login sends credentials, not a token."""
        await client.login("ana@example.com", "secret")
        request = server.requests[0]
        assert "Authorization" not in request.headers

    def test_trailing_slash_stripped(self):
        """Test base_url normalization."""
        assert RemoteSettings(base_url="https://api.example.com/").base_url == "https://api.example.com"


class TestFailureClassification:
    """Tests for mapping transport problems to FailureReason."""

    @pytest.mark.asyncio
    async def test_non_2xx_is_http_status_with_server_message(self, client, server):
        """Test rejected requests keep the server's words."""
        server.respond(SyncApiClient.PUSH_PATH, 422, {"message": "price must be positive"})

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.push_all([], [], "tok")

        assert exc_info.value.reason == FailureReason.HTTP_STATUS
        assert exc_info.value.status_code == 422
        assert exc_info.value.server_message == "price must be positive"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, client, server):
        """Test an HTML error page still maps to HTTP_STATUS."""
        server.respond(SyncApiClient.PULL_PATH, 502, "<html>Bad gateway</html>")

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.fetch_all("tok")

        assert exc_info.value.reason == FailureReason.HTTP_STATUS
        assert exc_info.value.server_message is None

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self, client, server):
        """Test unreachable server maps to NETWORK."""
        server.respond(SyncApiClient.PULL_PATH, 200, httpx.ConnectError("refused"))

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.fetch_all("tok")

        assert exc_info.value.reason == FailureReason.NETWORK

    @pytest.mark.asyncio
    async def test_httpx_timeout_is_timeout(self, client, server):
        """Test transport timeouts map to TIMEOUT."""
        server.respond(SyncApiClient.PUSH_PATH, 200, httpx.ReadTimeout("slow"))

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.push_all([], [], "tok")

        assert exc_info.value.reason == FailureReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_non_json_success_is_malformed(self, client, server):
        """Test a 2xx body that is not JSON maps to MALFORMED_RESPONSE."""
        server.respond(SyncApiClient.PULL_PATH, 200, "ok")

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.fetch_all("tok")

        assert exc_info.value.reason == FailureReason.MALFORMED_RESPONSE

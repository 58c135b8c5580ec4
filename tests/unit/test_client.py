"""Unit tests for the DomoClient transport."""

import json

import httpx
import pytest

from domo_offboard.client import CSV_CONTENT_TYPE, DomoClient
from domo_offboard.exceptions import (
    AuthenticationError,
    ClientError,
    DomoAPIError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

# Test constants
RETRY_ATTEMPTS = 2
TOTAL_ATTEMPTS = RETRY_ATTEMPTS + 1


def make_client(instance_config, migration_config, handler, requests=None):
    """Build a client over an httpx.MockTransport that records requests."""

    def record(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return handler(request)

    client = DomoClient(
        instance_config,
        migration_config,
        transport=httpx.MockTransport(record),
    )
    client._backoff = lambda retry_state: 0
    return client


@pytest.mark.asyncio
class TestDomoClient:
    """Test the DomoClient wrapper."""

    async def test_initialization(self, instance_config, migration_config):
        client = DomoClient(instance_config, migration_config)

        assert client.instance_config == instance_config
        assert client._http_client is None
        with pytest.raises(NetworkError):
            _ = client.http_client

    async def test_request_returns_json_and_sends_token(
        self, instance_config, migration_config
    ):
        requests = []
        client = make_client(
            instance_config,
            migration_config,
            lambda request: httpx.Response(200, json={"ok": True}),
            requests,
        )

        async with client:
            result = await client.request(
                "POST", "api/search/v1/query", {"query": "*"}, params={"limit": 5}
            )

        assert result == {"ok": True}
        request = requests[0]
        assert request.url.host == "acme.domo.com"
        assert request.url.path == "/api/search/v1/query"
        assert request.url.params["limit"] == "5"
        assert request.headers["X-DOMO-Developer-Token"] == "test-token"
        assert json.loads(request.content) == {"query": "*"}

    async def test_empty_body_returns_none(self, instance_config, migration_config):
        client = make_client(
            instance_config, migration_config, lambda request: httpx.Response(204)
        )
        async with client:
            assert await client.request("DELETE", "/api/identity/v1/users/1") is None

    async def test_non_json_body_returns_text(self, instance_config, migration_config):
        client = make_client(
            instance_config, migration_config, lambda request: httpx.Response(200, text="done")
        )
        async with client:
            assert await client.request("PUT", "/x") == "done"

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (400, ClientError),
            (401, AuthenticationError),
            (404, ResourceNotFoundError),
        ],
    )
    async def test_client_errors_are_not_retried(
        self, instance_config, migration_config, status, error_type
    ):
        requests = []
        client = make_client(
            instance_config,
            migration_config,
            lambda request: httpx.Response(status, text="nope"),
            requests,
        )

        async with client:
            with pytest.raises(error_type) as exc_info:
                await client.request("GET", "/api/content/v2/users/me")

        assert exc_info.value.status_code == status
        assert len(requests) == 1

    async def test_server_error_retried_then_succeeds(self, instance_config, migration_config):
        responses = iter([httpx.Response(503), httpx.Response(200, json=[1, 2])])
        requests = []
        client = make_client(
            instance_config, migration_config, lambda request: next(responses), requests
        )

        async with client:
            result = await client.request("GET", "/api/social/v4/alerts")

        assert result == [1, 2]
        assert len(requests) == 2

    async def test_server_error_exhausts_retries(self, instance_config, migration_config):
        requests = []
        client = make_client(
            instance_config,
            migration_config,
            lambda request: httpx.Response(500, text="boom"),
            requests,
        )

        async with client:
            with pytest.raises(ServerError):
                await client.request("GET", "/api/social/v4/alerts")

        assert len(requests) == TOTAL_ATTEMPTS
        assert client.get_stats()["error_count"] == TOTAL_ATTEMPTS

    async def test_rate_limit_carries_retry_after(self, instance_config, migration_config):
        client = make_client(
            instance_config,
            migration_config,
            lambda request: httpx.Response(429, headers={"Retry-After": "0"}),
        )

        async with client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.request("GET", "/x")

        assert exc_info.value.retry_after == 0

    async def test_network_error_mapped(self, instance_config, migration_config):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(instance_config, migration_config, fail)

        async with client:
            with pytest.raises(NetworkError, match="connection refused"):
                await client.request("GET", "/x")

    async def test_append_csv_uses_upload_flow(self, instance_config, migration_config):
        requests = []

        def handler(request):
            if request.url.path.endswith("/uploads"):
                return httpx.Response(200, json={"uploadId": 7})
            return httpx.Response(200, json={})

        client = make_client(instance_config, migration_config, handler, requests)

        async with client:
            await client.append_csv("audit-ds", "a,b\n")

        base = "/api/data/v3/datasources/audit-ds/uploads"
        assert [(r.method, r.url.path) for r in requests] == [
            ("POST", base),
            ("PUT", f"{base}/7/parts/1"),
            ("PUT", f"{base}/7/commit"),
        ]
        assert json.loads(requests[0].content)["action"] == "APPEND"
        assert requests[1].headers["Content-Type"] == CSV_CONTENT_TYPE
        assert requests[1].content == b"a,b\n"
        assert json.loads(requests[2].content)["index"] is True

    async def test_health_check(self, instance_config, migration_config):
        client = make_client(
            instance_config,
            migration_config,
            lambda request: httpx.Response(200, json={"id": 1234}),
        )

        async with client:
            health = await client.health_check()

        assert health == {
            "status": "healthy",
            "url": "https://acme.domo.com",
            "user_id": 1234,
        }


class TestDomoAPIError:
    def test_str_includes_status_and_truncated_response(self):
        error = DomoAPIError("GET /x failed", 500, "x" * 300)
        text = str(error)
        assert "GET /x failed" in text
        assert "Status: 500" in text
        assert text.endswith("...")

"""Shared pytest fixtures for the offboarding tool tests."""

import csv
import io
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from domo_offboard.config import (
    Config,
    DeploymentConfig,
    DomoInstanceConfig,
    MigrationConfig,
)
from domo_offboard.resources.base import MigrationContext
from domo_offboard.users import UserDirectory

AUDIT_DATASET_ID = "audit-dataset"
REPORTS_DATASET_ID = "reports-dataset"
SERVICE_ACCOUNT_ID = 1486980888


class FakeDomo:
    """In-memory stand-in for DomoClient.

    Routes are matched on exact (method, path). A route's response may be a
    value, an exception instance to raise, or a callable taking
    `(body, params)`. Unrouted requests answer with an empty body.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, Any, dict[str, Any] | None]] = []
        self.appends: list[str] = []
        self.append_error: Exception | None = None
        self.request = AsyncMock(side_effect=self._request)
        self.append_csv = AsyncMock(side_effect=self._append_csv)

    def on(self, method: str, path: str, response: Any) -> None:
        self.routes[(method.upper(), path)] = response

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        content_type: str = "application/json",
    ) -> Any:
        self.calls.append((method.upper(), path, body, params))
        response = self.routes.get((method.upper(), path))
        if callable(response):
            response = response(body, params)
        if isinstance(response, Exception):
            raise response
        return response

    async def _append_csv(self, dataset_id: str, csv_text: str) -> None:
        if self.append_error is not None:
            raise self.append_error
        self.appends.append(csv_text)

    def calls_to(self, method: str, path: str) -> list[tuple[str, str, Any, Any]]:
        return [c for c in self.calls if c[0] == method.upper() and c[1] == path]

    def mutation_calls(self) -> list[tuple[str, str, Any, Any]]:
        """Calls that change state, excluding listing queries."""
        return [
            c
            for c in self.calls
            if c[0] in {"PUT", "DELETE", "PATCH"}
            or (c[0] == "POST" and _is_mutation_post(c[1], c[2]))
        ]

    @property
    def audit_rows(self) -> list[list[str]]:
        rows: list[list[str]] = []
        for text in self.appends:
            rows.extend(csv.reader(io.StringIO(text)))
        return rows


_LISTING_POSTS = (
    "/search",
    "/query",
    "/list",
    "/adminsummary",
    "/execute/",
    "/graphql",
)


def _is_mutation_post(path: str, body: Any) -> bool:
    if "/graphql" in path:
        return isinstance(body, list) and any(
            op.get("operationName") == "replaceApprovers" for op in body
        )
    return not any(marker in path for marker in _LISTING_POSTS)


@pytest.fixture
def fake_domo():
    """Create a fake Domo backend with no content."""
    return FakeDomo()


@pytest.fixture
def instance_config():
    """Create a test instance configuration."""
    return DomoInstanceConfig(instance="acme", access_token="test-token")


@pytest.fixture
def migration_config():
    """Create a test migration configuration."""
    return MigrationConfig(max_concurrent=5, retry_attempts=2, retry_delay=0.1)


@pytest.fixture
def deployment_config():
    """Create a test deployment configuration."""
    return DeploymentConfig(
        audit_log_dataset_id=AUDIT_DATASET_ID,
        scheduled_reports_dataset_id=REPORTS_DATASET_ID,
        service_account_id=SERVICE_ACCOUNT_ID,
    )


@pytest.fixture
def config(instance_config, migration_config, deployment_config):
    """Create a full test configuration."""
    return Config(
        domo=instance_config,
        deployment=deployment_config,
        migration=migration_config,
    )


@pytest.fixture
def context(fake_domo, deployment_config):
    """Create a migration context moving user 42's content to user 99."""
    return MigrationContext(
        client=fake_domo,
        source_user_id=42,
        new_owner_id=99,
        deployment=deployment_config,
        users=UserDirectory(fake_domo),
    )


@pytest.fixture
def mock_client():
    """Create a mock client whose requests all succeed with no content."""
    client = Mock()
    client.request = AsyncMock(return_value=None)
    client.append_csv = AsyncMock(return_value=None)
    return client

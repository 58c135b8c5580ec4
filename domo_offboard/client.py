"""Domo API client with rate limiting, retry logic and error mapping."""

import time
from typing import Any

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from domo_offboard.config import DomoInstanceConfig, MigrationConfig
from domo_offboard.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ClientError,
    DomoAPIError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json"
CSV_CONTENT_TYPE = "text/csv"

_RETRYABLE = (ServerError, NetworkError, RateLimitError)


class DomoClient:
    """Thin async wrapper around the Domo product APIs.

    Provides:
    - `request(method, path, body)` returning the parsed response
    - Mapping of non-2xx responses onto the DomoAPIError hierarchy
    - Retry with exponential backoff for transient failures
    - Rate limiting and structured logging
    """

    def __init__(
        self,
        instance_config: DomoInstanceConfig,
        migration_config: MigrationConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            instance_config: Instance URL and access token.
            migration_config: Retry, timeout and rate limit settings.
            transport: Optional httpx transport, used by tests.
        """
        self.instance_config = instance_config
        self.migration_config = migration_config
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None
        self._throttler = Throttler(
            rate_limit=migration_config.rate_limit_per_minute, period=60
        )
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: float | None = None
        self._backoff = wait_exponential(
            multiplier=migration_config.retry_delay, max=30.0
        )
        self._logger = logger.bind(instance=instance_config.base_url)

    async def __aenter__(self) -> "DomoClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._http_client is not None:
            return

        self._http_client = httpx.AsyncClient(
            base_url=self.instance_config.base_url,
            timeout=httpx.Timeout(self.migration_config.timeout_seconds),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            headers={
                "X-DOMO-Developer-Token": self.instance_config.access_token,
                "Accept": JSON_CONTENT_TYPE,
            },
            transport=self._transport,
        )
        self._logger.info("Connected to Domo instance")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            try:
                await self._http_client.aclose()
            except Exception as e:
                self._logger.warning("Error closing HTTP client", error=str(e))
            finally:
                self._http_client = None
            self._logger.info("Closed connection to Domo instance")

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            raise NetworkError("Not connected to Domo instance")
        return self._http_client

    async def health_check(self) -> dict[str, Any]:
        """Check that the instance is reachable and the token is accepted.

        Returns:
            Health check data including the id of the authenticated user.
        """
        me = await self.request("GET", "/api/content/v2/users/me")
        health_data = {
            "status": "healthy",
            "url": self.instance_config.base_url,
            "user_id": me.get("id") if isinstance(me, dict) else None,
        }
        self._logger.debug("Health check passed", health_data=health_data)
        return health_data

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> Any:
        """Issue a request and return the parsed response.

        Transient failures (5xx, network errors, 429) are retried with
        exponential backoff; everything else raises immediately.

        Args:
            method: HTTP method.
            path: Path relative to the instance URL.
            body: JSON-serializable body, or text when content_type is not JSON.
            params: Query parameters.
            content_type: Request body content type.

        Returns:
            Parsed JSON, response text, or None for an empty body.

        Raises:
            DomoAPIError: If the request fails after all retries.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.migration_config.retry_attempts + 1),
            wait=self._wait,
            retry=retry_if_exception_type(_RETRYABLE),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                response = await self._send(method, path, body, params, content_type)
        return self._parse(response)

    async def append_csv(self, dataset_id: str, csv_text: str) -> Any:
        """Append CSV rows to a dataset through the upload API.

        Starts an APPEND upload, sends the rows as a single part and commits.
        """
        upload_path = f"/api/data/v3/datasources/{dataset_id}/uploads"
        upload = await self.request(
            "POST",
            upload_path,
            {"action": "APPEND", "message": "Uploading", "appendId": "latest"},
        )
        upload_id = upload["uploadId"]
        await self.request(
            "PUT",
            f"{upload_path}/{upload_id}/parts/1",
            csv_text,
            content_type=CSV_CONTENT_TYPE,
        )
        return await self.request(
            "PUT",
            f"{upload_path}/{upload_id}/commit",
            {"index": True, "appendId": "latest", "message": "Append successful"},
        )

    async def _send(
        self,
        method: str,
        path: str,
        body: Any,
        params: dict[str, Any] | None,
        content_type: str,
    ) -> httpx.Response:
        async with self._throttler:
            self._request_count += 1
            self._last_request_time = time.time()
            request_id = f"req_{self._request_count}"

            kwargs: dict[str, Any] = {"params": params}
            if body is not None:
                if content_type == JSON_CONTENT_TYPE:
                    kwargs["json"] = body
                else:
                    kwargs["content"] = body
                kwargs["headers"] = {"Content-Type": content_type}

            self._logger.debug(
                "Making API request",
                request_id=request_id,
                method=method,
                path=path,
                has_body=body is not None,
            )

            try:
                response = await self.http_client.request(
                    method.upper(), "/" + path.lstrip("/"), **kwargs
                )
            except httpx.RequestError as e:
                self._error_count += 1
                self._logger.error(
                    "Network error during API request",
                    request_id=request_id,
                    method=method,
                    path=path,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e

            self._logger.debug(
                "API request completed",
                request_id=request_id,
                status_code=response.status_code,
            )

            if response.is_success:
                return response

            self._error_count += 1
            raise self._error_for(method, path, response)

    def _error_for(
        self, method: str, path: str, response: httpx.Response
    ) -> DomoAPIError:
        status = response.status_code
        message = f"{method.upper()} {path} failed"
        if status == 401:
            return AuthenticationError(message, status, response.text)
        if status == 403:
            return AuthorizationError(message, status, response.text)
        if status == 404:
            return ResourceNotFoundError(message, status, response.text)
        if status == 429:
            return RateLimitError(
                message,
                status,
                response.text,
                retry_after=self._get_retry_after(response),
            )
        if 400 <= status < 500:
            return ClientError(message, status, response.text)
        if 500 <= status < 600:
            return ServerError(message, status, response.text)
        return DomoAPIError(f"Unexpected status code: {status}", status, response.text)

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> int | None:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError) and error.retry_after:
            return float(error.retry_after)
        return self._backoff(retry_state)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self._logger.warning(
            "Request failed, will retry",
            attempt=retry_state.attempt_number,
            error=str(error),
            error_type=type(error).__name__,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics for monitoring."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
            "last_request_time": self._last_request_time,
        }

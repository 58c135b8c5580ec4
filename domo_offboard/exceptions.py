"""Exception classes for the Domo transport and the transfer orchestration."""


class DomoAPIError(Exception):
    """Base exception for failed Domo API requests."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class AuthenticationError(DomoAPIError):
    """Raised when authentication fails (401)."""

    pass


class AuthorizationError(DomoAPIError):
    """Raised when authorization fails (403)."""

    pass


class RateLimitError(DomoAPIError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status_code, response_text)
        self.retry_after = retry_after


class ClientError(DomoAPIError):
    """Raised for 4xx client errors."""

    pass


class ResourceNotFoundError(ClientError):
    """Raised when a requested resource is not found (404)."""

    pass


class ServerError(DomoAPIError):
    """Raised for 5xx server errors."""

    pass


class NetworkError(DomoAPIError):
    """Raised for network-related errors."""

    pass


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""

    pass


class MigrationError(Exception):
    """Base exception for ownership transfer errors."""

    def __init__(self, message: str, kind_tag: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind_tag = kind_tag


class EnumerationError(MigrationError):
    """A listing page could not be fetched."""

    pass


class TransferError(MigrationError):
    """A transfer call failed outright instead of reporting per-resource outcomes."""

    pass

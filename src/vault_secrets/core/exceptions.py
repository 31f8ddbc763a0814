"""Custom exceptions for the Vault secrets client.

Defines a hierarchy of exceptions with error codes, messages, and context
information so callers can tell configuration mistakes, authentication
failures and backend request failures apart.
"""

from typing import Any


class VaultError(Exception):
    """Base exception for all Vault secrets client errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional context information
        cause: Original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary format."""
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"[{self.code}] {self.message}"


class ConfigurationError(VaultError):
    """Raised when client configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        config_details = details or {}
        if errors:
            config_details["errors"] = list(errors)

        super().__init__(message, "CONFIGURATION_ERROR", config_details)
        self.errors = list(errors or [])


class AuthenticationError(VaultError):
    """Raised when obtaining or renewing a session token fails."""

    def __init__(
        self,
        message: str = "Authentication failed",
        method: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        auth_details = details or {}
        if method:
            auth_details["method"] = method

        super().__init__(message, "AUTHENTICATION_ERROR", auth_details, cause)
        self.method = method


class RequestError(VaultError):
    """Raised when a backend request fails after classification.

    Attributes:
        status: HTTP status code, None for transport failures
        retryable: Whether the failure class is worth retrying
        errors: Error messages reported by the backend
        url: Request URL
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        retryable: bool = False,
        errors: list[str] | None = None,
        url: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        request_details: dict[str, Any] = {"retryable": retryable}
        if status is not None:
            request_details["status"] = status
        if errors:
            request_details["errors"] = list(errors)
        if url:
            request_details["url"] = url

        super().__init__(message, "REQUEST_ERROR", request_details, cause)
        self.status = status
        self.retryable = retryable
        self.errors = list(errors or [])
        self.url = url


class TransportError(VaultError):
    """Raised by a transport when the HTTP exchange itself fails."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = {"url": url} if url else {}
        super().__init__(message, "TRANSPORT_ERROR", details, cause)
        self.url = url


class SecretKeyNotFoundError(VaultError):
    """Raised when a secret exists but does not hold the requested key."""

    def __init__(self, path: str, key: str) -> None:
        super().__init__(
            f"Key '{key}' not found in secret at path: {path}",
            "SECRET_KEY_NOT_FOUND",
            {"path": path, "key": key},
        )
        self.path = path
        self.key = key

"""Classification of backend failures into typed, retry-aware errors."""

import asyncio
import json
from typing import Any

from ..core.exceptions import RequestError, TransportError

RETRYABLE_STATUS_FLOOR = 500
TOO_MANY_REQUESTS = 429

TRANSIENT_ERRORS = (TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError)


def is_retryable_status(status: int) -> bool:
    """Server errors and rate limiting are worth retrying."""
    return status >= RETRYABLE_STATUS_FLOOR or status == TOO_MANY_REQUESTS


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether an exception describes a transient failure."""
    if isinstance(error, RequestError):
        return error.retryable
    if isinstance(error, TRANSIENT_ERRORS):
        return True
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return is_retryable_status(status)
    return False


def parse_error_body(body: str) -> list[str]:
    """Extract backend error messages, falling back to the raw text."""
    if not body:
        return []
    try:
        parsed: Any = json.loads(body)
    except ValueError:
        return [body]

    if isinstance(parsed, dict) and isinstance(parsed.get("errors"), list):
        return [str(error) for error in parsed["errors"]]
    return [body]


def classify_response(status: int, body: str, url: str) -> RequestError:
    """Turn a non-2xx response into a RequestError."""
    errors = parse_error_body(body)
    summary = f": {'; '.join(errors)}" if errors else ""
    return RequestError(
        f"Vault request failed with status {status}{summary}",
        status=status,
        retryable=is_retryable_status(status),
        errors=errors,
        url=url,
    )


def classify_transport_error(error: BaseException, url: str) -> RequestError:
    """Turn an exception raised by the transport into a RequestError.

    Network failures and timeouts are retryable; anything else the transport
    raises is reported once without retrying.
    """
    if isinstance(error, asyncio.TimeoutError | TimeoutError):
        message = f"Vault request timed out: {url}"
    else:
        message = f"Vault request failed: {str(error) or type(error).__name__}"
    return RequestError(
        message,
        retryable=is_retryable_error(error),
        errors=[str(error)] if str(error) else [],
        url=url,
        cause=error if isinstance(error, Exception) else None,
    )

"""Single-request execution with timeout, retry and backoff."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

from ..core.config import VaultConfig
from ..core.exceptions import RequestError
from ..core.logging import get_logger
from .errors import classify_response, classify_transport_error
from .metrics import MetricsCollector
from .transport import Transport, TransportResponse

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RequestExecutor:
    """Perform Vault API calls on behalf of the client.

    Each ``execute()`` call makes up to ``max_retries + 1`` attempts. Server
    errors, rate limiting and transport failures are retried after
    ``retry_delay_ms * 2**attempt`` milliseconds; any other status fails
    immediately. Metrics are recorded once per call, not per attempt.
    """

    def __init__(
        self,
        config: VaultConfig,
        transport: Transport,
        metrics: MetricsCollector,
        token_provider: Callable[[], str | None],
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport = transport
        self._metrics = metrics
        self._token_provider = token_provider
        self._sleep = sleep

    def build_url(self, path: str, params: dict[str, Any] | None = None) -> str:
        url = f"{self._config.address}/{path.lstrip('/')}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def build_headers(self, token: str | None = None, authenticated: bool = True) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if authenticated and token is None:
            token = self._token_provider()
        if authenticated and token:
            headers["X-Vault-Token"] = token
        if self._config.namespace:
            headers["X-Vault-Namespace"] = self._config.namespace
        return headers

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before the retry that follows ``attempt``."""
        return self._config.retry_delay_ms * (2**attempt) / 1000

    async def execute(
        self,
        method: str,
        path: str,
        body: Any | None = None,
        params: dict[str, Any] | None = None,
        *,
        token: str | None = None,
        authenticated: bool = True,
        max_retries: int | None = None,
    ) -> dict[str, Any]:
        """Execute a request and return the parsed JSON body.

        Args:
            method: HTTP method
            path: API path, e.g. ``/v1/secret/data/app``
            body: JSON payload
            params: Query parameters
            token: Token to send instead of the current session token
            authenticated: Send no token at all when False
            max_retries: Override the configured retry count

        Returns:
            Parsed response body, ``{}`` for empty responses

        Raises:
            RequestError: On a non-retryable status or once retries are exhausted
        """
        url = self.build_url(path, params)
        timeout = self._config.timeout_ms / 1000
        last_attempt = self._config.max_retries if max_retries is None else max_retries
        started = time.perf_counter()

        for attempt in range(last_attempt + 1):
            headers = self.build_headers(token, authenticated)
            logger.debug("Vault request", method=method, url=url, attempt=attempt + 1)

            try:
                response = await asyncio.wait_for(
                    self._transport.request(
                        method, url, headers=headers, json_body=body, timeout=timeout
                    ),
                    timeout=timeout,
                )
            except Exception as e:
                error = classify_transport_error(e, url)
                if not error.retryable or attempt == last_attempt:
                    self._finish(started, False, method)
                    raise error from e
                await self._retry(attempt, method, url, str(e))
                continue

            if response.ok:
                try:
                    parsed = self._parse(response)
                except ValueError as e:
                    self._finish(started, False, method)
                    raise RequestError(
                        "Vault returned a malformed response body",
                        status=response.status,
                        url=url,
                        cause=e,
                    ) from e
                self._finish(started, True, method)
                return parsed

            error = classify_response(response.status, response.body, url)
            if not error.retryable or attempt == last_attempt:
                self._finish(started, False, method)
                raise error
            await self._retry(attempt, method, url, f"status {response.status}")

        raise RequestError("Retry loop exited without a result", url=url)

    async def _retry(self, attempt: int, method: str, url: str, reason: str) -> None:
        delay = self.backoff_delay(attempt)
        logger.warning(
            f"Request failed, retrying in {delay}s",
            method=method,
            url=url,
            attempt=attempt + 1,
            error=reason,
        )
        await self._sleep(delay)

    def _finish(self, started: float, success: bool, method: str) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        self._metrics.record_request(duration_ms, success, method)

    @staticmethod
    def _parse(response: TransportResponse) -> dict[str, Any]:
        if response.status == 204 or not response.body:
            return {}
        parsed = response.json()
        return parsed if isinstance(parsed, dict) else {"data": parsed}

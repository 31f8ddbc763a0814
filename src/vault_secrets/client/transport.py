"""HTTP transport used by the request executor.

The executor only depends on the ``Transport`` protocol, so tests and
embedding applications can supply their own fetch-like primitive. The
default implementation runs on a pooled aiohttp session.
"""

import json
import ssl
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from ..core.config import TLSConfig
from ..core.exceptions import TransportError
from ..core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Status and raw body of a completed HTTP exchange."""

    status: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body) if self.body else {}


class Transport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Any | None = None,
        timeout: float,
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


def build_ssl_context(tls: TLSConfig | None) -> ssl.SSLContext | bool:
    """Build the aiohttp ``ssl`` argument from TLS settings."""
    if tls is None:
        return True
    if tls.skip_verify:
        return False
    if not (tls.ca_cert or tls.client_cert):
        return True

    context = ssl.create_default_context(cafile=tls.ca_cert)
    if tls.client_cert:
        context.load_cert_chain(certfile=tls.client_cert, keyfile=tls.client_key)
    return context


class AiohttpTransport:
    """Transport backed by a lazily created ``aiohttp.ClientSession``."""

    def __init__(self, tls: TLSConfig | None = None, user_agent: str = "vault-secrets-client/0.1.0"):
        self._tls = tls
        self._user_agent = user_agent
        self._session: aiohttp.ClientSession | None = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is created."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                limit_per_host=10,
                ttl_dns_cache=300,
                ssl=build_ssl_context(self._tls),
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": self._user_agent},
            )
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Any | None = None,
        timeout: float,
    ) -> TransportResponse:
        session = await self._ensure_session()
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=json.dumps(json_body) if json_body is not None else None,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.text(errors="replace")
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except aiohttp.ClientError as e:
            logger.debug("HTTP exchange failed", url=url, error=str(e))
            raise TransportError(f"HTTP request to {url} failed: {e}", url=url, cause=e) from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

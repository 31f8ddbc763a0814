"""Pytest configuration and shared fixtures.

Provides in-memory fakes for the HTTP transport, the renewal timer, the
wall clock and the backoff sleep so client behaviour can be exercised
without a Vault server or real waiting.
"""

import json
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from vault_secrets.client import SecretStoreClient
from vault_secrets.client.transport import TransportResponse
from vault_secrets.core.config import get_settings

VAULT_ADDR = "http://vault:8200"
START_TIME = 1_700_000_000.0

ENV_VARS = (
    "VAULT_ADDR",
    "VAULT_TOKEN",
    "VAULT_ROLE_ID",
    "VAULT_SECRET_ID",
    "VAULT_NAMESPACE",
    "VAULT_CACHE_TTL",
    "VAULT_ENABLE_CACHE",
    "VAULT_SKIP_VERIFY",
    "VAULT_CA_CERT",
    "VAULT_CLIENT_CERT",
    "VAULT_APPROLE_MOUNT_PATH",
    "VAULT_LOG_LEVEL",
    "VAULT_ENVIRONMENT",
    "VAULT_LOGS_DIR",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "DB_SSL",
    "JWT_SECRET",
    "JWT_ISSUER",
    "JWT_EXPIRATION_HOURS",
    "INTERNAL_API_KEY",
)


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    json_body: Any
    timeout: float

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def query(self) -> dict[str, list[str]]:
        return parse_qs(urlsplit(self.url).query)


class FakeTransport:
    """Scripted transport: responses are queued per (method, path).

    The last queued item for a route is reused once the queue is down to
    one, so a single ``add`` answers every request to that route.
    Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], list[Any]] = defaultdict(list)
        self.calls: list[RecordedCall] = []
        self.closed = False

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        error: BaseException | None = None,
    ) -> "FakeTransport":
        if error is not None:
            item: Any = error
        elif isinstance(body, dict | list):
            item = TransportResponse(status=status, body=json.dumps(body))
        else:
            item = TransportResponse(status=status, body=body or "")
        self._routes[(method, path)].append(item)
        return self

    def replace(self, method: str, path: str, **kwargs: Any) -> "FakeTransport":
        """Drop whatever is queued for a route and queue a new answer."""
        self._routes.pop((method, path), None)
        return self.add(method, path, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Any | None = None,
        timeout: float,
    ) -> TransportResponse:
        call = RecordedCall(method, url, dict(headers), json_body, timeout)
        self.calls.append(call)

        queue = self._routes.get((method, call.path))
        if not queue:
            return TransportResponse(status=404, body=json.dumps({"errors": []}))
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method and c.path == path]

    async def close(self) -> None:
        self.closed = True


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records armed timers; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: list[tuple[float, Callable[[], Any], FakeHandle]] = []

    def after(self, delay: float, callback: Callable[[], Any]) -> FakeHandle:
        handle = FakeHandle()
        self.timers.append((delay, callback, handle))
        return handle

    @property
    def pending(self) -> list[tuple[float, Callable[[], Any], FakeHandle]]:
        return [timer for timer in self.timers if not timer[2].cancelled]

    @property
    def pending_delays(self) -> list[float]:
        return [delay for delay, _, _ in self.pending]

    async def fire(self) -> None:
        """Run the most recently armed pending timer."""
        timer = self.pending[-1]
        self.timers.remove(timer)
        await timer[1]()


class FakeClock:
    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Backoff sleep that returns immediately and remembers each delay."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


def iso_timestamp(epoch: float) -> str:
    """Format an epoch timestamp the way Vault reports ``expire_time``."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def token_config(**overrides: Any) -> dict[str, Any]:
    return {
        "address": VAULT_ADDR,
        "auth_method": "token",
        "token": "t1",
        **overrides,
    }


def approle_config(**overrides: Any) -> dict[str, Any]:
    return {
        "address": VAULT_ADDR,
        "auth_method": "approle",
        "app_role": {"role_id": "role-123", "secret_id": "secret-456"},
        **overrides,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(transport, scheduler, clock, sleep):
    """Factory for clients wired to the fakes."""

    def factory(config: dict[str, Any] | None = None, **kwargs: Any) -> SecretStoreClient:
        return SecretStoreClient(
            config or token_config(),
            transport=transport,
            scheduler=scheduler,
            clock=clock,
            sleep=sleep,
            **kwargs,
        )

    return factory


@pytest.fixture
def lookup_ok(transport, clock):
    """Answer token self-lookups with a token valid for ``ttl`` seconds."""

    def configure(ttl: float | None = 3600) -> None:
        data = {"expire_time": iso_timestamp(clock.now + ttl)} if ttl else {"expire_time": None}
        transport.add("GET", "/v1/auth/token/lookup-self", body={"data": data})

    return configure


@pytest.fixture
def clean_env(monkeypatch):
    """Remove Vault and fallback variables and the cached settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()

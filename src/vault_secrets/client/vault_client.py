"""
Vault secrets client facade.

Composes configuration validation, authentication, background token
renewal, the secret cache and the retrying request executor behind a small
async API for application services.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from prometheus_client import CollectorRegistry

from ..core.config import VaultConfig, validate_config
from ..core.exceptions import SecretKeyNotFoundError, VaultError
from ..core.logging import get_logger
from .auth import Authenticator, SessionStore
from .cache import SecretCache, cache_key
from .executor import RequestExecutor, Sleep
from .metrics import MetricsCollector
from .models import ClientState, Metrics, Secret, SecretList
from .paths import api_path, create_kv2_path
from .renewal import AsyncioScheduler, Scheduler, TokenRenewalScheduler
from .transport import AiohttpTransport, Transport

logger = get_logger(__name__)

HEALTH_PATH = "/v1/sys/health"

_READY_STATES = frozenset(
    {ClientState.READY, ClientState.RENEWING, ClientState.REAUTHENTICATING}
)
_MISSING: Any = object()


class SecretStoreClient:
    """
    Async client for a Vault-compatible KV v2 secret store.

    Features:
    - Static token and AppRole authentication
    - Automatic token renewal with re-authentication fallback
    - Secret caching with TTL and write invalidation
    - Retry logic with exponential backoff
    - Running metrics with a per-client Prometheus registry
    """

    def __init__(
        self,
        config: VaultConfig | dict[str, Any],
        *,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Sleep = asyncio.sleep,
        registry: CollectorRegistry | None = None,
        on_auth_degraded: Callable[[VaultError], None] | None = None,
    ):
        """Validate configuration and wire components; no network activity.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = validate_config(config)
        self._clock = clock
        self._owns_transport = transport is None
        self._transport = transport or AiohttpTransport(self.config.tls)
        self._on_auth_degraded = on_auth_degraded

        self._metrics = MetricsCollector(registry)
        self._sessions = SessionStore()
        self._cache: SecretCache[Secret] = SecretCache(self.config.cache_ttl_seconds, clock)
        self._executor = RequestExecutor(
            self.config,
            self._transport,
            self._metrics,
            token_provider=lambda: self._sessions.token,
            sleep=sleep,
        )
        self._authenticator = Authenticator(
            self.config, self._executor, self._sessions, self._metrics, clock
        )
        self._renewal = TokenRenewalScheduler(
            self._authenticator,
            self._sessions,
            scheduler or AsyncioScheduler(),
            clock,
            on_transition=self._set_state,
            on_degraded=self._handle_degraded,
            debug=self.config.debug,
        )

        self._state = ClientState.UNINITIALIZED
        self._init_lock = asyncio.Lock()

        logger.info(
            "Initialized Vault client",
            vault_addr=self.config.address,
            method=self.config.auth.method,
            namespace=self.config.namespace,
            cache_enabled=self.config.cache_enabled,
        )

    async def __aenter__(self) -> "SecretStoreClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state in _READY_STATES

    @property
    def metrics_registry(self) -> CollectorRegistry:
        return self._metrics.registry

    def _set_state(self, state: ClientState) -> None:
        if self._debug:
            logger.debug("Client state change", previous=self._state.value, state=state.value)
        self._state = state

    def _handle_degraded(self, error: VaultError) -> None:
        logger.warning("Vault session degraded; renewal stopped", error=str(error))
        if self._on_auth_degraded is not None:
            self._on_auth_degraded(error)

    @property
    def _debug(self) -> bool:
        return self.config.debug

    async def initialize(self) -> None:
        """Authenticate and arm token renewal; a no-op once ready.

        Raises:
            AuthenticationError: If authentication fails; the client stays
                not ready
        """
        async with self._init_lock:
            if self.initialized:
                return

            previous = self._state
            self._state = ClientState.AUTHENTICATING
            try:
                await self._authenticator.authenticate()
            except VaultError:
                self._state = (
                    ClientState.DEGRADED
                    if previous == ClientState.DEGRADED
                    else ClientState.UNINITIALIZED
                )
                raise

            self._state = ClientState.READY
            self._renewal.schedule()

    async def _ensure_initialized(self) -> None:
        # A degraded client keeps its stale session; the next request fails
        # on its own unless the caller re-initializes explicitly.
        if not self.initialized and self._state != ClientState.DEGRADED:
            await self.initialize()

    async def get_secret(self, path: str, version: int | None = None) -> Secret:
        """
        Retrieve a secret from the KV v2 engine.

        Args:
            path: Logical secret path (e.g., "secret/app/db")
            version: Specific version to retrieve (latest if None)

        Returns:
            Secret containing the secret data, metadata and lease
        """
        await self._ensure_initialized()

        data_path = create_kv2_path(path, "data")
        key = cache_key(data_path, version)

        if self.config.cache_enabled:
            cached = self._cache.get(key)
            self._metrics.record_cache_lookup(cached is not None)
            if cached is not None:
                if self._debug:
                    logger.debug("Returning cached secret", path=path, version=version)
                return cached.model_copy(deep=True)

        params = {"version": version} if version is not None else None
        response = await self._executor.execute("GET", api_path(data_path), params=params)
        secret = Secret.from_response(response)

        if self.config.cache_enabled:
            self._cache.set(key, secret.model_copy(deep=True))

        logger.info(
            "Retrieved secret",
            path=path,
            version=version,
            data_keys=list(secret.data.keys()),
        )
        return secret

    async def get_secret_metadata(self, path: str) -> dict[str, Any]:
        """Read the version history of a secret; not cached."""
        await self._ensure_initialized()
        response = await self._executor.execute(
            "GET", api_path(create_kv2_path(path, "metadata"))
        )
        return response.get("data") or {}

    async def get_secret_value(self, path: str, key: str, default: Any = _MISSING) -> Any:
        """
        Read a single key of a secret.

        Args:
            path: Logical secret path
            key: Key inside the secret's data
            default: Returned when the key is missing or the read fails

        Raises:
            SecretKeyNotFoundError: If the key is missing and no default was given
            VaultError: If the read fails and no default was given
        """
        try:
            secret = await self.get_secret(path)
        except Exception as e:
            if default is _MISSING:
                raise
            logger.warning("Falling back to default secret value", path=path, error=str(e))
            return default

        if key in secret.data:
            return secret.data[key]
        if default is not _MISSING:
            return default
        raise SecretKeyNotFoundError(path, key)

    async def put_secret(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Store a secret in the KV v2 engine.

        Args:
            path: Logical secret path
            data: Secret data to store

        Returns:
            Version metadata reported by the backend
        """
        await self._ensure_initialized()

        data_path = create_kv2_path(path, "data")
        response = await self._executor.execute(
            "POST", api_path(data_path), body={"data": data}
        )
        self._invalidate(data_path)

        logger.info("Stored secret", path=path, data_keys=list(data.keys()))
        return response.get("data") or {}

    async def delete_secret(self, path: str, versions: list[int] | None = None) -> None:
        """
        Delete a secret.

        Args:
            path: Logical secret path
            versions: Soft-delete only these versions; when omitted the
                metadata and every version are removed
        """
        await self._ensure_initialized()

        if versions:
            await self._executor.execute(
                "DELETE",
                api_path(create_kv2_path(path, "delete")),
                body={"versions": list(versions)},
            )
        else:
            await self._executor.execute("DELETE", api_path(create_kv2_path(path, "metadata")))
        self._invalidate(create_kv2_path(path, "data"))

        logger.info("Deleted secret", path=path, versions=versions)

    async def list_secrets(self, path: str) -> SecretList:
        """List keys under a backend path (e.g., "secret/metadata/app")."""
        await self._ensure_initialized()
        response = await self._executor.execute("GET", api_path(path), params={"list": "true"})
        keys = (response.get("data") or {}).get("keys") or []
        return SecretList(keys=keys)

    async def health_check(self) -> bool:
        """Check Vault health; never raises."""
        try:
            await self._executor.execute(
                "GET", HEALTH_PATH, authenticated=False, max_retries=0
            )
        except Exception as e:
            logger.warning("Health check failed", error=str(e))
            return False
        return True

    def get_metrics(self) -> Metrics:
        metrics = self._metrics.snapshot()
        metrics.token_expires_at = self._sessions.current.expires_at
        return metrics

    def clear_cache(self) -> None:
        """Clear the secret cache."""
        self._cache.clear()
        logger.info("Cleared secret cache")

    def _invalidate(self, data_path: str) -> None:
        removed = self._cache.invalidate_prefix(data_path)
        if removed and self._debug:
            logger.debug("Invalidated cached secrets", path=data_path, entries=removed)

    async def shutdown(self) -> None:
        """Stop renewal, drop cached secrets and credentials, release the transport."""
        self._renewal.cancel()
        self._cache.clear()
        self._sessions.clear()
        self._metrics.set_token_expiry(None)
        self._state = ClientState.SHUT_DOWN

        if self._owns_transport:
            await self._transport.close()

        logger.info("Vault client shut down")

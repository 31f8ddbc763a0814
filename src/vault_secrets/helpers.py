"""Service-level helpers on top of the secrets client.

``ServiceSecretsHelper`` gives a service typed access to its database, JWT
and API secrets and falls back to environment variables whenever Vault is
not configured, unreachable, or missing a path. ``wait_for_vault`` blocks
start-up until the backend reports healthy.
"""

import asyncio
import os
import time
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .client import SecretStoreClient
from .client.executor import Sleep
from .core.config import VaultConfig, build_config_from_env
from .core.exceptions import ConfigurationError, VaultError
from .core.logging import get_logger

logger = get_logger(__name__)

INTERNAL_API_KEY_CANDIDATES = ("key", "internal_api_key", "internalApiKey", "INTERNAL_API_KEY")


class ServiceSecretPaths(BaseModel):
    """Vault paths a service reads its secrets from."""

    database: str | None = None
    jwt: str | None = None
    api: str | None = None
    config: str | None = None
    internal_api_key: str | None = None


class DatabaseConfig(BaseModel):
    host: str
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    ssl: bool = False
    connection_pool_size: int = 5


class JWTConfig(BaseModel):
    secret_key: str | None = Field(default=None, repr=False)
    issuer: str | None = None
    expiration_hours: float = 24
    refresh_expiration_hours: float | None = None


class DatabaseEnvSettings(BaseSettings):
    """Database fallback read from ``DB_*`` variables."""

    host: str = "localhost"
    port: int | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = None
    ssl: bool = False

    model_config = {"env_prefix": "DB_", "extra": "ignore"}


class JWTEnvSettings(BaseSettings):
    """JWT fallback read from ``JWT_*`` variables."""

    secret: str | None = None
    issuer: str | None = None
    expiration_hours: float = 0.25

    model_config = {"env_prefix": "JWT_", "extra": "ignore"}


class ServiceSecretsHelper:
    """Typed secret accessors for one service with environment fallback."""

    def __init__(
        self,
        service_name: str,
        secret_paths: ServiceSecretPaths,
        client: SecretStoreClient | None = None,
        api_env_vars: Mapping[str, str] | None = None,
    ) -> None:
        self.service_name = service_name
        self.secret_paths = secret_paths
        self._api_env_vars = dict(api_env_vars or {})
        self._initialized = False
        self._logger = logger.bind(service=service_name)

        if client is None:
            try:
                client = SecretStoreClient(build_config_from_env())
            except ConfigurationError as e:
                self._logger.warning("Vault not configured, using environment", error=str(e))
        self._client = client

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect to Vault; failures leave the helper in environment mode."""
        if self._client is None:
            return
        try:
            await self._client.initialize()
        except VaultError as e:
            self._logger.warning(
                "Failed to initialize Vault, using environment fallback", error=str(e)
            )
            self._initialized = False
            return

        self._initialized = True
        self._logger.info("Vault helper initialized")

    async def _read(self, path: str | None, purpose: str) -> dict[str, Any] | None:
        if not path or not self._initialized or self._client is None:
            return None
        try:
            secret = await self._client.get_secret(path)
        except VaultError as e:
            self._logger.warning(
                f"Failed to get {purpose} from Vault, using environment", error=str(e)
            )
            return None
        return secret.data

    async def get_database_config(self) -> DatabaseConfig:
        data = await self._read(self.secret_paths.database, "database config")
        if data is None:
            return self._database_config_from_env()

        try:
            return DatabaseConfig(
                host=data["host"],
                port=int(data["port"]) if data.get("port") else None,
                database=data.get("database"),
                username=data.get("username"),
                password=data.get("password"),
                ssl=data.get("ssl_mode") != "disable",
                connection_pool_size=int(data.get("connection_pool_size") or 5),
            )
        except (KeyError, ValueError) as e:
            self._logger.warning("Malformed database secret, using environment", error=str(e))
            return self._database_config_from_env()

    async def get_jwt_config(self) -> JWTConfig:
        data = await self._read(self.secret_paths.jwt, "JWT config")
        if data is None:
            return self._jwt_config_from_env()

        try:
            refresh = data.get("refresh_expiration_hours")
            return JWTConfig(
                secret_key=data.get("secret_key"),
                issuer=data.get("issuer"),
                expiration_hours=float(data.get("expiration_hours") or 24),
                refresh_expiration_hours=float(refresh) if refresh else None,
            )
        except ValueError as e:
            self._logger.warning("Malformed JWT secret, using environment", error=str(e))
            return self._jwt_config_from_env()

    async def get_api_config(self) -> dict[str, str]:
        data = await self._read(self.secret_paths.api, "API config")
        if data is None:
            return {key: os.getenv(env_var, "") for key, env_var in self._api_env_vars.items()}
        return data

    async def get_service_config(self) -> dict[str, Any]:
        data = await self._read(self.secret_paths.config, "service config")
        return data if data is not None else {}

    async def get_internal_api_key(self) -> str | None:
        """Shared internal API key, taken from the first non-empty candidate field."""
        data = await self._read(self.secret_paths.internal_api_key, "internal API key")
        if data is not None:
            for candidate in INTERNAL_API_KEY_CANDIDATES:
                value = data.get(candidate)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            self._logger.warning(
                "Internal API key missing in Vault, using environment fallback",
                path=self.secret_paths.internal_api_key,
            )

        key = os.getenv("INTERNAL_API_KEY", "").strip()
        return key or None

    async def is_vault_healthy(self) -> bool:
        if self._client is None:
            return False
        return await self._client.health_check()

    async def shutdown(self) -> None:
        if self._client is not None:
            await self._client.shutdown()
        self._initialized = False

    @staticmethod
    def _database_config_from_env() -> DatabaseConfig:
        env = DatabaseEnvSettings()
        return DatabaseConfig(
            host=env.host,
            port=env.port,
            database=env.name,
            username=env.user,
            password=env.password,
            ssl=env.ssl,
        )

    @staticmethod
    def _jwt_config_from_env() -> JWTConfig:
        env = JWTEnvSettings()
        return JWTConfig(
            secret_key=env.secret,
            issuer=env.issuer,
            expiration_hours=env.expiration_hours,
        )


def create_service_helper(
    service_name: str,
    client: SecretStoreClient | None = None,
    api_env_vars: Mapping[str, str] | None = None,
    **secret_paths: str,
) -> ServiceSecretsHelper:
    """Create a helper, e.g. ``create_service_helper("user-service", database="secret/database/user")``."""
    return ServiceSecretsHelper(
        service_name,
        ServiceSecretPaths(**secret_paths),
        client=client,
        api_env_vars=api_env_vars,
    )


async def wait_for_vault(
    client: SecretStoreClient,
    max_wait: float = 30.0,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Poll the health endpoint with backoff (x1.5, capped at 5s) until healthy.

    Each poll is a single request and the last sleep is cut short at the
    deadline, so the wait never runs past ``max_wait``.

    Raises:
        VaultError: If Vault is not healthy within ``max_wait`` seconds
    """
    started = clock()
    delay = initial_delay

    while clock() - started < max_wait:
        if await client.health_check():
            return

        elapsed = clock() - started
        if elapsed >= max_wait:
            break
        logger.info("Waiting for Vault to be healthy", elapsed_seconds=round(elapsed))
        await sleep(min(delay, max_wait - elapsed))
        delay = min(delay * 1.5, 5.0)

    raise VaultError(
        f"Vault did not become healthy within {max_wait}s",
        "HEALTH_TIMEOUT",
        {"max_wait": max_wait},
    )


async def create_healthy_client(
    config: VaultConfig | dict[str, Any], max_wait: float = 30.0
) -> SecretStoreClient:
    """Create and initialize a client, then wait until Vault reports healthy."""
    client = SecretStoreClient(config)
    await client.initialize()
    await wait_for_vault(client, max_wait)
    return client

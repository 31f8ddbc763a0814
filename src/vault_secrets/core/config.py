"""Configuration management for the Vault secrets client.

Client configuration is an immutable Pydantic model validated before any
network activity. Environment loading goes through Pydantic settings so
services can configure the client with ``VAULT_*`` variables.
"""

from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError

DEFAULT_APPROLE_MOUNT = "approle"


class TokenAuth(BaseModel):
    """Static token authentication."""

    model_config = ConfigDict(frozen=True)

    method: Literal["token"] = "token"
    token: str = Field(min_length=1, repr=False, description="Vault token")


class AppRoleAuth(BaseModel):
    """AppRole machine authentication."""

    model_config = ConfigDict(frozen=True)

    method: Literal["approle"] = "approle"
    role_id: str = Field(min_length=1, description="AppRole role ID")
    secret_id: str = Field(min_length=1, repr=False, description="AppRole secret ID")
    mount_path: str = Field(
        default=DEFAULT_APPROLE_MOUNT, min_length=1, description="AppRole mount path"
    )


AuthConfig = Annotated[TokenAuth | AppRoleAuth, Field(discriminator="method")]


class TLSConfig(BaseModel):
    """TLS material handed through to the HTTP transport."""

    model_config = ConfigDict(frozen=True)

    skip_verify: bool = Field(default=False, description="Disable certificate checks")
    ca_cert: str | None = Field(default=None, description="CA bundle path")
    client_cert: str | None = Field(default=None, description="Client certificate path")
    client_key: str | None = Field(default=None, description="Client key path")


class VaultConfig(BaseModel):
    """Vault client configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    address: str = Field(description="Vault base URL including scheme")
    auth: AuthConfig
    timeout_ms: int = Field(default=5000, gt=0, description="Per-attempt timeout")
    max_retries: int = Field(default=3, ge=0, description="Retries after first attempt")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base backoff delay")
    cache_enabled: bool = Field(default=True, description="Enable the secret cache")
    cache_ttl_seconds: int = Field(default=300, ge=0, description="Cache entry TTL")
    namespace: str | None = Field(default=None, description="Vault Enterprise namespace")
    debug: bool = Field(default=False, description="Verbose client logging")
    tls: TLSConfig | None = Field(default=None)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Require an http(s) scheme and drop trailing slashes."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Vault address must include protocol (http/https)")
        return v.rstrip("/")

    @property
    def auth_method(self) -> str:
        return self.auth.method


def _normalize(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Convert the flat ``auth_method``/``token``/``app_role`` form to ``auth``."""
    data = dict(raw)
    if "auth" in data:
        return data

    method = data.pop("auth_method", None)
    token = data.pop("token", None)
    app_role = data.pop("app_role", None) or {}

    if method == "token":
        data["auth"] = {"method": "token", "token": token}
    elif method == "approle":
        auth = {
            "method": "approle",
            "role_id": app_role.get("role_id"),
            "secret_id": app_role.get("secret_id"),
        }
        if app_role.get("mount_path"):
            auth["mount_path"] = app_role["mount_path"]
        data["auth"] = auth
    elif method is not None:
        data["auth"] = {"method": method}
    return data


def collect_config_errors(raw: Mapping[str, Any]) -> list[str]:
    """Return every rule violation in a raw configuration mapping."""
    data = _normalize(raw)
    errors: list[str] = []

    address = data.get("address")
    if not address:
        errors.append("Vault address is required")
    elif not str(address).startswith("http"):
        errors.append("Vault address must include protocol (http/https)")

    auth = data.get("auth")
    if isinstance(auth, BaseModel):
        auth = auth.model_dump()
    method = auth.get("method") if isinstance(auth, Mapping) else None

    if not method:
        errors.append("Authentication method is required")
    elif method == "token":
        if not auth.get("token"):
            errors.append("Token is required for token authentication")
    elif method == "approle":
        if not auth.get("role_id"):
            errors.append("Role ID is required for AppRole authentication")
        if not auth.get("secret_id"):
            errors.append("Secret ID is required for AppRole authentication")
    else:
        errors.append(f"Unsupported authentication method: {method}")

    return errors


def validate_config(raw: VaultConfig | Mapping[str, Any]) -> VaultConfig:
    """Validate a raw configuration and apply defaults.

    Args:
        raw: Either a ``VaultConfig`` or a mapping in nested (``auth``) or
            flat (``auth_method``, ``token``, ``app_role``) form

    Returns:
        VaultConfig: Fully defaulted, immutable configuration

    Raises:
        ConfigurationError: If any rule is violated
    """
    if isinstance(raw, VaultConfig):
        return raw

    errors = collect_config_errors(raw)
    if errors:
        raise ConfigurationError(
            f"Invalid Vault configuration: {', '.join(errors)}", errors=errors
        )

    try:
        return VaultConfig.model_validate(_normalize(raw))
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid Vault configuration: {', '.join(messages)}", errors=messages
        ) from e


class VaultSettings(BaseSettings):
    """Environment-driven settings.

    Every field maps to a ``VAULT_``-prefixed environment variable, e.g.
    ``VAULT_ADDR``, ``VAULT_ROLE_ID`` or ``VAULT_CACHE_TTL``.
    """

    addr: str = Field(default="http://localhost:8200", description="Vault address")
    token: str | None = Field(default=None, description="Static token")
    role_id: str | None = Field(default=None, description="AppRole role ID")
    secret_id: str | None = Field(default=None, description="AppRole secret ID")
    approle_mount_path: str = Field(default=DEFAULT_APPROLE_MOUNT)
    timeout: int = Field(default=5000, description="Request timeout in milliseconds")
    max_retries: int = Field(default=3)
    retry_delay: int = Field(default=1000, description="Base retry delay in milliseconds")
    enable_cache: bool = Field(default=True)
    cache_ttl: int = Field(default=300, description="Cache TTL in seconds")
    namespace: str | None = Field(default=None)
    debug: bool = Field(default=False)

    skip_verify: bool = Field(default=False)
    ca_cert: str | None = Field(default=None)
    client_cert: str | None = Field(default=None)
    client_key: str | None = Field(default=None)

    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    logs_dir: Path | None = Field(default=None, description="Rotating log file directory")

    model_config = {
        "env_prefix": "VAULT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = {"development", "testing", "staging", "production"}
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> VaultSettings:
    """Get cached environment settings."""
    return VaultSettings()


def build_config_from_env(settings: VaultSettings | None = None) -> VaultConfig:
    """Build a validated client configuration from environment settings.

    AppRole is preferred when both role and secret IDs are present,
    otherwise a static token is used.

    Raises:
        ConfigurationError: If no authentication method is configured or
            the resulting configuration is invalid
    """
    settings = settings or get_settings()

    if settings.role_id and settings.secret_id:
        auth: dict[str, Any] = {
            "method": "approle",
            "role_id": settings.role_id,
            "secret_id": settings.secret_id,
            "mount_path": settings.approle_mount_path,
        }
    elif settings.token:
        auth = {"method": "token", "token": settings.token}
    else:
        raise ConfigurationError("No Vault authentication method configured")

    tls = None
    if settings.skip_verify or settings.ca_cert or settings.client_cert:
        tls = {
            "skip_verify": settings.skip_verify,
            "ca_cert": settings.ca_cert,
            "client_cert": settings.client_cert,
            "client_key": settings.client_key,
        }

    return validate_config(
        {
            "address": settings.addr,
            "auth": auth,
            "timeout_ms": settings.timeout,
            "max_retries": settings.max_retries,
            "retry_delay_ms": settings.retry_delay,
            "cache_enabled": settings.enable_cache,
            "cache_ttl_seconds": settings.cache_ttl,
            "namespace": settings.namespace,
            "debug": settings.debug,
            "tls": tls,
        }
    )

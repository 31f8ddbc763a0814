"""Vault secrets client - async access to a Vault-compatible secret store.

Handles authentication, token renewal, caching and retries so application
services can read their database credentials, JWT keys and API secrets
from a central KV v2 store.
"""

__version__ = "0.1.0"

from .client import ClientState, Metrics, Secret, SecretList, SecretStoreClient
from .core.config import (
    AppRoleAuth,
    TLSConfig,
    TokenAuth,
    VaultConfig,
    build_config_from_env,
    validate_config,
)
from .core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    RequestError,
    SecretKeyNotFoundError,
    TransportError,
    VaultError,
)
from .core.logging import setup_logging
from .helpers import ServiceSecretsHelper, create_service_helper, wait_for_vault

__all__ = [
    "__version__",
    "SecretStoreClient",
    "ClientState",
    "Metrics",
    "Secret",
    "SecretList",
    "VaultConfig",
    "TokenAuth",
    "AppRoleAuth",
    "TLSConfig",
    "build_config_from_env",
    "validate_config",
    "VaultError",
    "ConfigurationError",
    "AuthenticationError",
    "RequestError",
    "TransportError",
    "SecretKeyNotFoundError",
    "ServiceSecretsHelper",
    "create_service_helper",
    "wait_for_vault",
    "setup_logging",
]

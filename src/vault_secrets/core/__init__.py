"""Core functionality for the Vault secrets client."""

from .config import VaultConfig, VaultSettings, get_settings, validate_config
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    RequestError,
    VaultError,
)
from .logging import setup_logging

__all__ = [
    "VaultConfig",
    "VaultSettings",
    "get_settings",
    "validate_config",
    "VaultError",
    "ConfigurationError",
    "AuthenticationError",
    "RequestError",
    "setup_logging",
]

"""Command-line interface for the Vault secrets client.

Reads connection settings from ``VAULT_*`` environment variables and
provides commands for health checks and basic secret operations.
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from .client import SecretStoreClient
from .core.config import build_config_from_env, get_settings
from .core.exceptions import VaultError
from .core.logging import get_logger, mask_sensitive_data, setup_logging

logger = get_logger(__name__)

T = TypeVar("T")


def _run(operation: Callable[[SecretStoreClient], Awaitable[T]]) -> T:
    """Run one operation against a freshly configured client."""
    settings = get_settings()
    setup_logging(settings)

    async def runner() -> T:
        client = SecretStoreClient(build_config_from_env(settings))
        try:
            return await operation(client)
        finally:
            await client.shutdown()

    try:
        return asyncio.run(runner())
    except VaultError as e:
        logger.error("Vault operation failed", error=str(e))
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


def _echo_json(value: Any) -> None:
    click.echo(json.dumps(value, indent=2, default=str))


@click.group()
@click.version_option(package_name="vault-secrets-client")
def main() -> None:
    """Vault secrets client - inspect and manage KV v2 secrets."""
    pass


@main.command()
def health() -> None:
    """Check Vault health."""
    healthy = _run(lambda client: client.health_check())
    if healthy:
        click.echo("✓ Vault is healthy")
    else:
        click.echo("✗ Vault is unhealthy", err=True)
        sys.exit(1)


@main.command()
@click.argument("path")
@click.option("--key", default=None, help="Print a single key of the secret")
@click.option("--version", "version", type=int, default=None, help="Secret version")
def get(path: str, key: str | None, version: int | None) -> None:
    """Read a secret."""
    secret = _run(lambda client: client.get_secret(path, version))
    if key is None:
        _echo_json(secret.data)
    elif key in secret.data:
        click.echo(secret.data[key])
    else:
        click.echo(f"✗ Key '{key}' not found at {path}", err=True)
        sys.exit(1)


@main.command()
@click.argument("path")
@click.argument("pairs", nargs=-1, required=True)
def put(path: str, pairs: tuple[str, ...]) -> None:
    """Write a secret from KEY=VALUE pairs."""
    data = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="PAIRS")
        data[key] = value

    result = _run(lambda client: client.put_secret(path, data))
    click.echo(f"✓ Stored {len(data)} key(s) at {path}")
    if result:
        _echo_json(result)


@main.command()
@click.argument("path")
@click.option(
    "--version",
    "versions",
    type=int,
    multiple=True,
    help="Soft-delete only these versions (repeatable)",
)
def delete(path: str, versions: tuple[int, ...]) -> None:
    """Delete a secret, or specific versions of it."""
    _run(lambda client: client.delete_secret(path, list(versions) or None))
    click.echo(f"✓ Deleted {path}")


@main.command(name="list")
@click.argument("path")
def list_command(path: str) -> None:
    """List keys under a path (e.g. secret/metadata/app)."""
    result = _run(lambda client: client.list_secrets(path))
    for key in result.keys:
        click.echo(key)


@main.command()
def config() -> None:
    """Show the effective client configuration with credentials masked."""
    try:
        vault_config = build_config_from_env(get_settings())
    except VaultError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)
    _echo_json(mask_sensitive_data(vault_config.model_dump()))


if __name__ == "__main__":
    main()

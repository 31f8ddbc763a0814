"""
Secrets client for a Vault-compatible KV v2 store.

Provides authenticated access to secrets with automatic token renewal,
response caching, retries with backoff, and running metrics.
"""

from .cache import SecretCache
from .metrics import MetricsCollector
from .models import ClientState, Lease, Metrics, Secret, SecretList, Session
from .renewal import AsyncioScheduler, Scheduler
from .transport import AiohttpTransport, Transport, TransportResponse
from .vault_client import SecretStoreClient

__all__ = [
    "SecretStoreClient",
    "SecretCache",
    "MetricsCollector",
    "ClientState",
    "Lease",
    "Metrics",
    "Secret",
    "SecretList",
    "Session",
    "Scheduler",
    "AsyncioScheduler",
    "Transport",
    "TransportResponse",
    "AiohttpTransport",
]

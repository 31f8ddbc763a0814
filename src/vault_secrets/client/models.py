"""Data models shared by the secrets client components."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClientState(str, Enum):
    """Lifecycle state of a SecretStoreClient."""

    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    RENEWING = "renewing"
    REAUTHENTICATING = "reauthenticating"
    DEGRADED = "degraded"
    SHUT_DOWN = "shut_down"


@dataclass(frozen=True)
class Session:
    """Session token and its expiry (epoch seconds, None if non-expiring)."""

    token: str | None = None
    expires_at: float | None = None

    def __repr__(self) -> str:
        masked = "***" if self.token else None
        return f"Session(token={masked!r}, expires_at={self.expires_at!r})"


class Lease(BaseModel):
    """Backend-issued lease attached to a secret."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    duration_seconds: int = 0
    renewable: bool = False


class Secret(BaseModel):
    """A secret read from the KV v2 engine."""

    model_config = ConfigDict(frozen=True)

    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    lease: Lease | None = None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "Secret":
        """Assemble a secret from a KV v2 read response."""
        body = response.get("data") or {}
        lease = None
        if response.get("lease_id") or response.get("lease_duration"):
            lease = Lease(
                id=response.get("lease_id") or "",
                duration_seconds=response.get("lease_duration") or 0,
                renewable=bool(response.get("renewable", False)),
            )
        return cls(
            data=body.get("data") or {},
            metadata=body.get("metadata") or {},
            lease=lease,
        )


class SecretList(BaseModel):
    """Keys listed under a path."""

    keys: list[str] = Field(default_factory=list)


class Metrics(BaseModel):
    """Snapshot of running client metrics."""

    total_requests: int = 0
    cache_hit_rate: float = 0.0
    avg_response_time_ms: float = 0.0
    auth_renewals: int = 0
    error_rate: float = 0.0
    last_auth_time: float | None = None
    token_expires_at: float | None = None

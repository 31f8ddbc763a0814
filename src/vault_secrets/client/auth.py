"""Session token acquisition and renewal.

Two strategies are supported, selected by the type of ``VaultConfig.auth``:

- ``TokenAuth``: the configured token is verified with a self-lookup and
  its expiry, if any, is read back from the backend.
- ``AppRoleAuth``: the role ID and secret ID are exchanged for a client
  token at ``/v1/auth/<mount_path>/login``.
"""

import re
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..core.config import AppRoleAuth, TokenAuth, VaultConfig
from ..core.exceptions import AuthenticationError, VaultError
from ..core.logging import get_logger
from .executor import RequestExecutor
from .metrics import MetricsCollector
from .models import Session

logger = get_logger(__name__)

LOOKUP_SELF_PATH = "/v1/auth/token/lookup-self"
RENEW_SELF_PATH = "/v1/auth/token/renew-self"

_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_expire_time(value: Any) -> float | None:
    """Parse a token ``expire_time`` (RFC 3339 string or epoch seconds)."""
    if value is None or value == "":
        return None
    if isinstance(value, int | float):
        return float(value)

    text = _FRACTION.sub(r"\1", str(value).replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError:
        logger.warning("Unparseable token expire_time", expire_time=str(value))
        return None


class SessionStore:
    """Holds the current session; replaced as a whole, never mutated."""

    def __init__(self) -> None:
        self._session = Session()

    @property
    def current(self) -> Session:
        return self._session

    @property
    def token(self) -> str | None:
        return self._session.token

    def replace(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = Session()


class Authenticator:
    """Obtain and renew session tokens through the request executor."""

    def __init__(
        self,
        config: VaultConfig,
        executor: RequestExecutor,
        sessions: SessionStore,
        metrics: MetricsCollector,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._executor = executor
        self._sessions = sessions
        self._metrics = metrics
        self._clock = clock

    async def authenticate(self) -> Session:
        """Authenticate with the configured strategy.

        Raises:
            AuthenticationError: If the backend rejects the credentials or
                cannot be reached
        """
        auth = self._config.auth
        if isinstance(auth, TokenAuth):
            session = await self._login_with_token(auth)
        elif isinstance(auth, AppRoleAuth):
            session = await self._login_with_approle(auth)
        else:
            raise AuthenticationError(
                f"Unsupported authentication method: {type(auth).__name__}"
            )

        self._record(session)
        logger.info(
            "Authenticated with Vault",
            method=auth.method,
            expires_at=session.expires_at,
        )
        return session

    async def _login_with_token(self, auth: TokenAuth) -> Session:
        try:
            response = await self._executor.execute(
                "GET", LOOKUP_SELF_PATH, token=auth.token
            )
        except VaultError as e:
            logger.error("Token lookup failed", error=str(e))
            raise AuthenticationError(
                "Token authentication failed", method="token", cause=e
            ) from e

        data = response.get("data") or {}
        expires_at = parse_expire_time(data.get("expire_time"))
        if expires_at is None and data.get("ttl"):
            expires_at = self._clock() + float(data["ttl"])

        session = Session(token=auth.token, expires_at=expires_at)
        self._sessions.replace(session)
        return session

    async def _login_with_approle(self, auth: AppRoleAuth) -> Session:
        payload = {"role_id": auth.role_id, "secret_id": auth.secret_id}
        try:
            response = await self._executor.execute(
                "POST", f"/v1/auth/{auth.mount_path}/login", body=payload
            )
        except VaultError as e:
            logger.error("AppRole login failed", mount_path=auth.mount_path, error=str(e))
            raise AuthenticationError(
                "AppRole authentication failed", method="approle", cause=e
            ) from e

        auth_info = response.get("auth") or {}
        client_token = auth_info.get("client_token")
        if not client_token:
            raise AuthenticationError(
                "AppRole authentication failed",
                method="approle",
                details={"reason": "response did not include a client token"},
            )

        lease_duration = auth_info.get("lease_duration") or 0
        expires_at = self._clock() + lease_duration if lease_duration > 0 else None

        session = Session(token=client_token, expires_at=expires_at)
        self._sessions.replace(session)
        return session

    async def renew_token(self) -> Session:
        """Extend the current token's lease.

        Raises:
            AuthenticationError: If the renewal request fails
        """
        current = self._sessions.current
        try:
            response = await self._executor.execute("POST", RENEW_SELF_PATH)
        except VaultError as e:
            logger.warning("Token renewal failed", error=str(e))
            raise AuthenticationError("Token renewal failed", cause=e) from e

        auth_info = response.get("auth") or {}
        lease_duration = auth_info.get("lease_duration") or 0
        expires_at = self._clock() + lease_duration if lease_duration > 0 else None

        session = Session(
            token=auth_info.get("client_token") or current.token,
            expires_at=expires_at,
        )
        self._sessions.replace(session)
        self._record(session)
        logger.info("Renewed Vault token", lease_duration=lease_duration)
        return session

    def _record(self, session: Session) -> None:
        self._metrics.record_authentication(self._clock(), session.expires_at)

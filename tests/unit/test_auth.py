"""Unit tests for token and AppRole authentication."""

from unittest.mock import patch

import pytest

from conftest import START_TIME, FakeTransport, RecordingSleep, approle_config, iso_timestamp, token_config
from vault_secrets.client.auth import (
    LOOKUP_SELF_PATH,
    RENEW_SELF_PATH,
    Authenticator,
    SessionStore,
    parse_expire_time,
)
from vault_secrets.client.executor import RequestExecutor
from vault_secrets.client.metrics import MetricsCollector
from vault_secrets.client.models import Session
from vault_secrets.core.config import validate_config
from vault_secrets.core.exceptions import AuthenticationError

LOGIN_PATH = "/v1/auth/approle/login"


def build_authenticator(transport: FakeTransport, clock, raw_config):
    config = validate_config(raw_config)
    sessions = SessionStore()
    metrics = MetricsCollector()
    executor = RequestExecutor(
        config, transport, metrics, token_provider=lambda: sessions.token, sleep=RecordingSleep()
    )
    return Authenticator(config, executor, sessions, metrics, clock), sessions, metrics


class TestParseExpireTime:
    """Test expire_time parsing."""

    def test_iso_with_zulu(self):
        """Test RFC 3339 timestamps with a Z suffix."""
        assert parse_expire_time(iso_timestamp(START_TIME + 3600)) == START_TIME + 3600

    def test_nanosecond_fraction(self):
        """Test Vault's nanosecond precision is truncated, not rejected."""
        assert parse_expire_time("2024-01-01T00:00:00.123456789Z") == pytest.approx(
            1704067200.123456
        )

    def test_numeric(self):
        """Test epoch values are accepted as-is."""
        assert parse_expire_time(1700000000) == 1700000000.0

    @pytest.mark.parametrize("value", [None, "", "not-a-date"])
    def test_missing_or_invalid(self, value):
        """Test missing and garbage values mean no expiry."""
        assert parse_expire_time(value) is None


class TestSessionStore:
    """Test the session holder."""

    def test_replace_and_clear(self):
        """Test sessions are swapped whole and cleared."""
        store = SessionStore()
        assert store.token is None

        store.replace(Session(token="abc", expires_at=10.0))
        assert store.token == "abc"
        assert store.current.expires_at == 10.0

        store.clear()
        assert store.current == Session()

    def test_repr_masks_token(self):
        """Test tokens never appear in the session repr."""
        assert "abc" not in repr(Session(token="abc"))


class TestTokenAuthentication:
    """Test the static token strategy."""

    @pytest.mark.asyncio
    async def test_expiry_from_lookup(self, transport, clock):
        """Test expire_time from the self-lookup becomes the session expiry."""
        transport.add(
            "GET", LOOKUP_SELF_PATH, body={"data": {"expire_time": iso_timestamp(clock.now + 3600)}}
        )
        authenticator, sessions, metrics = build_authenticator(transport, clock, token_config())

        session = await authenticator.authenticate()

        assert session == Session(token="t1", expires_at=clock.now + 3600)
        assert sessions.current == session
        assert transport.calls[0].headers["X-Vault-Token"] == "t1"

        snapshot = metrics.snapshot()
        assert snapshot.auth_renewals == 1
        assert snapshot.last_auth_time == clock.now
        assert snapshot.token_expires_at == clock.now + 3600

    @pytest.mark.asyncio
    async def test_non_expiring_token(self, transport, clock):
        """Test a root-style token without expiry."""
        transport.add("GET", LOOKUP_SELF_PATH, body={"data": {"expire_time": None}})
        authenticator, sessions, _ = build_authenticator(transport, clock, token_config())

        session = await authenticator.authenticate()

        assert session.expires_at is None
        assert sessions.token == "t1"

    @pytest.mark.asyncio
    async def test_ttl_fallback(self, transport, clock):
        """Test ttl is used when expire_time is absent."""
        transport.add("GET", LOOKUP_SELF_PATH, body={"data": {"ttl": 120}})
        authenticator, _, _ = build_authenticator(transport, clock, token_config())

        session = await authenticator.authenticate()

        assert session.expires_at == clock.now + 120

    @pytest.mark.asyncio
    async def test_rejected_token(self, transport, clock):
        """Test a 403 lookup fails without storing the token."""
        transport.add("GET", LOOKUP_SELF_PATH, status=403, body={"errors": ["permission denied"]})
        authenticator, sessions, metrics = build_authenticator(transport, clock, token_config())

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate()

        assert exc_info.value.details["method"] == "token"
        assert exc_info.value.cause.status == 403
        assert sessions.current == Session()
        assert metrics.snapshot().auth_renewals == 0

    @pytest.mark.asyncio
    async def test_session_set_once_after_lookup(self, clock):
        """Test the candidate token is sent explicitly, not stored before it is verified."""
        tokens_seen = []

        class ObservingTransport(FakeTransport):
            async def request(self, method, url, **kwargs):
                tokens_seen.append(sessions.token)
                return await super().request(method, url, **kwargs)

        transport = ObservingTransport()
        transport.add("GET", LOOKUP_SELF_PATH, body={"data": {"ttl": 600}})
        authenticator, sessions, _ = build_authenticator(transport, clock, token_config())

        with patch.object(sessions, "replace", wraps=sessions.replace) as replace:
            await authenticator.authenticate()

        assert tokens_seen == [None]
        assert transport.calls[0].headers["X-Vault-Token"] == "t1"
        replace.assert_called_once_with(Session(token="t1", expires_at=clock.now + 600))

    @pytest.mark.asyncio
    async def test_rejected_token_keeps_previous_session(self, transport, clock):
        """Test a failed re-login leaves the prior session in place."""
        transport.add("GET", LOOKUP_SELF_PATH, status=403, body={"errors": ["permission denied"]})
        authenticator, sessions, _ = build_authenticator(transport, clock, token_config())
        previous = Session(token="s.old", expires_at=clock.now + 30)
        sessions.replace(previous)

        with pytest.raises(AuthenticationError):
            await authenticator.authenticate()

        assert transport.calls[0].headers["X-Vault-Token"] == "t1"
        assert sessions.current == previous


class TestAppRoleAuthentication:
    """Test the AppRole strategy."""

    @pytest.mark.asyncio
    async def test_login(self, transport, clock):
        """Test credentials are exchanged for a client token."""
        transport.add(
            "POST",
            LOGIN_PATH,
            body={"auth": {"client_token": "s.approle", "lease_duration": 1800}},
        )
        authenticator, sessions, _ = build_authenticator(transport, clock, approle_config())

        session = await authenticator.authenticate()

        assert session == Session(token="s.approle", expires_at=clock.now + 1800)
        assert sessions.token == "s.approle"
        call = transport.calls[0]
        assert call.json_body == {"role_id": "role-123", "secret_id": "secret-456"}
        assert "X-Vault-Token" not in call.headers

    @pytest.mark.asyncio
    async def test_custom_mount_path(self, transport, clock):
        """Test the login path honours mount_path."""
        transport.add(
            "POST", "/v1/auth/svc/login", body={"auth": {"client_token": "s.x", "lease_duration": 0}}
        )
        raw = approle_config(app_role={"role_id": "r", "secret_id": "s", "mount_path": "svc"})
        authenticator, _, _ = build_authenticator(transport, clock, raw)

        session = await authenticator.authenticate()

        assert session.token == "s.x"
        assert session.expires_at is None

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, transport, clock):
        """Test a 400 login fails without retrying."""
        transport.add("POST", LOGIN_PATH, status=400, body={"errors": ["invalid secret id"]})
        authenticator, sessions, _ = build_authenticator(transport, clock, approle_config())

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate()

        assert exc_info.value.details["method"] == "approle"
        assert len(transport.calls) == 1
        assert sessions.token is None

    @pytest.mark.asyncio
    async def test_missing_client_token(self, transport, clock):
        """Test a login response without a token is an authentication failure."""
        transport.add("POST", LOGIN_PATH, body={"auth": {}})
        authenticator, _, _ = build_authenticator(transport, clock, approle_config())

        with pytest.raises(AuthenticationError, match="AppRole authentication failed"):
            await authenticator.authenticate()


class TestRenewal:
    """Test renew-self."""

    @pytest.mark.asyncio
    async def test_renew_extends_expiry(self, transport, clock):
        """Test renewal resets the expiry from the new lease duration."""
        transport.add("GET", LOOKUP_SELF_PATH, body={"data": {"ttl": 60}})
        transport.add("POST", RENEW_SELF_PATH, body={"auth": {"lease_duration": 3600}})
        authenticator, sessions, metrics = build_authenticator(transport, clock, token_config())
        await authenticator.authenticate()
        clock.advance(30)

        session = await authenticator.renew_token()

        assert session == Session(token="t1", expires_at=clock.now + 3600)
        assert sessions.current == session
        assert metrics.snapshot().auth_renewals == 2

    @pytest.mark.asyncio
    async def test_renew_rotates_token(self, transport, clock):
        """Test a token returned by renewal replaces the current one."""
        transport.add(
            "POST", RENEW_SELF_PATH, body={"auth": {"client_token": "t2", "lease_duration": 60}}
        )
        authenticator, sessions, _ = build_authenticator(transport, clock, token_config())
        sessions.replace(Session(token="t1", expires_at=clock.now + 10))

        await authenticator.renew_token()

        assert sessions.token == "t2"

    @pytest.mark.asyncio
    async def test_renew_failure(self, transport, clock):
        """Test renewal failures raise and keep the current session."""
        transport.add("POST", RENEW_SELF_PATH, status=403, body={"errors": ["denied"]})
        authenticator, sessions, _ = build_authenticator(transport, clock, token_config())
        current = Session(token="t1", expires_at=clock.now + 10)
        sessions.replace(current)

        with pytest.raises(AuthenticationError, match="Token renewal failed"):
            await authenticator.renew_token()

        assert sessions.current == current

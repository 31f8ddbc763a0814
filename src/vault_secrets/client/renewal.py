"""Background token renewal.

A one-shot timer is armed for 80% of the remaining token lifetime (never
less than a minute). When it fires the token is renewed; if renewal fails
the client re-authenticates from scratch. Each success re-arms the timer, so
exactly one timer is pending while the session stays healthy.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from ..core.exceptions import VaultError
from ..core.logging import get_logger
from .auth import Authenticator, SessionStore
from .models import ClientState

logger = get_logger(__name__)

RENEWAL_FRACTION = 0.8
MIN_RENEWAL_DELAY_SECONDS = 60.0

Callback = Callable[[], Awaitable[None]]


class CancelHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Minimal timer interface so renewal can be driven without wall-clock waits."""

    def after(self, delay: float, callback: Callback) -> CancelHandle: ...


class _AsyncioHandle:
    def __init__(self) -> None:
        self.timer: asyncio.TimerHandle | None = None
        self.task: asyncio.Task[None] | None = None

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
        if self.task is not None and not self.task.done():
            self.task.cancel()


class AsyncioScheduler:
    """Scheduler running callbacks as tasks on the running event loop."""

    def after(self, delay: float, callback: Callback) -> CancelHandle:
        loop = asyncio.get_running_loop()
        handle = _AsyncioHandle()

        def fire() -> None:
            handle.task = loop.create_task(callback())

        handle.timer = loop.call_later(delay, fire)
        return handle


def compute_renewal_delay(expires_at: float, now: float) -> float:
    """Seconds to wait before renewing a token expiring at ``expires_at``."""
    return max(RENEWAL_FRACTION * (expires_at - now), MIN_RENEWAL_DELAY_SECONDS)


class TokenRenewalScheduler:
    """Keep the session alive by renewing or re-authenticating before expiry."""

    def __init__(
        self,
        authenticator: Authenticator,
        sessions: SessionStore,
        scheduler: Scheduler,
        clock: Callable[[], float] = time.time,
        on_transition: Callable[[ClientState], None] | None = None,
        on_degraded: Callable[[VaultError], None] | None = None,
        debug: bool = False,
    ) -> None:
        self._authenticator = authenticator
        self._sessions = sessions
        self._scheduler = scheduler
        self._clock = clock
        self._on_transition = on_transition
        self._on_degraded = on_degraded
        self._debug = debug
        self._handle: CancelHandle | None = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    def schedule(self) -> float | None:
        """Arm the renewal timer; returns the delay, or None for non-expiring tokens."""
        self.cancel()

        expires_at = self._sessions.current.expires_at
        if expires_at is None:
            return None

        delay = compute_renewal_delay(expires_at, self._clock())
        self._handle = self._scheduler.after(delay, self._on_timer)
        if self._debug:
            logger.debug("Token renewal scheduled", delay_seconds=delay)
        return delay

    def cancel(self) -> None:
        """Cancel the pending timer, or the renewal it is currently running."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def _on_timer(self) -> None:
        # The handle stays armed while firing so cancel() can abort an
        # in-flight renewal; the generation check drops results that
        # arrive after a cancel.
        generation = self._generation
        self._transition(ClientState.RENEWING)
        try:
            await self._authenticator.renew_token()
        except VaultError as renew_error:
            if generation != self._generation:
                return
            if self._debug:
                logger.debug("Token renewal failed, re-authenticating", error=str(renew_error))
            self._transition(ClientState.REAUTHENTICATING)
            try:
                await self._authenticator.authenticate()
            except VaultError as auth_error:
                if generation != self._generation:
                    return
                self._handle = None
                if self._debug:
                    logger.error("Re-authentication failed, renewal stopped", error=str(auth_error))
                self._transition(ClientState.DEGRADED)
                if self._on_degraded is not None:
                    self._on_degraded(auth_error)
                return

        if generation != self._generation:
            return
        self._handle = None
        self._transition(ClientState.READY)
        self.schedule()

    def _transition(self, state: ClientState) -> None:
        if self._on_transition is not None:
            self._on_transition(state)

"""Redirection guard — owns one session's classifier enrollment and firewall rules."""

from __future__ import annotations

import logging
import threading
from types import TracebackType

from nozomi_tproxy.config import TproxyConfig
from nozomi_tproxy.errors import GuardStateError
from nozomi_tproxy.redirect.backend import Backend, ShellBackend
from nozomi_tproxy.redirect.classifier import TrafficClassifier
from nozomi_tproxy.redirect.models import GuardState, RedirectionKey, Step
from nozomi_tproxy.redirect.strategies import (
    DirectRedirect,
    RedirectStrategy,
    TransparentProxyRedirect,
)

logger = logging.getLogger(__name__)


class RedirectionGuard:
    """Scoped owner of a redirection session.

    ``acquire`` installs the strategy's steps, ``release`` removes them in
    reverse order. Release runs at most once: the state flips to RELEASED
    under a lock before any teardown command is issued, so racing callers
    (normal exit vs. interrupt) cannot repeat it.

    Use as a context manager to release on every exit path::

        with RedirectionGuard(key, DirectRedirect(), backend):
            child.wait()
    """

    def __init__(
        self,
        key: RedirectionKey,
        strategy: RedirectStrategy,
        backend: Backend,
    ) -> None:
        self._key = key
        self._strategy = strategy
        self._backend = backend
        self._plan: tuple[Step, ...] = tuple(strategy.steps(key))
        self._state = GuardState.UNINITIALIZED
        self._lock = threading.Lock()

    @property
    def key(self) -> RedirectionKey:
        return self._key

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def plan(self) -> tuple[Step, ...]:
        """Setup steps in execution order."""
        return self._plan

    def acquire(self) -> None:
        with self._lock:
            if self._state == GuardState.ACTIVE:
                return
            if self._state == GuardState.RELEASED:
                raise GuardStateError(
                    f"Redirection for PID {self._key.process_id} was already released"
                )
            logger.info(
                "Installing %s redirection for PID %d -> port %d",
                self._strategy.name,
                self._key.process_id,
                self._key.proxy_port,
            )
            self._backend.apply(self._plan)
            self._state = GuardState.ACTIVE

    def release(self) -> bool:
        """Tear down an active redirection. Returns True if this call did it."""
        with self._lock:
            if self._state != GuardState.ACTIVE:
                return False
            self._state = GuardState.RELEASED
            logger.info(
                "Removing %s redirection for PID %d",
                self._strategy.name,
                self._key.process_id,
            )
            self._backend.revert(self._plan)
            return True

    def __enter__(self) -> RedirectionGuard:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def build_guard(
    config: TproxyConfig,
    pid: int,
    backend: Backend | None = None,
) -> RedirectionGuard:
    """Create the guard for ``pid`` using the strategy selected in ``config``."""
    classifier = TrafficClassifier(config.cgroup_root)
    strategy: RedirectStrategy
    if config.use_tproxy:
        strategy = TransparentProxyRedirect(classifier)
    else:
        strategy = DirectRedirect(classifier)
    if backend is None:
        backend = ShellBackend(use_sudo=config.use_sudo, timeout=config.command_timeout)
    key = RedirectionKey.for_port(pid, config.port, prefix=config.prefix)
    return RedirectionGuard(key, strategy, backend)

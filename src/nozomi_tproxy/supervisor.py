"""Process supervisor — runs or attaches to the controlled process under a guard."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Sequence

import psutil

from nozomi_tproxy.config import TproxyConfig
from nozomi_tproxy.errors import ProcessNotFoundError, SpawnError
from nozomi_tproxy.redirect.backend import Backend
from nozomi_tproxy.redirect.guard import RedirectionGuard, build_guard
from nozomi_tproxy.session import Session, SessionMode, SessionStatus

logger = logging.getLogger(__name__)


def exit_status(returncode: int) -> int:
    """Map a Popen return code to a shell-style exit status."""
    if returncode < 0:
        return 128 - returncode
    return returncode


class ProcessSupervisor:
    """Binds one process to a redirection guard for the process's lifetime.

    In spawn mode the guard is keyed to the supervisor's own pid and
    acquired before the child starts, so the child inherits the cgroup from
    its first instruction. In attach mode the guard is keyed to the given
    pid and held until ``cancel`` is set or the process goes away.
    """

    def __init__(
        self,
        config: TproxyConfig,
        backend: Backend | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._backend = backend
        self._cancel = cancel if cancel is not None else threading.Event()
        self._session: Session | None = None
        self._guard: RedirectionGuard | None = None
        self._child: subprocess.Popen[bytes] | None = None
        self._interrupted: int | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def guard(self) -> RedirectionGuard | None:
        return self._guard

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def spawn(self, command: Sequence[str]) -> int:
        """Run ``command`` with its traffic redirected; return its exit status."""
        if not command:
            raise ValueError("A command is required in spawn mode")

        guard = build_guard(self._config, os.getpid(), self._backend)
        self._guard = guard
        self._session = Session(
            mode=SessionMode.SPAWN,
            key=guard.key,
            strategy=guard.strategy_name,
            command=" ".join(command),
        )
        logger.info("Subcommand %s", list(command))

        try:
            with guard:
                self._session.status = SessionStatus.RUNNING
                if self._cancel.is_set():
                    signum = self._interrupted or signal.SIGINT
                    logger.warning("Interrupted during setup, not starting '%s'", command[0])
                    returncode = -signum
                else:
                    returncode = self._run_child(command)
        except BaseException:
            self._finalize(SessionStatus.ERROR)
            raise

        status = exit_status(returncode)
        self._session.returncode = status
        logger.info("Child exited with status %d", status)
        self._finalize(SessionStatus.STOPPED)
        return status

    def _run_child(self, command: Sequence[str]) -> int:
        try:
            self._child = subprocess.Popen(list(command))
        except OSError as e:
            raise SpawnError(f"Cannot start '{command[0]}': {e}") from e
        if self._session is not None:
            self._session.child_pid = self._child.pid
        logger.info("Spawned '%s' (PID %d)", command[0], self._child.pid)
        return self._child.wait()

    def attach(self, pid: int) -> None:
        """Redirect an already-running process until cancelled or it exits."""
        if not psutil.pid_exists(pid):
            raise ProcessNotFoundError(f"No process with PID {pid}")

        guard = build_guard(self._config, pid, self._backend)
        self._guard = guard
        self._session = Session(
            mode=SessionMode.ATTACH,
            key=guard.key,
            strategy=guard.strategy_name,
        )

        try:
            with guard:
                self._session.status = SessionStatus.RUNNING
                logger.info("Redirecting PID %d until interrupted", pid)
                while not self._cancel.wait(self._config.poll_interval):
                    if not psutil.pid_exists(pid):
                        logger.info("PID %d exited — ending redirection", pid)
                        break
        except BaseException:
            self._finalize(SessionStatus.ERROR)
            raise

        self._finalize(SessionStatus.STOPPED)

    def interrupt(self, signum: int) -> None:
        """Interrupt callback: request shutdown without tearing anything down.

        SIGINT from a terminal already reaches the child through the
        foreground process group; other signals are forwarded to it. Before
        the child starts, the request is recorded so spawn skips it.
        """
        child = self._child
        if child is not None:
            if signum != signal.SIGINT and child.poll() is None:
                logger.info("Forwarding signal %d to PID %d", signum, child.pid)
                child.send_signal(signum)
            return
        if self._interrupted is None:
            self._interrupted = signum
        self._cancel.set()

    def _finalize(self, status: SessionStatus) -> None:
        if self._session is not None:
            self._session.status = status
            self._session.end_time = time.time()

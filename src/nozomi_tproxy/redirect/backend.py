"""Privileged command backend — applies and reverts ordered redirection steps."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

from nozomi_tproxy.errors import CommandError, InconsistentKernelStateError, SetupError
from nozomi_tproxy.redirect.models import Command, Step

logger = logging.getLogger(__name__)


class Backend(Protocol):
    """Protocol for executors of redirection steps."""

    def apply(self, steps: Sequence[Step]) -> None:
        """Run each step's commands in order; all-or-nothing."""
        ...

    def revert(self, steps: Sequence[Step]) -> None:
        """Undo the given (applied) steps, last step first."""
        ...


class ShellBackend:
    """Runs steps as privileged commands through ``subprocess``.

    Commands are executed without a shell, prefixed with ``sudo`` unless
    the process already runs as root. Execution stops at the first failing
    command; ``apply`` then undoes the failing step if it got partway and
    rolls back the steps that completed.
    """

    def __init__(self, use_sudo: bool = True, timeout: float = 10.0) -> None:
        self._use_sudo = use_sudo
        self._timeout = timeout

    def apply(self, steps: Sequence[Step]) -> None:
        applied: list[Step] = []
        for step in steps:
            logger.info("Setup: %s", step.name)
            done = 0
            try:
                for command in step.do:
                    self.execute(command)
                    done += 1
            except CommandError as e:
                logger.error("Setup step '%s' failed: %s", step.name, e)
                if done:
                    self._undo_partial(step, applied)
                if applied:
                    logger.warning("Rolling back %d applied step(s)", len(applied))
                    self.revert(applied)
                raise SetupError(step.name, e) from e
            applied.append(step)

    def _undo_partial(self, step: Step, applied: Sequence[Step]) -> None:
        """Undo a step whose commands only partly ran; its undo may hit missing pieces."""
        logger.warning("Undoing partially applied step '%s'", step.name)
        try:
            for command in step.undo:
                self.execute(replace(command, check=False))
        except CommandError as e:
            leftover = [step.name, *(s.name for s in reversed(applied))]
            raise InconsistentKernelStateError(
                f"Undo of partially applied '{step.name}' failed: {e}",
                leftover=leftover,
            ) from e

    def revert(self, steps: Sequence[Step]) -> None:
        pending = list(steps)
        while pending:
            step = pending[-1]
            logger.info("Teardown: %s", step.name)
            try:
                self._run_all(step.undo)
            except CommandError as e:
                leftover = [s.name for s in reversed(pending)]
                raise InconsistentKernelStateError(
                    f"Teardown of '{step.name}' failed: {e}",
                    leftover=leftover,
                ) from e
            pending.pop()

    def _run_all(self, commands: Sequence[Command]) -> None:
        for command in commands:
            self.execute(command)

    def execute(self, command: Command) -> None:
        """Run one command, raising CommandError on failure unless it is unchecked."""
        argv = list(command.argv)
        if self._use_sudo:
            argv.insert(0, "sudo")
        logger.debug("$ %s", command.render())
        try:
            subprocess.run(
                argv,
                input=command.stdin,
                check=True,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.CalledProcessError as e:
            if command.check:
                raise CommandError(command.render(), e.returncode, e.stderr or "") from e
            logger.debug("Ignoring failure of %s: exit %d", command.render(), e.returncode)
        except subprocess.TimeoutExpired as e:
            raise CommandError(command.render(), None, f"timed out after {self._timeout}s") from e
        except FileNotFoundError as e:
            raise CommandError(command.render(), None, str(e)) from e

"""Error types raised while setting up, supervising, and tearing down redirection."""

from __future__ import annotations

from collections.abc import Sequence


class RedirectError(Exception):
    """Base class for nozomi-tproxy errors."""


class CommandError(RedirectError):
    """A privileged command exited non-zero, timed out, or could not be run."""

    def __init__(self, command: str, returncode: int | None, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f" (exit {returncode})" if returncode is not None else ""
        msg = f"Command failed{detail}: {command}"
        if self.stderr:
            msg += f"\n  {self.stderr}"
        super().__init__(msg)


class SetupError(RedirectError):
    """A step of the setup sequence failed; applied steps were rolled back."""

    def __init__(self, step: str, cause: CommandError) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"Setup step '{step}' failed: {cause}")


class InconsistentKernelStateError(RedirectError):
    """Teardown failed; cgroup, firewall, or routing state needs manual cleanup."""

    def __init__(self, message: str, leftover: Sequence[str] = ()) -> None:
        self.leftover = tuple(leftover)
        super().__init__(message)


class SpawnError(RedirectError):
    """The child command could not be started."""


class ProcessNotFoundError(RedirectError):
    """The process to attach to does not exist."""


class SignalRegistrationError(RedirectError):
    """Interrupt handlers could not be installed."""


class GuardStateError(RedirectError):
    """A redirection guard was used outside its lifecycle."""

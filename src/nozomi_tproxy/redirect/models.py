"""Redirection data models — session keys, commands, and reversible steps."""

from __future__ import annotations

import enum
import shlex
from dataclasses import dataclass

DEFAULT_PREFIX = "nozomi_tproxy"


class GuardState(enum.Enum):
    """Lifecycle state of a redirection guard."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    RELEASED = "released"


@dataclass(frozen=True)
class RedirectionKey:
    """Identifies one redirection session and every host resource it names.

    All names are derived from the process id, so two keys for different
    pids never share a cgroup, chain, or routing table.
    """

    process_id: int
    class_id: int
    proxy_port: int
    prefix: str = DEFAULT_PREFIX

    def __post_init__(self) -> None:
        if self.process_id <= 0:
            raise ValueError(f"process id must be positive, got {self.process_id}")
        if not 0 < self.proxy_port < 65536:
            raise ValueError(f"proxy port out of range: {self.proxy_port}")
        if self.class_id <= 0:
            raise ValueError(f"class id must be positive, got {self.class_id}")
        if not self.prefix:
            raise ValueError("resource name prefix must not be empty")

    @classmethod
    def for_port(
        cls, process_id: int, port: int, prefix: str = DEFAULT_PREFIX
    ) -> RedirectionKey:
        """Build a key whose traffic class is the proxy port number."""
        return cls(process_id=process_id, class_id=port, proxy_port=port, prefix=prefix)

    @property
    def group_name(self) -> str:
        return f"{self.prefix}_{self.process_id}"

    @property
    def output_chain_name(self) -> str:
        return f"{self.prefix}_out_{self.process_id}"

    @property
    def prerouting_chain_name(self) -> str:
        return f"{self.prefix}_pre_{self.process_id}"

    @property
    def routing_mark(self) -> int:
        # Doubles as the routing table number.
        return self.process_id


@dataclass(frozen=True)
class Command:
    """A single privileged command line."""

    argv: tuple[str, ...]
    stdin: str | None = None
    check: bool = True

    def render(self) -> str:
        line = shlex.join(self.argv)
        if self.stdin is not None:
            line = f"echo {shlex.quote(self.stdin.strip())} | {line}"
        return line


@dataclass(frozen=True)
class Step:
    """One host resource: the commands that create it and the ones that remove it."""

    name: str
    do: tuple[Command, ...]
    undo: tuple[Command, ...]


def iptables(table: str, *args: str | int) -> Command:
    return Command(("iptables", "-t", table, *(str(a) for a in args)))


def ip(*args: str | int) -> Command:
    return Command(("ip", *(str(a) for a in args)))


def write_file(path: str, value: str | int, check: bool = True) -> Command:
    """Write ``value`` into a (possibly root-owned) file via tee."""
    return Command(("tee", path), stdin=f"{value}\n", check=check)

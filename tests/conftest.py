"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from nozomi_tproxy.config import TproxyConfig
from nozomi_tproxy.errors import CommandError
from nozomi_tproxy.redirect.backend import ShellBackend
from nozomi_tproxy.redirect.models import Command, RedirectionKey


class RecordingBackend(ShellBackend):
    """ShellBackend that records rendered commands instead of running them.

    ``fail_on`` makes any command whose rendering contains the substring
    fail, like a non-zero exit from the real tool.
    """

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__(use_sudo=False)
        self.commands: list[str] = []
        self.fail_on = fail_on

    def execute(self, command: Command) -> None:
        line = command.render()
        self.commands.append(line)
        if self.fail_on and self.fail_on in line:
            if command.check:
                raise CommandError(line, 1, "simulated failure")


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def key() -> RedirectionKey:
    return RedirectionKey.for_port(4242, 1081)


@pytest.fixture
def config(tmp_path: Path) -> TproxyConfig:
    return TproxyConfig(
        port=1081,
        poll_interval=0.01,
        use_sudo=False,
        config_dir=tmp_path / "config",
    )


@pytest.fixture
def make_backend():
    def _make(fail_on: str | None = None) -> RecordingBackend:
        return RecordingBackend(fail_on=fail_on)

    return _make

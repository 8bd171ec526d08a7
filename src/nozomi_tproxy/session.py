"""Session data model — what was redirected, how, and how it ended."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

from nozomi_tproxy.redirect.models import RedirectionKey


class SessionMode(enum.Enum):
    """How the controlled process is bound to the session."""

    SPAWN = "spawn"
    ATTACH = "attach"


class SessionStatus(enum.Enum):
    """Lifecycle state of a redirection session."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class Session:
    """A single supervised redirection."""

    mode: SessionMode
    key: RedirectionKey
    strategy: str
    command: str = ""
    child_pid: int | None = None
    returncode: int | None = None
    status: SessionStatus = SessionStatus.PENDING
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None

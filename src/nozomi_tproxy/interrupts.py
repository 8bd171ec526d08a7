"""Interrupt handling — turn SIGINT/SIGTERM into a cooperative shutdown request."""

from __future__ import annotations

import logging
import signal
from collections.abc import Callable, Iterable
from types import FrameType, TracebackType
from typing import Any

from nozomi_tproxy.errors import SignalRegistrationError

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptHandler:
    """Installs one process-wide handler for the given signals.

    The callback runs in signal context and must only record state (set an
    event, forward a signal). Teardown stays with the main flow, which
    observes that state and exits its wait.
    """

    def __init__(
        self,
        callback: Callable[[int], None],
        signals: Iterable[int] = DEFAULT_SIGNALS,
    ) -> None:
        self._callback = callback
        self._signals = tuple(signals)
        self._previous: dict[int, Any] = {}
        self._count = 0

    @property
    def count(self) -> int:
        """Number of interrupts received so far."""
        return self._count

    def install(self) -> None:
        try:
            for signum in self._signals:
                self._previous[signum] = signal.signal(signum, self._handle)
        except (ValueError, OSError) as e:
            self.restore()
            raise SignalRegistrationError(f"Cannot install interrupt handler: {e}") from e

    def restore(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        self._count += 1
        if self._count == 1:
            logger.warning("Received %s, terminating...", signal.Signals(signum).name)
        else:
            logger.warning(
                "Received %s again, shutdown already in progress",
                signal.Signals(signum).name,
            )
        self._callback(signum)

    def __enter__(self) -> InterruptHandler:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.restore()

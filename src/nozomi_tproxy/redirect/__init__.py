"""Redirection rules: classifier, strategies, backend, and the guard that owns them."""

from nozomi_tproxy.redirect.backend import Backend, ShellBackend
from nozomi_tproxy.redirect.classifier import TrafficClassifier
from nozomi_tproxy.redirect.guard import RedirectionGuard, build_guard
from nozomi_tproxy.redirect.models import Command, GuardState, RedirectionKey, Step
from nozomi_tproxy.redirect.strategies import (
    DirectRedirect,
    RedirectStrategy,
    TransparentProxyRedirect,
)

__all__ = [
    "Backend",
    "Command",
    "DirectRedirect",
    "GuardState",
    "RedirectStrategy",
    "RedirectionGuard",
    "RedirectionKey",
    "ShellBackend",
    "Step",
    "TrafficClassifier",
    "TransparentProxyRedirect",
    "build_guard",
]

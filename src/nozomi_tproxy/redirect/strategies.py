"""Rule installers — REDIRECT and TPROXY strategies as ordered, reversible steps."""

from __future__ import annotations

from typing import Protocol

from nozomi_tproxy.redirect.classifier import TrafficClassifier
from nozomi_tproxy.redirect.models import RedirectionKey, Step, ip, iptables

LOOPBACK_IP = "127.0.0.1"
DNS_PORT = 53


class RedirectStrategy(Protocol):
    """Protocol for redirection rule installers."""

    name: str

    def steps(self, key: RedirectionKey) -> list[Step]:
        """Return the setup sequence; teardown is the undo of each step, reversed."""
        ...


def _chain_steps(table: str, hook: str, chain: str, rules: list[tuple[str | int, ...]]) -> list[Step]:
    """Create ``chain``, link it from ``hook`` and fill it with ``rules``."""
    return [
        Step(
            name=f"create {table} chain {chain}",
            do=(iptables(table, "-N", chain),),
            undo=(iptables(table, "-X", chain),),
        ),
        Step(
            name=f"link {chain} from {hook}",
            do=(iptables(table, "-A", hook, "-j", chain),),
            undo=(iptables(table, "-D", hook, "-j", chain),),
        ),
        Step(
            name=f"populate {chain}",
            do=tuple(iptables(table, "-A", chain, *rule) for rule in rules),
            undo=(iptables(table, "-F", chain),),
        ),
    ]


class DirectRedirect:
    """Rewrites the destination port of classified TCP and DNS traffic.

    Only UDP port 53 is redirected; other UDP traffic leaves untouched.
    """

    name = "redirect"

    def __init__(self, classifier: TrafficClassifier | None = None) -> None:
        self._classifier = classifier or TrafficClassifier()

    def steps(self, key: RedirectionKey) -> list[Step]:
        cgroup = ("-m", "cgroup", "--cgroup", key.class_id)
        to_proxy = ("-j", "REDIRECT", "--to-ports", key.proxy_port)
        return [
            *self._classifier.enroll(key.group_name, key.class_id, key.process_id),
            *_chain_steps(
                "nat",
                "OUTPUT",
                key.output_chain_name,
                [
                    ("-p", "tcp", *cgroup, *to_proxy),
                    ("-p", "udp", *cgroup, "--dport", DNS_PORT, *to_proxy),
                ],
            ),
        ]


class TransparentProxyRedirect:
    """Marks classified traffic and hands it to the proxy with TPROXY.

    Needs a routing table and fwmark per process, both numbered after the
    pid. The proxy sees the original destination of every TCP and UDP flow.
    """

    name = "tproxy"

    def __init__(self, classifier: TrafficClassifier | None = None) -> None:
        self._classifier = classifier or TrafficClassifier()

    def steps(self, key: RedirectionKey) -> list[Step]:
        mark = key.routing_mark
        on_mark = ("-m", "mark", "--mark", mark)
        tproxy = ("-j", "TPROXY", "--on-ip", LOOPBACK_IP, "--on-port", key.proxy_port)
        cgroup = ("-m", "cgroup", "--cgroup", key.class_id)
        set_mark = ("-j", "MARK", "--set-mark", mark)
        local_route = ("local", "0.0.0.0/0", "dev", "lo", "table", mark)
        return [
            Step(
                name=f"route fwmark {mark} via table {mark}",
                do=(ip("rule", "add", "fwmark", mark, "table", mark),),
                undo=(ip("rule", "delete", "fwmark", mark, "table", mark),),
            ),
            Step(
                name=f"local route in table {mark}",
                do=(ip("route", "add", *local_route),),
                undo=(ip("route", "delete", *local_route),),
            ),
            *self._classifier.enroll(key.group_name, key.class_id, key.process_id),
            *_chain_steps(
                "mangle",
                "PREROUTING",
                key.prerouting_chain_name,
                [
                    ("-p", "udp", *on_mark, *tproxy),
                    ("-p", "tcp", *on_mark, *tproxy),
                ],
            ),
            *_chain_steps(
                "mangle",
                "OUTPUT",
                key.output_chain_name,
                [
                    ("-p", "tcp", *cgroup, *set_mark),
                    ("-p", "udp", *cgroup, *set_mark),
                ],
            ),
        ]

"""Tests for the net_cls traffic classifier."""

from __future__ import annotations

from nozomi_tproxy.redirect.classifier import TrafficClassifier


def test_enroll_creates_tags_and_adds_pid():
    steps = TrafficClassifier().enroll("nozomi_tproxy_4242", 1081, 4242)
    assert len(steps) == 2

    create, enroll = steps
    assert [c.render() for c in create.do] == [
        "mkdir -p /sys/fs/cgroup/net_cls/nozomi_tproxy_4242",
        "echo 1081 | tee /sys/fs/cgroup/net_cls/nozomi_tproxy_4242/net_cls.classid",
    ]
    assert [c.render() for c in enroll.do] == [
        "echo 4242 | tee /sys/fs/cgroup/net_cls/nozomi_tproxy_4242/cgroup.procs",
    ]


def test_unenroll_moves_pid_to_root_then_removes_group():
    moves, rmdir = TrafficClassifier().unenroll("nozomi_tproxy_4242", 4242)
    assert moves.render() == "echo 4242 | tee /sys/fs/cgroup/net_cls/cgroup.procs"
    assert rmdir.render() == "rmdir /sys/fs/cgroup/net_cls/nozomi_tproxy_4242"


def test_unenroll_tolerates_exited_process():
    moves, rmdir = TrafficClassifier().unenroll("g", 1)
    assert moves.check is False
    assert rmdir.check is True


def test_undo_halves_are_unenroll_commands():
    classifier = TrafficClassifier()
    create, enroll = classifier.enroll("g", 5, 1)
    remove_pid, remove_group = classifier.unenroll("g", 1)
    assert enroll.undo == (remove_pid,)
    assert create.undo == (remove_group,)


def test_custom_root(tmp_path):
    classifier = TrafficClassifier(tmp_path)
    create, _ = classifier.enroll("g", 5, 1)
    assert create.do[0].argv == ("mkdir", "-p", str(tmp_path / "g"))

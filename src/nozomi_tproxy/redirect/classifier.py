"""Traffic classifier — net_cls cgroup creation and process enrollment."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from nozomi_tproxy.redirect.models import Command, Step, write_file

DEFAULT_CGROUP_ROOT = PurePosixPath("/sys/fs/cgroup/net_cls")


class TrafficClassifier:
    """Builds the steps that tag a process with a net_cls class id.

    Firewall rules match the class id with ``-m cgroup --cgroup <id>``.
    Enrolling the same group twice while it is active is not supported:
    ``mkdir -p`` tolerates the existing directory, but re-tagging the
    classid of a populated group is left to the kernel.
    """

    def __init__(self, root: str | Path | PurePosixPath = DEFAULT_CGROUP_ROOT) -> None:
        self._root = PurePosixPath(root)

    @property
    def root(self) -> PurePosixPath:
        return self._root

    def group_path(self, group_name: str) -> PurePosixPath:
        return self._root / group_name

    def enroll(self, group_name: str, class_id: int, process_id: int) -> list[Step]:
        """Steps that create ``group_name`` tagged ``class_id`` and add ``process_id``."""
        group = self.group_path(group_name)
        remove_pid, remove_group = self.unenroll(group_name, process_id)
        return [
            Step(
                name=f"create cgroup {group_name} (classid {class_id})",
                do=(
                    Command(("mkdir", "-p", str(group))),
                    write_file(str(group / "net_cls.classid"), class_id),
                ),
                undo=(remove_group,),
            ),
            Step(
                name=f"enroll pid {process_id} in {group_name}",
                do=(write_file(str(group / "cgroup.procs"), process_id),),
                undo=(remove_pid,),
            ),
        ]

    def unenroll(self, group_name: str, process_id: int) -> list[Command]:
        """Commands that move ``process_id`` back to the root group, then drop the group.

        Moving the pid fails harmlessly once the process has exited, which
        leaves the group empty and removable.
        """
        return [
            write_file(str(self._root / "cgroup.procs"), process_id, check=False),
            Command(("rmdir", str(self.group_path(group_name)))),
        ]

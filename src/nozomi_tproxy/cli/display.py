"""Rich rendering for plans, errors, and session summaries."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from nozomi_tproxy.errors import InconsistentKernelStateError, RedirectError
from nozomi_tproxy.redirect.guard import RedirectionGuard
from nozomi_tproxy.supervisor import ProcessSupervisor


def print_plan(console: Console, guard: RedirectionGuard) -> None:
    key = guard.key
    console.print(
        f"[bold]{guard.strategy_name}[/bold] plan for PID {key.process_id} "
        f"(port {key.proxy_port}, class id {key.class_id})"
    )

    table = Table(title="Setup", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Step")
    table.add_column("Commands", style="cyan")
    for i, step in enumerate(guard.plan, 1):
        table.add_row(str(i), step.name, "\n".join(c.render() for c in step.do))
    console.print(table)

    table = Table(title="Teardown", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Step")
    table.add_column("Commands", style="cyan")
    for i, step in enumerate(reversed(guard.plan), 1):
        table.add_row(str(i), f"undo {step.name}", "\n".join(c.render() for c in step.undo))
    console.print(table)


def print_error(console: Console, error: RedirectError) -> None:
    if isinstance(error, InconsistentKernelStateError):
        console.print(f"[bold red]Inconsistent kernel state:[/bold red] {error}")
        if error.leftover:
            console.print("  Resources still in place (remove manually):")
            for name in error.leftover:
                console.print(f"    [red]•[/red] {name}")
        return
    console.print(f"[red]Error:[/red] {error}")


def print_summary(console: Console, supervisor: ProcessSupervisor) -> None:
    session = supervisor.session
    if session is None:
        return

    key = session.key
    console.print("\n[bold]Session Summary[/bold]")
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    table.add_row("Mode", session.mode.value)
    table.add_row("Strategy", session.strategy)
    table.add_row("PID", str(key.process_id))
    if session.command:
        table.add_row("Command", session.command)
    if session.child_pid is not None:
        table.add_row("Child PID", str(session.child_pid))
    table.add_row("Proxy port", str(key.proxy_port))
    table.add_row("Cgroup", key.group_name)
    table.add_row("Output chain", key.output_chain_name)
    if session.strategy == "tproxy":
        table.add_row("Prerouting chain", key.prerouting_chain_name)
        table.add_row("Routing mark", str(key.routing_mark))
    table.add_row("Status", session.status.value)
    if session.returncode is not None:
        table.add_row("Exit Code", str(session.returncode))
    console.print(table)

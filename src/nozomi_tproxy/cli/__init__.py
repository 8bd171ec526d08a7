"""CLI entry point — redirect a new or running process through a local proxy."""

from __future__ import annotations

import logging
import os
import sys

import click
import yaml
from rich.console import Console

from nozomi_tproxy import __version__
from nozomi_tproxy.cli.display import print_error, print_plan, print_summary
from nozomi_tproxy.config import TproxyConfig
from nozomi_tproxy.errors import InconsistentKernelStateError, RedirectError
from nozomi_tproxy.interrupts import InterruptHandler
from nozomi_tproxy.redirect.guard import build_guard
from nozomi_tproxy.supervisor import ProcessSupervisor

console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_INCONSISTENT = 3


def _configure_logging(config: TproxyConfig, verbose: bool) -> None:
    level = logging.getLevelName(config.log_level.upper())
    if verbose:
        level = logging.DEBUG
    elif not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.version_option(version=__version__, prog_name="nozomi-tproxy")
@click.option(
    "--port",
    type=click.IntRange(1, 65535),
    default=None,
    help="Local proxy listener port, also used as the traffic class id. [default: 1081]",
)
@click.option("--use-tproxy", is_flag=True, help="Intercept with TPROXY instead of REDIRECT.")
@click.option(
    "--pid",
    type=click.IntRange(min=1),
    default=None,
    help="Attach to this running process instead of spawning a command.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--dry-run", is_flag=True, help="Print the setup and teardown plan, then exit.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def main(
    port: int | None,
    use_tproxy: bool,
    pid: int | None,
    config_path: str | None,
    dry_run: bool,
    verbose: bool,
    command: tuple[str, ...],
) -> None:
    """nozomi-tproxy — force one process's traffic through a local proxy.

    Either spawn COMMAND with its traffic redirected, or attach to an
    existing process with --pid until interrupted.
    """
    try:
        config = TproxyConfig.load(config_path)
    except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e

    _configure_logging(config, verbose)

    if port is not None:
        config.port = port
    if use_tproxy:
        config.use_tproxy = True

    if pid is None and not command:
        raise click.UsageError("A COMMAND is required unless --pid is given.")
    if pid is not None and command:
        raise click.UsageError("--pid cannot be combined with a COMMAND.")

    if dry_run:
        print_plan(console, build_guard(config, pid or os.getpid()))
        return

    supervisor = ProcessSupervisor(config)
    rc = 0
    try:
        with InterruptHandler(supervisor.interrupt):
            if pid is None:
                console.print(
                    f"[bold]nozomi-tproxy[/bold] running [cyan]{' '.join(command)}[/cyan] "
                    f"via port [cyan]{config.port}[/cyan]"
                )
                rc = supervisor.spawn(command)
            else:
                console.print(
                    f"[bold]nozomi-tproxy[/bold] redirecting PID {pid} "
                    f"via port [cyan]{config.port}[/cyan]"
                )
                console.print("  Press Ctrl+C to stop.\n")
                supervisor.attach(pid)
    except InconsistentKernelStateError as e:
        print_error(console, e)
        print_summary(console, supervisor)
        sys.exit(EXIT_INCONSISTENT)
    except RedirectError as e:
        print_error(console, e)
        print_summary(console, supervisor)
        sys.exit(EXIT_FAILURE)

    print_summary(console, supervisor)
    sys.exit(rc)

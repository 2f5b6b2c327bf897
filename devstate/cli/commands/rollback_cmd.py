"""``devstate rollback`` — reverse manifest-installed packages.

Dry-run by default: prints what would be removed. ``--no-dry-run`` runs
each removal best-effort; failures are summarised, never fatal.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from devstate.cli.commands.ledger_cmd import open_ledger
from devstate.cli.commands.manifest_cmd import load_resolver
from devstate.config import config
from devstate.core.rollback import (
    RollbackPlanner,
    list_apt_dev_packages,
    list_brew_leaves,
)
from devstate.errors import LedgerIOError

console = Console()
err_console = Console(stderr=True)


def rollback_cmd(
    dry_run: bool = typer.Option(
        True, "--dry-run/--no-dry-run", help="Print actions only (default) or actually uninstall."
    ),
    npm_globals: bool = typer.Option(False, "--npm-globals", help="Remove every node.globals package."),
    pip_groups: list[str] = typer.Option(
        [], "--pip-group", "-g", help="Python group to remove (repeatable)."
    ),
    list_brew: bool = typer.Option(False, "--list-brew", help="List brew leaves (informational)."),
    list_apt: bool = typer.Option(False, "--list-apt", help="List apt dev packages (informational)."),
    record: bool = typer.Option(
        False, "--record/--no-record", help="Record a live run in the ledger."
    ),
    manifest: Path = typer.Option(config.manifest_path, "--manifest", "-m", help="Path to versions.yaml."),
    state_dir: Path = typer.Option(config.state_dir, "--state-dir", "-s", help="Ledger state directory."),
) -> None:
    """Plan and (optionally) execute a rollback from manifest groups."""
    resolver = load_resolver(manifest)
    planner = RollbackPlanner(resolver)

    plan = planner.plan(npm_globals=npm_globals, pip_groups=list(pip_groups))
    started = time.monotonic()
    result = planner.execute(plan, dry_run=dry_run)
    elapsed_ms = int((time.monotonic() - started) * 1000)

    for line in result.lines:
        console.print(f"  {escape(line)}", soft_wrap=True, highlight=False)

    if list_brew:
        console.print("[bold]brew leaves (candidates, not removed)[/bold]")
        for formula in list_brew_leaves():
            console.print(f"  brew uninstall {escape(formula)}", highlight=False)
    if list_apt:
        console.print("[bold]apt dev packages (candidates, not removed)[/bold]")
        for package in list_apt_dev_packages():
            console.print(f"  sudo apt remove {escape(package)}", highlight=False)

    if result.failures:
        err_console.print(
            f"[yellow]{result.failure_count} of {result.attempted} removals failed:[/yellow]"
        )
        for failure in result.failures:
            err_console.print(
                f"  {escape(failure.action.command_line)}: {escape(failure.error)}",
                soft_wrap=True,
            )

    if record and not dry_run and plan.actions:
        try:
            open_ledger(state_dir, lock=config.ledger_lock).record(
                "rollback",
                component=",".join(sorted({a.ecosystem for a in plan.actions})),
                status="fail" if result.failures else "ok",
                duration_ms=elapsed_ms,
            )
        except LedgerIOError as exc:
            err_console.print(f"[bold red]Ledger write failed:[/bold red] {escape(str(exc))}")

    console.print(
        f"Rollback complete (dry-run={'yes' if dry_run else 'no'}, "
        f"{len(plan)} planned, {result.failure_count} failed)."
    )

"""``devstate ledger`` — record lifecycle operations and verify the chain.

Installer scripts call ``devstate ledger record`` after each lifecycle
action. ``verify`` replays the whole chain and prints both hashes on a
mismatch so operators can see where corruption began.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from devstate.config import config
from devstate.core.ledger import Ledger
from devstate.core.locking import FcntlFileLock, NullLock
from devstate.errors import LedgerIOError

console = Console()
err_console = Console(stderr=True)

EXIT_INVALID_ARGS = 2
EXIT_IO_ERROR = 4
EXIT_CHAIN_MISMATCH = 5

ledger_app = typer.Typer(
    help="Append-only, hash-chained record of lifecycle operations.",
    no_args_is_help=True,
)

_STATE_DIR_OPTION = typer.Option(
    config.state_dir,
    "--state-dir",
    "-s",
    help="Directory holding ledger.jsonl and ledger.head.",
)


def open_ledger(state_dir: Path, *, lock: bool = True) -> Ledger:
    """Build a ledger over ``state_dir``, locked unless ``lock`` is False."""
    state_dir = Path(state_dir)
    if lock:
        return Ledger(state_dir, lock=FcntlFileLock(state_dir / "ledger.lock"))
    return Ledger(state_dir, lock=NullLock())


@ledger_app.command(name="record", help="Append an entry and print the new head.")
def record_cmd(
    action: str = typer.Option(..., "--action", "-a", help="Operation performed, e.g. install."),
    component: str = typer.Option(None, "--component", "-c", help="Component acted on."),
    status: str = typer.Option("ok", "--status", help="ok or fail."),
    duration_ms: int = typer.Option(None, "--duration-ms", help="Duration in milliseconds."),
    extra: str = typer.Option(None, "--extra", help="JSON fragment stored verbatim."),
    state_dir: Path = _STATE_DIR_OPTION,
    lock: bool = typer.Option(
        config.ledger_lock, "--lock/--no-lock", help="Hold an exclusive file lock while writing."
    ),
) -> None:
    """Record one lifecycle operation."""
    ledger = open_ledger(state_dir, lock=lock)
    try:
        head = ledger.record(
            action,
            component=component,
            status=status,
            duration_ms=duration_ms,
            extra=extra,
        )
    except ValueError as exc:
        err_console.print(f"[bold red]Invalid entry:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_INVALID_ARGS)
    except LedgerIOError as exc:
        err_console.print(f"[bold red]Ledger write failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_IO_ERROR)

    # Plain head for scripting
    console.print(head, soft_wrap=True, highlight=False)


@ledger_app.command(name="verify", help="Replay the chain and compare it with the stored head.")
def verify_cmd(state_dir: Path = _STATE_DIR_OPTION) -> None:
    """Verify ledger integrity. Exit 0 when intact, 5 on mismatch."""
    ledger = open_ledger(state_dir, lock=False)
    try:
        result = ledger.verify()
    except LedgerIOError as exc:
        err_console.print(f"[bold red]Ledger read failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_IO_ERROR)

    if result.ok:
        if result.entry_count == 0:
            console.print(f"[green]OK[/green] ledger empty ({ledger.ledger_path})", soft_wrap=True)
        else:
            console.print(
                f"[green]OK[/green] chain intact ({result.computed_head}, "
                f"{result.entry_count} entries)",
                soft_wrap=True,
                highlight=False,
            )
        return

    err_console.print(
        f"[bold red]FAIL[/bold red] chain mismatch in {ledger.ledger_path}",
        soft_wrap=True,
    )
    err_console.print(f"  computed={result.computed_head or '<empty>'}", soft_wrap=True, highlight=False)
    err_console.print(f"  stored={result.stored_head or '<empty>'}", soft_wrap=True, highlight=False)
    raise typer.Exit(code=EXIT_CHAIN_MISMATCH)


@ledger_app.command(name="show", help="List recorded entries.")
def show_cmd(
    state_dir: Path = _STATE_DIR_OPTION,
    limit: int = typer.Option(20, "--limit", "-n", min=0, help="Most recent N entries (0 = all)."),
) -> None:
    """Show the most recent ledger entries as a table."""
    ledger = open_ledger(state_dir, lock=False)
    try:
        entries = ledger.entries()
    except LedgerIOError as exc:
        err_console.print(f"[bold red]Ledger read failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_IO_ERROR)

    if not entries:
        console.print("[dim]Ledger is empty.[/dim]")
        return

    shown = entries[-limit:] if limit else entries
    table = Table(title=f"Ledger ({len(entries)} entries)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Timestamp (UTC)", no_wrap=True)
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Component")
    table.add_column("Status", justify="center")
    table.add_column("Duration (ms)", justify="right")

    offset = len(entries) - len(shown)
    for index, entry in enumerate(shown, start=offset + 1):
        status = "[green]ok[/green]" if entry.status == "ok" else "[red]fail[/red]"
        table.add_row(
            str(index),
            entry.ts,
            escape(entry.action),
            escape(entry.component or ""),
            status,
            "" if entry.duration_ms is None else str(entry.duration_ms),
        )
    console.print(table)

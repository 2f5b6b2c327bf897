"""Main Typer application — imports and registers all CLI commands.

Entry point: ``devstate`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from devstate.cli.commands.ledger_cmd import ledger_app
from devstate.cli.commands.manifest_cmd import manifest_app
from devstate.cli.commands.pin_audit_cmd import pin_audit_cmd
from devstate.cli.commands.rollback_cmd import rollback_cmd
from devstate.config import config

app = typer.Typer(
    name="devstate",
    help="devstate: manifest-driven package lifecycle with a tamper-evident ledger.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.add_typer(ledger_app, name="ledger", help="Record and verify lifecycle operations.")
app.add_typer(manifest_app, name="manifest", help="Query the versions manifest.")
app.command(name="rollback", help="Plan or run a rollback from manifest groups.")(rollback_cmd)
app.command(name="pin-audit", help="Find installs that bypass the versions manifest.")(pin_audit_cmd)


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich, once per process."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        config.log_level, "--log-level", help="DEBUG, INFO, WARNING or ERROR."
    ),
) -> None:
    configure_logging(log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

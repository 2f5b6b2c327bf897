"""devstate CLI — Typer-based command-line interface.

Provides the ``devstate`` command with subcommands for the ledger, manifest
queries, rollback planning and pin auditing.

All output uses Rich for formatted terminal display.
"""

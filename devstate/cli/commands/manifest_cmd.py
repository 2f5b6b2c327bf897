"""``devstate manifest`` — query the versions manifest.

Installer scripts use these commands instead of parsing versions.yaml
themselves, e.g. ``pip install $(devstate manifest pip-args core)``.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from devstate.config import config
from devstate.core.archive_drift import check_drift
from devstate.core.manifest import ManifestResolver, manifest_fingerprint
from devstate.errors import (
    ArchiveBaselineError,
    ManifestConflictError,
    ManifestLookupError,
    ManifestMissing,
    ManifestParseError,
)
from devstate.models.manifest import Pin, pin_version

console = Console()
err_console = Console(stderr=True)

EXIT_LOOKUP = 1
EXIT_DRIFT = 1
EXIT_MISSING = 3
EXIT_PARSE = 4

manifest_app = typer.Typer(help="Resolve groups and profiles from the versions manifest.", no_args_is_help=True)

_MANIFEST_OPTION = typer.Option(
    config.manifest_path, "--manifest", "-m", help="Path to versions.yaml."
)


def load_resolver(manifest_path: Path) -> ManifestResolver:
    """Load the manifest, turning manifest faults into CLI exits."""
    try:
        return ManifestResolver.from_path(manifest_path)
    except ManifestMissing as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_MISSING)
    except ManifestParseError as exc:
        err_console.print(f"[bold red]Manifest parse error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_PARSE)


def _pins_table(title: str, pins: dict[str, Pin]) -> Table:
    table = Table(title=title)
    table.add_column("Package", style="cyan")
    table.add_column("Pin", style="green")
    for name, pin in pins.items():
        table.add_row(escape(name), escape(pin_version(pin)))
    return table


@manifest_app.command(name="show-group", help="Show the pins of one group.")
def show_group_cmd(
    ecosystem: str = typer.Argument(..., help="Ecosystem, e.g. python or node."),
    group: str = typer.Argument(..., help="Group path: <group> or <group>.extras.<sub>."),
    manifest: Path = _MANIFEST_OPTION,
) -> None:
    resolver = load_resolver(manifest)
    try:
        pins = resolver.resolve_group(ecosystem, group)
    except ManifestLookupError as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_LOOKUP)
    console.print(_pins_table(f"{ecosystem}.{group}", pins))


@manifest_app.command(name="profile", help="Expand a profile into concrete pins.")
def profile_cmd(
    name: str = typer.Argument(..., help="Profile name."),
    strict: bool = typer.Option(
        False, "--strict", help="Fail when two groups pin one package differently."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print name -> version as JSON."),
    manifest: Path = _MANIFEST_OPTION,
) -> None:
    resolver = load_resolver(manifest)
    try:
        resolved = resolver.resolve_profile(name, strict=strict)
    except (ManifestLookupError, ManifestConflictError) as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_LOOKUP)

    if as_json:
        payload = {pkg: pin_version(pin) for pkg, pin in resolved.packages.items()}
        typer.echo(json.dumps(payload, indent=2))
        return
    console.print(_pins_table(f"profile {name}", resolved.packages))


@manifest_app.command(name="pip-args", help="Print name==version specifiers for a python group.")
def pip_args_cmd(
    group: str = typer.Argument(..., help="Python group path."),
    manifest: Path = _MANIFEST_OPTION,
) -> None:
    resolver = load_resolver(manifest)
    try:
        specs = resolver.pip_requirements(group)
    except ManifestLookupError as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_LOOKUP)
    typer.echo(" ".join(specs))


@manifest_app.command(name="node-version", help="Print the pinned version of a node global.")
def node_version_cmd(
    package: str = typer.Argument(..., help="Package name in node.globals."),
    manifest: Path = _MANIFEST_OPTION,
) -> None:
    resolver = load_resolver(manifest)
    version = resolver.node_global_version(package)
    if version is None:
        err_console.print(f"[bold red]No node global {escape(package)!r} in {manifest}[/bold red]")
        raise typer.Exit(code=EXIT_LOOKUP)
    typer.echo(version)


@manifest_app.command(name="archives", help="List pinned archive records.")
def archives_cmd(manifest: Path = _MANIFEST_OPTION) -> None:
    resolver = load_resolver(manifest)
    archives = resolver.archives()
    if not archives:
        console.print("[dim]No archive records.[/dim]")
        return
    table = Table(title="Pinned archives")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Version", style="green", no_wrap=True)
    table.add_column("SHA-256", overflow="fold")
    table.add_column("Length", justify="right")
    table.add_column("URL", overflow="fold")
    for archive in archives:
        record = archive.record
        table.add_row(
            escape(archive.name),
            escape(record.version),
            escape(record.sha256),
            "" if record.content_length is None else str(record.content_length),
            escape(record.url),
        )
    console.print(table)


@manifest_app.command(name="fingerprint", help="Print the SHA-256 of the manifest file.")
def fingerprint_cmd(manifest: Path = _MANIFEST_OPTION) -> None:
    try:
        typer.echo(manifest_fingerprint(manifest))
    except ManifestMissing as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_MISSING)


@manifest_app.command(name="drift", help="Compare pinned archives against a baseline.")
def drift_cmd(
    baseline: Path = typer.Option(
        Path("baseline/archives.json"), "--baseline", "-b", help="Baseline JSON list."
    ),
    output_json: Path = typer.Option(None, "--output-json", help="Write the report as JSON."),
    manifest: Path = _MANIFEST_OPTION,
) -> None:
    """Exit 0 without drift, 1 with drift, 3 when an input is missing."""
    resolver = load_resolver(manifest)
    try:
        report = check_drift(resolver, baseline)
    except ArchiveBaselineError as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_MISSING)

    for drift in report.drifts:
        detail = " ".join(
            part for part in (
                f"baseline={drift.baseline}" if drift.baseline else "",
                f"current={drift.current}" if drift.current else "",
            ) if part
        )
        console.print(f"{drift.kind} {escape(drift.name)} {detail}".rstrip(), soft_wrap=True, highlight=False)

    if output_json is not None:
        output_json.parent.mkdir(parents=True, exist_ok=True)
        output_json.write_text(report.model_dump_json(indent=2), encoding="utf-8")

    if report.has_drift:
        err_console.print(f"[yellow]Drift detected ({len(report.drifts)} items).[/yellow]")
        raise typer.Exit(code=EXIT_DRIFT)
    console.print("[green]No archive drift.[/green]")

"""``devstate pin-audit`` — find installs that bypass the versions manifest.

Exit codes: 0 clean, 2 violations found, 3 the audit could not run.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from devstate.config import config
from devstate.core.pin_audit import PinAuditor
from devstate.errors import PinAuditError
from devstate.models.audit import PinAuditReport

console = Console()
err_console = Console(stderr=True)

EXIT_VIOLATIONS = 2
EXIT_TOOL_ERROR = 3


def _merge(reports: list[PinAuditReport]) -> PinAuditReport:
    findings = [finding for report in reports for finding in report.findings]
    return PinAuditReport(
        status="fail" if findings else "pass",
        root=",".join(report.root for report in reports),
        files_scanned=sum(report.files_scanned for report in reports),
        findings=findings,
    )


def pin_audit_cmd(
    roots: list[Path] = typer.Option(
        None, "--root", "-r", help="Directory to scan (repeatable). Defaults from config."
    ),
    globs: list[str] = typer.Option(
        None, "--glob", help="File pattern to scan (repeatable). Defaults from config."
    ),
    output_json: Path = typer.Option(None, "--output-json", help="Write a structured report."),
) -> None:
    """Audit installer scripts for unpinned pip and npm global installs."""
    auditor = PinAuditor(globs=globs or config.audit_globs)
    try:
        report = _merge([auditor.scan(root) for root in (roots or config.audit_roots)])
    except PinAuditError as exc:
        err_console.print(f"[bold red]Pin audit error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_TOOL_ERROR)

    for finding in report.findings:
        err_console.print(escape(finding.render()), soft_wrap=True, highlight=False)

    if output_json is not None:
        try:
            output_json.parent.mkdir(parents=True, exist_ok=True)
            output_json.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            err_console.print(f"[bold red]Cannot write report {output_json}:[/bold red] {exc}")
            raise typer.Exit(code=EXIT_TOOL_ERROR)

    if report.findings:
        err_console.print(
            f"[bold red]Pin audit failed[/bold red] ({len(report.findings)} unpinned installs "
            f"in {report.files_scanned} files). Refactor to use manifest-driven installs."
        )
        raise typer.Exit(code=EXIT_VIOLATIONS)
    console.print(f"[green]Pin audit passed[/green] ({report.files_scanned} files).")

"""Compare the manifest's pinned archives against a recorded baseline.

The baseline is a JSON list of ``{"name", "sha256", "content_length"}``
objects, typically written when archives were last verified. Reports:

- ``missing_in_manifest``: in the baseline, gone from the manifest
- ``new_in_manifest``: in the manifest, absent from the baseline
- ``hash_change``: sha256 differs
- ``size_change``: sha256 equal, content_length differs
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from devstate.core.manifest import ManifestResolver
from devstate.errors import ArchiveBaselineError
from devstate.models.manifest import ArchiveDrift, ArchiveDriftReport


class BaselineEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sha256: str
    content_length: int | None = None


def load_baseline(path: Path) -> list[BaselineEntry]:
    path = Path(path)
    if not path.is_file():
        raise ArchiveBaselineError(f"Missing baseline {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ArchiveBaselineError(f"{path}:{exc.lineno}: invalid JSON: {exc.msg}") from exc
    if not isinstance(raw, list):
        raise ArchiveBaselineError(f"{path}: baseline must be a JSON list")
    try:
        return [BaselineEntry.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise ArchiveBaselineError(f"{path}: invalid baseline entry: {exc}") from exc


def _length(value: int | None) -> str:
    return "" if value is None else str(value)


def check_drift(resolver: ManifestResolver, baseline_path: Path) -> ArchiveDriftReport:
    """Diff manifest archives against the baseline at ``baseline_path``."""
    baseline = {entry.name: entry for entry in load_baseline(baseline_path)}
    current = {archive.name: archive.record for archive in resolver.archives()}

    drifts: list[ArchiveDrift] = []
    for name, record in current.items():
        base = baseline.get(name)
        if base is None:
            drifts.append(ArchiveDrift(kind="new_in_manifest", name=name, current=record.sha256))
        elif base.sha256 != record.sha256:
            drifts.append(ArchiveDrift(
                kind="hash_change", name=name, baseline=base.sha256, current=record.sha256,
            ))
        elif base.content_length != record.content_length:
            drifts.append(ArchiveDrift(
                kind="size_change",
                name=name,
                baseline=_length(base.content_length),
                current=_length(record.content_length),
            ))
    for name, base in baseline.items():
        if name not in current:
            drifts.append(ArchiveDrift(kind="missing_in_manifest", name=name, baseline=base.sha256))

    return ArchiveDriftReport(baseline_path=str(baseline_path), drifts=drifts)

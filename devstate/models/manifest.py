"""Versions manifest models — the parsed, read-only view of versions.yaml.

A manifest is authored by operators and is never written by devstate. The
loader in ``devstate.core.manifest`` builds these models; everything here
is frozen so a parsed manifest can be shared freely within one invocation.
"""

from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class ArchiveRecord(BaseModel):
    """A pinned third-party archive (e.g. an Eclipse release tarball)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str
    url: str
    sha256: str
    content_length: int | None = Field(default=None, ge=0)


# A pin is either an exact version string or an archive record.
Pin = Union[str, ArchiveRecord]


def pin_version(pin: Pin) -> str:
    """Return the version string of a pin, whichever form it takes."""
    if isinstance(pin, ArchiveRecord):
        return pin.version
    return pin


class Group(BaseModel):
    """A named set of package pins, plus optional ``extras`` sub-groups."""

    model_config = ConfigDict(frozen=True)

    packages: dict[str, Pin] = {}
    extras: dict[str, dict[str, Pin]] = {}


class Profile(BaseModel):
    """A named bundle of python group paths and node global package names."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    python: list[str] = []
    node_globals: list[str] = []


class VersionManifest(BaseModel):
    """Root document: ecosystems, profiles and free-standing archive records."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = ""
    ecosystems: dict[str, dict[str, Group]] = {}
    profiles: dict[str, Profile] = {}
    meta: dict[str, ArchiveRecord] = {}
    source: str = "<string>"  # path or label of the document this came from


class ResolvedProfile(BaseModel):
    """A profile with every referenced group expanded into concrete pins."""

    model_config = ConfigDict(frozen=True)

    name: str
    packages: dict[str, Pin]  # merged, later groups win
    python: dict[str, Pin] = {}
    node_globals: dict[str, Pin] = {}


class NamedArchive(BaseModel):
    """An archive record together with the manifest name it was found under."""

    model_config = ConfigDict(frozen=True)

    name: str
    record: ArchiveRecord


class ArchiveDrift(BaseModel):
    """One difference between the archive baseline and the current manifest."""

    model_config = ConfigDict(frozen=True)

    kind: str  # "missing_in_manifest", "new_in_manifest", "hash_change", "size_change"
    name: str
    baseline: str = ""
    current: str = ""


class ArchiveDriftReport(BaseModel):
    """Result of comparing manifest archives against a recorded baseline."""

    model_config = ConfigDict(frozen=True)

    baseline_path: str
    drifts: list[ArchiveDrift] = []

    @property
    def has_drift(self) -> bool:
        return bool(self.drifts)

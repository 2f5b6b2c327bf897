"""Versions manifest loader and resolver.

The manifest is YAML, read with a ``BaseLoader``-derived loader so every
scalar stays a string (``1.10`` must not become the float ``1.1``) and so
duplicate keys are rejected instead of silently overwritten.

Parsing threads explicit accumulators through small functions; there is
no module-level "current group" state. Resolution is pure: a
``ManifestResolver`` wraps one parsed ``VersionManifest`` and answers
group and profile queries against it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from devstate.core.hasher import file_sha256
from devstate.errors import (
    ManifestConflictError,
    ManifestLookupError,
    ManifestMissing,
    ManifestParseError,
)
from devstate.models.manifest import (
    ArchiveRecord,
    Group,
    NamedArchive,
    Pin,
    Profile,
    ResolvedProfile,
    VersionManifest,
    pin_version,
)

logger = logging.getLogger(__name__)

PYTHON_ECOSYSTEM = "python"
NODE_ECOSYSTEM = "node"
NODE_GLOBALS_GROUP = "globals"
EXTRAS_KEY = "extras"

_TOP_LEVEL_KEYS = frozenset({"schema_version", "ecosystems", "profiles", "meta"})


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


class _ManifestLoader(yaml.BaseLoader):
    """String-only YAML loader that refuses duplicate mapping keys."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen: set[str] = set()
            for key_node, _value_node in node.value:
                key = self.construct_object(key_node, deep=deep)
                if not isinstance(key, str):
                    continue
                if key in seen:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping",
                        node.start_mark,
                        f"found duplicate key {key!r}",
                        key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _load_yaml(text: str, source: str) -> Any:
    try:
        return yaml.load(text, Loader=_ManifestLoader)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        where = f"{source}:{mark.line + 1}:{mark.column + 1}" if mark else source
        problem = exc.problem or exc.context or "invalid YAML"
        raise ManifestParseError(f"{where}: {problem}") from exc
    except yaml.YAMLError as exc:
        raise ManifestParseError(f"{source}: {exc}") from exc


# ---------------------------------------------------------------------------
# Document -> models
# ---------------------------------------------------------------------------


def _require_mapping(value: Any, source: str, path: str) -> dict[str, Any]:
    if value is None or value == "":
        return {}
    if not isinstance(value, dict):
        raise ManifestParseError(
            f"{source}: {path} must be a mapping, got {type(value).__name__}"
        )
    return value


def _require_str_list(value: Any, source: str, path: str) -> list[str]:
    if value is None or value == "":
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestParseError(f"{source}: {path} must be a list of names")
    return list(value)


def _parse_archive(value: dict[str, Any], source: str, path: str) -> ArchiveRecord:
    try:
        return ArchiveRecord.model_validate(value)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ManifestParseError(
            f"{source}: invalid archive record at {path} ({fields})"
        ) from exc


def _parse_pin(value: Any, source: str, path: str) -> Pin:
    if isinstance(value, str):
        if not value.strip():
            raise ManifestParseError(f"{source}: empty pin at {path}")
        return value.strip()
    if isinstance(value, dict):
        if "version" not in value:
            raise ManifestParseError(
                f"{source}: {path} nests deeper than "
                f"<group>.{EXTRAS_KEY}.<subgroup>.<package>"
            )
        return _parse_archive(value, source, path)
    raise ManifestParseError(
        f"{source}: {path} must be a version string or archive record"
    )


def _parse_packages(raw: dict[str, Any], source: str, path: str) -> dict[str, Pin]:
    packages: dict[str, Pin] = {}
    for name, value in raw.items():
        packages[name] = _parse_pin(value, source, f"{path}.{name}")
    return packages


def _parse_group(raw: Any, source: str, path: str) -> Group:
    body = _require_mapping(raw, source, path)
    packages: dict[str, Pin] = {}
    extras: dict[str, dict[str, Pin]] = {}
    for key, value in body.items():
        if key == EXTRAS_KEY:
            for sub_name, sub_body in _require_mapping(value, source, f"{path}.{key}").items():
                sub_path = f"{path}.{key}.{sub_name}"
                extras[sub_name] = _parse_packages(
                    _require_mapping(sub_body, source, sub_path), source, sub_path
                )
        else:
            packages[key] = _parse_pin(value, source, f"{path}.{key}")
    return Group(packages=packages, extras=extras)


def _parse_ecosystems(raw: Any, source: str) -> dict[str, dict[str, Group]]:
    ecosystems: dict[str, dict[str, Group]] = {}
    for eco_name, groups in _require_mapping(raw, source, "ecosystems").items():
        eco_path = f"ecosystems.{eco_name}"
        ecosystems[eco_name] = {
            group_name: _parse_group(body, source, f"{eco_path}.{group_name}")
            for group_name, body in _require_mapping(groups, source, eco_path).items()
        }
    return ecosystems


def _parse_profiles(raw: Any, source: str) -> dict[str, Profile]:
    profiles: dict[str, Profile] = {}
    for name, body in _require_mapping(raw, source, "profiles").items():
        path = f"profiles.{name}"
        fields = _require_mapping(body, source, path)
        unknown = set(fields) - {"python", "node_globals"}
        if unknown:
            raise ManifestParseError(
                f"{source}: {path} has unknown keys: {', '.join(sorted(unknown))}"
            )
        profiles[name] = Profile(
            python=_require_str_list(fields.get("python"), source, f"{path}.python"),
            node_globals=_require_str_list(
                fields.get("node_globals"), source, f"{path}.node_globals"
            ),
        )
    return profiles


def _parse_meta(raw: Any, source: str) -> dict[str, ArchiveRecord]:
    """Accept ``meta`` as a name->record mapping or a list of ``- name:`` records."""
    meta: dict[str, ArchiveRecord] = {}
    if isinstance(raw, list):
        for index, item in enumerate(raw):
            path = f"meta[{index}]"
            record = dict(_require_mapping(item, source, path))
            name = record.pop("name", "")
            if not name:
                raise ManifestParseError(f"{source}: {path} has no name")
            if name in meta:
                raise ManifestParseError(f"{source}: duplicate meta record {name!r}")
            meta[name] = _parse_archive(record, source, f"meta.{name}")
        return meta
    for name, body in _require_mapping(raw, source, "meta").items():
        path = f"meta.{name}"
        meta[name] = _parse_archive(_require_mapping(body, source, path), source, path)
    return meta


def _check_profile_references(manifest: VersionManifest) -> None:
    python_groups = manifest.ecosystems.get(PYTHON_ECOSYSTEM, {})
    node_globals = manifest.ecosystems.get(NODE_ECOSYSTEM, {}).get(NODE_GLOBALS_GROUP)
    for name, profile in manifest.profiles.items():
        for group_path in profile.python:
            try:
                _lookup(python_groups, PYTHON_ECOSYSTEM, group_path, manifest.source)
            except ManifestLookupError as exc:
                raise ManifestParseError(
                    f"{manifest.source}: profile {name!r} references undefined "
                    f"python group {group_path!r}"
                ) from exc
        for package in profile.node_globals:
            if node_globals is None or package not in node_globals.packages:
                raise ManifestParseError(
                    f"{manifest.source}: profile {name!r} references undefined "
                    f"node global {package!r}"
                )


def parse_manifest(document: str, source: str = "<string>") -> VersionManifest:
    """Parse manifest text into a ``VersionManifest``.

    Raises ``ManifestParseError`` on YAML errors, duplicate keys, unknown
    top-level sections, over-deep nesting and dangling profile references.
    """
    raw = _load_yaml(document, source)
    root = _require_mapping(raw, source, "document root")
    unknown = set(root) - _TOP_LEVEL_KEYS
    if unknown:
        raise ManifestParseError(
            f"{source}: unknown top-level keys: {', '.join(sorted(unknown))}"
        )
    schema_version = root.get("schema_version") or ""
    if not isinstance(schema_version, str):
        raise ManifestParseError(f"{source}: schema_version must be a string")

    manifest = VersionManifest(
        schema_version=schema_version,
        ecosystems=_parse_ecosystems(root.get("ecosystems"), source),
        profiles=_parse_profiles(root.get("profiles"), source),
        meta=_parse_meta(root.get("meta"), source),
        source=source,
    )
    _check_profile_references(manifest)
    return manifest


def load_manifest(path: Path) -> VersionManifest:
    """Read and parse the manifest at ``path``.

    Raises ``ManifestMissing`` if the file does not exist and
    ``ManifestParseError`` if it cannot be read as UTF-8 text.
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestMissing(f"Missing manifest {path}")
    logger.debug("Loading manifest %s", path)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ManifestParseError(f"{path}: manifest is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise ManifestParseError(f"{path}: cannot read manifest: {exc}") from exc
    return parse_manifest(text, source=str(path))


def manifest_fingerprint(path: Path) -> str:
    """SHA-256 of the manifest bytes, used to detect stale offline caches."""
    path = Path(path)
    if not path.is_file():
        raise ManifestMissing(f"Missing manifest {path}")
    return file_sha256(path)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def split_group_path(group_path: str) -> tuple[str, str | None]:
    """Split ``group`` or ``group.extras.sub`` into ``(group, sub)``."""
    parts = group_path.split(".")
    if len(parts) == 1 and parts[0]:
        return parts[0], None
    if len(parts) == 3 and parts[1] == EXTRAS_KEY and parts[0] and parts[2]:
        return parts[0], parts[2]
    raise ManifestLookupError(
        f"Invalid group path {group_path!r}: expected '<group>' or "
        f"'<group>.{EXTRAS_KEY}.<subgroup>'"
    )


def _lookup(
    groups: dict[str, Group], ecosystem: str, group_path: str, source: str
) -> dict[str, Pin]:
    group_name, sub_name = split_group_path(group_path)
    group = groups.get(group_name)
    if group is None:
        raise ManifestLookupError(
            f"{source}: no group {group_name!r} in ecosystem {ecosystem!r}"
        )
    if sub_name is None:
        return dict(group.packages)
    if sub_name not in group.extras:
        raise ManifestLookupError(
            f"{source}: no extras sub-group {group_path!r} in ecosystem {ecosystem!r}"
        )
    return dict(group.extras[sub_name])


class ManifestResolver:
    """Answers group and profile queries against one parsed manifest.

    Parameters
    ----------
    manifest:
        The parsed manifest. Never mutated.
    """

    def __init__(self, manifest: VersionManifest) -> None:
        self._manifest = manifest

    @classmethod
    def from_path(cls, path: Path) -> ManifestResolver:
        return cls(load_manifest(path))

    @property
    def manifest(self) -> VersionManifest:
        return self._manifest

    def ecosystem(self, name: str) -> dict[str, Group]:
        groups = self._manifest.ecosystems.get(name)
        if groups is None:
            raise ManifestLookupError(
                f"{self._manifest.source}: no ecosystem {name!r}"
            )
        return groups

    def resolve_group(self, ecosystem: str, group_path: str) -> dict[str, Pin]:
        """Return ``name -> pin`` for a one- or two-level group path."""
        return _lookup(
            self.ecosystem(ecosystem), ecosystem, group_path, self._manifest.source
        )

    def has_group(self, ecosystem: str, group_path: str) -> bool:
        try:
            self.resolve_group(ecosystem, group_path)
        except ManifestLookupError:
            return False
        return True

    def resolve_profile(self, name: str, *, strict: bool = False) -> ResolvedProfile:
        """Expand a profile into concrete pins.

        Packages merge by name. When two referenced groups pin the same
        package differently, the group listed later wins; with
        ``strict=True`` a ``ManifestConflictError`` is raised instead.
        """
        profile = self._manifest.profiles.get(name)
        if profile is None:
            raise ManifestLookupError(
                f"{self._manifest.source}: no profile {name!r}"
            )

        merged: dict[str, Pin] = {}
        origins: dict[str, str] = {}
        python: dict[str, Pin] = {}
        for group_path in profile.python:
            pins = self.resolve_group(PYTHON_ECOSYSTEM, group_path)
            self._merge(merged, origins, pins, f"python:{group_path}", name, strict)
            python.update(pins)

        node: dict[str, Pin] = {}
        if profile.node_globals:
            globals_group = self.resolve_group(NODE_ECOSYSTEM, NODE_GLOBALS_GROUP)
            node = {pkg: globals_group[pkg] for pkg in profile.node_globals}
            self._merge(merged, origins, node, "node:globals", name, strict)

        return ResolvedProfile(
            name=name, packages=merged, python=python, node_globals=node
        )

    def _merge(
        self,
        merged: dict[str, Pin],
        origins: dict[str, str],
        pins: dict[str, Pin],
        origin: str,
        profile: str,
        strict: bool,
    ) -> None:
        for package, pin in pins.items():
            previous = merged.get(package)
            if previous is not None and previous != pin:
                if strict:
                    raise ManifestConflictError(
                        f"{self._manifest.source}: profile {profile!r} pins "
                        f"{package!r} as {pin_version(previous)!r} in "
                        f"{origins[package]} and {pin_version(pin)!r} in {origin}"
                    )
                logger.debug(
                    "Profile %s: %s overrides %s=%s from %s",
                    profile, origin, package, pin_version(previous), origins[package],
                )
            merged[package] = pin
            origins[package] = origin

    # ------------------------------------------------------------------
    # Convenience queries used by installer scripts
    # ------------------------------------------------------------------

    def pip_requirements(self, group_path: str) -> list[str]:
        """``name==version`` specifiers for a python group, in manifest order."""
        pins = self.resolve_group(PYTHON_ECOSYSTEM, group_path)
        return [f"{name}=={pin_version(pin)}" for name, pin in pins.items()]

    def node_global_version(self, package: str) -> str | None:
        globals_group = self._manifest.ecosystems.get(NODE_ECOSYSTEM, {}).get(
            NODE_GLOBALS_GROUP
        )
        if globals_group is None or package not in globals_group.packages:
            return None
        return pin_version(globals_group.packages[package])

    def python_runtime(self) -> str | None:
        """The preferred python runtime (``python.runtime.preferred``), if pinned."""
        runtime = self._manifest.ecosystems.get(PYTHON_ECOSYSTEM, {}).get("runtime")
        if runtime is None or "preferred" not in runtime.packages:
            return None
        return pin_version(runtime.packages["preferred"])

    def archives(self) -> list[NamedArchive]:
        """Every archive record: ``meta`` entries first, then archive-style pins."""
        found = [
            NamedArchive(name=name, record=record)
            for name, record in self._manifest.meta.items()
        ]
        for groups in self._manifest.ecosystems.values():
            for group in groups.values():
                for table in (group.packages, *group.extras.values()):
                    found.extend(
                        NamedArchive(name=name, record=pin)
                        for name, pin in table.items()
                        if isinstance(pin, ArchiveRecord)
                    )
        return found

"""Tests for the manifest loader and resolver."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from devstate.core.manifest import (
    ManifestResolver,
    load_manifest,
    manifest_fingerprint,
    parse_manifest,
    split_group_path,
)
from devstate.errors import (
    ManifestConflictError,
    ManifestLookupError,
    ManifestMissing,
    ManifestParseError,
)
from devstate.models.manifest import ArchiveRecord, VersionManifest


class TestParse:
    def test_parses_ecosystems_and_groups(self, manifest: VersionManifest):
        assert set(manifest.ecosystems) == {"python", "node"}
        assert manifest.ecosystems["python"]["core"].packages["requests"] == "2.31.0"
        assert manifest.ecosystems["python"]["ml"].extras["nlp"] == {"spacy": "3.7.2"}
        assert manifest.schema_version == "1"

    def test_profiles_parsed(self, manifest: VersionManifest):
        assert manifest.profiles["full"].python == ["core", "viz", "ml.extras.nlp"]
        assert manifest.profiles["minimal"].node_globals == ["eslint"]

    def test_meta_archive_record(self, manifest: VersionManifest):
        record = manifest.meta["eclipse-release-2025-09"]
        assert isinstance(record, ArchiveRecord)
        assert record.content_length == 524288000

    def test_scalars_stay_strings(self):
        m = parse_manifest("ecosystems:\n  python:\n    core:\n      foo: 1.10\n")
        assert m.ecosystems["python"]["core"].packages["foo"] == "1.10"

    def test_empty_document(self):
        m = parse_manifest("")
        assert m.ecosystems == {}
        assert m.profiles == {}

    def test_meta_list_form(self):
        m = parse_manifest(
            "meta:\n"
            "  - name: eclipse-release-2025-12\n"
            "    version: '2025-12'\n"
            "    url: https://example.invalid/e.tar.gz\n"
            "    sha256: TBD\n"
        )
        assert m.meta["eclipse-release-2025-12"].version == "2025-12"
        assert m.meta["eclipse-release-2025-12"].content_length is None

    def test_archive_style_package_pin(self):
        m = parse_manifest(
            "ecosystems:\n"
            "  java:\n"
            "    ide:\n"
            "      eclipse:\n"
            "        version: '2025-09'\n"
            "        url: https://example.invalid/e.tar.gz\n"
            "        sha256: abc\n"
        )
        pin = m.ecosystems["java"]["ide"].packages["eclipse"]
        assert isinstance(pin, ArchiveRecord)


class TestParseErrors:
    def test_package_line_without_colon(self):
        text = 'ecosystems:\n  python:\n    core:\n      requests: "2.31.0"\n      numpy\n'
        with pytest.raises(ManifestParseError, match=r"versions\.yaml:\d+:\d+"):
            parse_manifest(text, source="versions.yaml")

    def test_ambiguous_indentation(self):
        text = (
            "ecosystems:\n"
            "  python:\n"
            "    core:\n"
            '      requests: "2.31.0"\n'
            '     numpy: "1.26.4"\n'
        )
        with pytest.raises(ManifestParseError):
            parse_manifest(text)

    def test_duplicate_group_rejected(self):
        text = (
            "ecosystems:\n"
            "  python:\n"
            "    core:\n"
            '      requests: "2.31.0"\n'
            "    core:\n"
            '      flask: "3.0.0"\n'
        )
        with pytest.raises(ManifestParseError, match="duplicate key 'core'"):
            parse_manifest(text)

    def test_duplicate_package_rejected(self):
        text = 'ecosystems:\n  python:\n    core:\n      a: "1"\n      a: "2"\n'
        with pytest.raises(ManifestParseError, match="duplicate key 'a'"):
            parse_manifest(text)

    def test_profile_with_undefined_group(self):
        text = (
            "ecosystems:\n  python:\n    core: {a: '1'}\n"
            "profiles:\n  p: {python: [core, missing]}\n"
        )
        with pytest.raises(ManifestParseError, match="undefined python group 'missing'"):
            parse_manifest(text)

    def test_profile_with_undefined_node_global(self):
        text = (
            "ecosystems:\n  node:\n    globals: {eslint: '9.0.0'}\n"
            "profiles:\n  p: {node_globals: [eslint, tsc]}\n"
        )
        with pytest.raises(ManifestParseError, match="undefined node global 'tsc'"):
            parse_manifest(text)

    def test_nesting_deeper_than_extras(self):
        text = "ecosystems:\n  python:\n    core:\n      deep:\n        deeper: '1'\n"
        with pytest.raises(ManifestParseError, match="nests deeper"):
            parse_manifest(text)

    def test_unknown_top_level_key(self):
        with pytest.raises(ManifestParseError, match="unknown top-level keys: bogus"):
            parse_manifest("bogus: 1\n")

    def test_empty_pin(self):
        with pytest.raises(ManifestParseError, match="empty pin"):
            parse_manifest("ecosystems:\n  python:\n    core:\n      a: ''\n")

    def test_invalid_archive_record(self):
        text = "meta:\n  e:\n    version: '1'\n    url: u\n"
        with pytest.raises(ManifestParseError, match="invalid archive record at meta.e"):
            parse_manifest(text)

    def test_missing_file(self, tmp_dir: Path):
        with pytest.raises(ManifestMissing, match="versions.yaml"):
            load_manifest(tmp_dir / "versions.yaml")

    def test_undecodable_file_names_path(self, tmp_dir: Path):
        path = tmp_dir / "versions.yaml"
        path.write_bytes(b"ecosystems:\n  python:\n    core: {a: '\xff'}\n")
        with pytest.raises(ManifestParseError, match=r"versions\.yaml: manifest is not valid UTF-8"):
            load_manifest(path)


class TestResolveGroup:
    def test_top_level_group(self, resolver: ManifestResolver):
        assert resolver.resolve_group("python", "core") == {
            "requests": "2.31.0",
            "rich": "13.7.0",
        }

    def test_extras_subgroup(self, resolver: ManifestResolver):
        assert resolver.resolve_group("python", "ml.extras.nlp") == {"spacy": "3.7.2"}

    def test_parent_group_excludes_extras(self, resolver: ManifestResolver):
        assert resolver.resolve_group("python", "ml") == {"numpy": "1.26.4"}

    def test_missing_ecosystem(self, resolver: ManifestResolver):
        with pytest.raises(ManifestLookupError, match="no ecosystem 'rust'"):
            resolver.resolve_group("rust", "core")

    def test_missing_group(self, resolver: ManifestResolver):
        with pytest.raises(ManifestLookupError, match="no group 'db'"):
            resolver.resolve_group("python", "db")

    def test_missing_extras_subgroup(self, resolver: ManifestResolver):
        with pytest.raises(ManifestLookupError):
            resolver.resolve_group("python", "ml.extras.vision")

    @pytest.mark.parametrize("path", ["", "ml.nlp", "ml.extras", "a.b.c.d"])
    def test_invalid_path(self, path: str):
        with pytest.raises(ManifestLookupError):
            split_group_path(path)

    def test_result_is_a_copy(self, resolver: ManifestResolver):
        pins = resolver.resolve_group("python", "core")
        pins["requests"] = "0.0.0"
        assert resolver.resolve_group("python", "core")["requests"] == "2.31.0"


class TestResolveProfile:
    def test_later_group_wins(self):
        m = parse_manifest(
            "ecosystems:\n"
            "  python:\n"
            "    A: {foo: '1.0'}\n"
            "    B: {foo: '2.0'}\n"
            "profiles:\n"
            "  p: {python: [A, B]}\n"
        )
        assert ManifestResolver(m).resolve_profile("p").packages == {"foo": "2.0"}

    def test_order_decides_winner(self):
        m = parse_manifest(
            "ecosystems:\n"
            "  python:\n"
            "    A: {foo: '1.0'}\n"
            "    B: {foo: '2.0'}\n"
            "profiles:\n"
            "  p: {python: [B, A]}\n"
        )
        assert ManifestResolver(m).resolve_profile("p").packages == {"foo": "1.0"}

    def test_full_profile(self, resolver: ManifestResolver):
        resolved = resolver.resolve_profile("full")
        assert resolved.packages["rich"] == "13.9.4"
        assert resolved.packages["spacy"] == "3.7.2"
        assert resolved.node_globals == {"eslint": "9.0.0", "prettier": "3.2.0"}
        assert set(resolved.packages) == {
            "requests", "rich", "matplotlib", "spacy", "eslint", "prettier",
        }

    def test_strict_mode_conflict(self, resolver: ManifestResolver):
        with pytest.raises(ManifestConflictError, match="'rich'"):
            resolver.resolve_profile("full", strict=True)

    def test_strict_mode_without_conflict(self, resolver: ManifestResolver):
        resolved = resolver.resolve_profile("minimal", strict=True)
        assert resolved.packages == {
            "requests": "2.31.0", "rich": "13.7.0", "eslint": "9.0.0",
        }

    def test_strict_allows_identical_pins(self):
        m = parse_manifest(
            "ecosystems:\n  python:\n    A: {foo: '1.0'}\n    B: {foo: '1.0'}\n"
            "profiles:\n  p: {python: [A, B]}\n"
        )
        assert ManifestResolver(m).resolve_profile("p", strict=True).packages == {"foo": "1.0"}

    def test_missing_profile(self, resolver: ManifestResolver):
        with pytest.raises(ManifestLookupError, match="no profile 'nope'"):
            resolver.resolve_profile("nope")


class TestQueries:
    def test_pip_requirements(self, resolver: ManifestResolver):
        assert resolver.pip_requirements("core") == ["requests==2.31.0", "rich==13.7.0"]

    def test_node_global_version(self, resolver: ManifestResolver):
        assert resolver.node_global_version("eslint") == "9.0.0"
        assert resolver.node_global_version("tsc") is None

    def test_python_runtime(self, resolver: ManifestResolver):
        assert resolver.python_runtime() == "3.12"

    def test_python_runtime_absent(self):
        assert ManifestResolver(parse_manifest("")).python_runtime() is None

    def test_archives(self, resolver: ManifestResolver):
        names = [a.name for a in resolver.archives()]
        assert names == ["eclipse-release-2025-09"]

    def test_has_group(self, resolver: ManifestResolver):
        assert resolver.has_group("python", "ml.extras.nlp")
        assert not resolver.has_group("python", "db")

    def test_fingerprint(self, manifest_path: Path):
        expected = hashlib.sha256(manifest_path.read_bytes()).hexdigest()
        assert manifest_fingerprint(manifest_path) == expected

    def test_from_path(self, manifest_path: Path):
        resolver = ManifestResolver.from_path(manifest_path)
        assert resolver.manifest.source == str(manifest_path)

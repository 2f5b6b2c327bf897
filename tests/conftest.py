"""Shared test fixtures for devstate."""

from __future__ import annotations

from pathlib import Path

import pytest

from devstate.core.ledger import Ledger
from devstate.core.locking import NullLock
from devstate.core.manifest import ManifestResolver, parse_manifest
from devstate.models.manifest import VersionManifest

SAMPLE_MANIFEST = """\
schema_version: "1"
ecosystems:
  python:
    runtime:
      preferred: "3.12"
    core:
      requests: "2.31.0"
      rich: "13.7.0"
    viz:
      matplotlib: "3.8.2"
      rich: "13.9.4"
    ml:
      numpy: "1.26.4"
      extras:
        nlp:
          spacy: "3.7.2"
  node:
    globals:
      eslint: "9.0.0"
      prettier: "3.2.0"
profiles:
  minimal:
    python: [core]
    node_globals: [eslint]
  full:
    python: [core, viz, ml.extras.nlp]
    node_globals: [eslint, prettier]
meta:
  eclipse-release-2025-09:
    version: "2025-09"
    url: "https://download.eclipse.org/technology/epp/downloads/release/2025-09/R/eclipse-java-2025-09-R-linux-gtk-x86_64.tar.gz"
    sha256: "4f1c0a9d5e2b7c3a8f6e1d0b9c8a7f6e5d4c3b2a1f0e9d8c7b6a5f4e3d2c1b0a"
    content_length: "524288000"
"""


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def state_dir(tmp_dir: Path) -> Path:
    """Ledger state directory (not created until the first record)."""
    return tmp_dir / "state"


@pytest.fixture
def ledger(state_dir: Path) -> Ledger:
    """Provide a fresh, unlocked Ledger in a temp state directory."""
    return Ledger(state_dir, lock=NullLock())


@pytest.fixture
def manifest_text() -> str:
    return SAMPLE_MANIFEST


@pytest.fixture
def manifest_path(tmp_dir: Path, manifest_text: str) -> Path:
    """Write the sample manifest to ``manifests/versions.yaml``."""
    path = tmp_dir / "manifests" / "versions.yaml"
    path.parent.mkdir(parents=True)
    path.write_text(manifest_text, encoding="utf-8")
    return path


@pytest.fixture
def manifest(manifest_text: str) -> VersionManifest:
    return parse_manifest(manifest_text, source="versions.yaml")


@pytest.fixture
def resolver(manifest: VersionManifest) -> ManifestResolver:
    return ManifestResolver(manifest)


@pytest.fixture
def scripts_dir(tmp_dir: Path) -> Path:
    """A course-scripts tree with one clean and one violating script."""
    root = tmp_dir / "scripts" / "courses"
    root.mkdir(parents=True)
    (root / "setup-clean.sh").write_text(
        "#!/usr/bin/env bash\n"
        'source "$UTIL_DIR/version-resolver.sh"\n'
        "pip install requests==2.31.0\n"
        "npm install -g typescript@5.3.3\n",
        encoding="utf-8",
    )
    (root / "setup-webdev.sh").write_text(
        "#!/usr/bin/env bash\n"
        "# pip install anything goes in comments\n"
        "pip install flask\n"
        "npm install -g nodemon\n",
        encoding="utf-8",
    )
    return root

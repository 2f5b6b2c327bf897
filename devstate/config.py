"""Runtime configuration — env-driven via pydantic-settings.

Reads ``DEVSTATE_*`` environment variables and an optional ``.env`` file.

Examples
--------
Override via environment::

    export DEVSTATE_MANIFEST_PATH=/opt/dev-env/manifests/versions.yaml
    export DEVSTATE_STATE_DIR=/var/lib/dev-env/state
    export DEVSTATE_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class DevstateConfig(BaseSettings):
    """devstate settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DEVSTATE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Manifest
    manifest_path: Path = Path("manifests/versions.yaml")

    # Ledger
    state_dir: Path = Path("state")
    ledger_lock: bool = True

    # Pin audit
    audit_roots: list[Path] = [Path("scripts/courses")]
    audit_globs: list[str] = ["*.sh"]


# Module-level singleton; import as `from devstate.config import config`
config = DevstateConfig()

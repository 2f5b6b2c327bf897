"""Exception hierarchy for devstate.

Faults are raised; verify-time mismatches, rollback item failures and
pin-audit findings are report models (see ``devstate.models``).
"""

from __future__ import annotations


class DevstateError(RuntimeError):
    """Root of every fault raised by devstate."""


class ManifestError(DevstateError):
    """Base class for manifest faults."""


class ManifestParseError(ManifestError):
    """Raised when the manifest document is structurally invalid."""


class ManifestLookupError(ManifestError):
    """Raised when an ecosystem, group or profile does not exist."""


class ManifestConflictError(ManifestError):
    """Raised in strict mode when two groups pin one package differently."""


class ManifestMissing(ManifestError):
    """Raised when the manifest file does not exist."""


# Rollback refers to the same condition by its own name.
RollbackManifestMissing = ManifestMissing


class LedgerIOError(DevstateError):
    """Raised when the ledger line-store or head pointer cannot be read or written."""


class PinAuditError(DevstateError):
    """Raised when the pin audit itself cannot run (not a finding)."""


class ArchiveBaselineError(DevstateError):
    """Raised when the archive baseline file is missing or malformed."""

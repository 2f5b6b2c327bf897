"""devstate data models — all Pydantic v2, all frozen (immutable)."""

from devstate.models.audit import PinAuditReport, PinFinding
from devstate.models.ledger import (
    LEDGER_FIELD_ORDER,
    LedgerChainMismatch,
    LedgerEntry,
    LedgerVerification,
)
from devstate.models.manifest import (
    ArchiveDrift,
    ArchiveDriftReport,
    ArchiveRecord,
    Group,
    NamedArchive,
    Pin,
    Profile,
    ResolvedProfile,
    VersionManifest,
    pin_version,
)
from devstate.models.rollback import (
    RollbackAction,
    RollbackItemFailure,
    RollbackPlan,
    RollbackResult,
)

__all__ = [
    # manifest
    "ArchiveRecord",
    "Pin",
    "pin_version",
    "Group",
    "Profile",
    "VersionManifest",
    "ResolvedProfile",
    "NamedArchive",
    "ArchiveDrift",
    "ArchiveDriftReport",
    # ledger
    "LEDGER_FIELD_ORDER",
    "LedgerEntry",
    "LedgerVerification",
    "LedgerChainMismatch",
    # rollback
    "RollbackAction",
    "RollbackPlan",
    "RollbackItemFailure",
    "RollbackResult",
    # audit
    "PinFinding",
    "PinAuditReport",
]

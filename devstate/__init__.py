"""devstate: declarative package-lifecycle control plane.

- Versions manifest model and resolver (groups, extras, profiles, archives)
- Append-only, hash-chained operation ledger with full-replay verification
- Rollback planner deriving uninstall actions from manifest groups
- Pin auditor linting installer scripts for manifest bypasses
"""

__version__ = "0.5.0"
__description__ = (
    "Manifest-driven package lifecycle with a tamper-evident ledger"
)

from devstate.core.ledger import Ledger
from devstate.core.manifest import ManifestResolver, load_manifest, parse_manifest
from devstate.core.pin_audit import PinAuditor
from devstate.core.rollback import RollbackPlanner

__all__ = [
    "Ledger",
    "ManifestResolver",
    "PinAuditor",
    "RollbackPlanner",
    "load_manifest",
    "parse_manifest",
    "__version__",
]

"""Ledger entry and verification models.

The ledger is an append-only line-store of JSON objects plus a head file
holding the SHA-256 of the chain so far. An entry is never mutated after
it is appended; ``LedgerEntry`` is the parsed, frozen view of one line.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# On-disk field order of a canonical ledger line.
LEDGER_FIELD_ORDER: tuple[str, ...] = (
    "ts",
    "action",
    "component",
    "status",
    "duration_ms",
    "extra",
    "prev_sha256",
)


class LedgerEntry(BaseModel):
    """A single recorded lifecycle operation."""

    model_config = ConfigDict(frozen=True)

    ts: str  # UTC, second precision, e.g. "2026-10-18T09:42:00Z"
    action: str = Field(min_length=1)
    component: str | None = None
    status: Literal["ok", "fail"] = "ok"
    duration_ms: int | None = Field(default=None, ge=0)
    extra: Any = None
    prev_sha256: str | None = None  # absent only on the first entry ever written


class LedgerVerification(BaseModel):
    """Outcome of replaying the chain against the stored head."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    computed_head: str = ""
    stored_head: str = ""
    entry_count: int = 0


class LedgerChainMismatch(LedgerVerification):
    """A verify-time report that the replayed chain and stored head disagree.

    Reported, never raised and never auto-corrected.
    """

    ok: bool = False

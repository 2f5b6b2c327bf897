"""Append-only, hash-chained operation ledger.

Two artifacts live under the state directory:

- ``ledger.jsonl``: one canonical JSON object per line, append-only.
- ``ledger.head``: the hex SHA-256 of the chain so far, nothing else.

Design:
- Append-only: ``record()`` is the only write; there is no update or delete.
- Chained: the first line is hashed alone, every later line is hashed as
  ``prev_head + "\\n" + line``. A single forward hash per entry.
- The first entry omits ``prev_sha256`` entirely. Later entries carry the
  head they were chained onto.
- ``verify()`` replays every line from scratch. A mismatch is reported,
  never repaired: repairing the chain would destroy its evidence.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from devstate.core.hasher import chain_hash
from devstate.core.locking import FcntlFileLock, LedgerLock
from devstate.errors import LedgerIOError
from devstate.models.ledger import (
    LedgerChainMismatch,
    LedgerEntry,
    LedgerVerification,
)

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "ledger.jsonl"
HEAD_FILENAME = "ledger.head"
LOCK_FILENAME = "ledger.lock"

_STATUSES = ("ok", "fail")


def utc_now_iso() -> str:
    """Current UTC time at second precision, e.g. ``2026-10-18T09:42:00Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def canonical_line(
    *,
    ts: str,
    action: str,
    component: str | None = None,
    status: str = "ok",
    duration_ms: int | None = None,
    extra: str | None = None,
    prev_sha256: str | None = None,
) -> str:
    """Build the canonical ledger line for one entry.

    Fields appear in the fixed order ``ts, action, component, status,
    duration_ms, extra, prev_sha256``; optional fields are omitted when
    not supplied. ``extra`` is a JSON fragment embedded verbatim.
    """
    if not action:
        raise ValueError("action is required")
    if status not in _STATUSES:
        raise ValueError(f"status must be one of {_STATUSES}, got {status!r}")
    if duration_ms is not None and (isinstance(duration_ms, bool) or duration_ms < 0):
        raise ValueError(f"duration_ms must be a non-negative integer, got {duration_ms!r}")

    parts = [f'"ts":{_dump(ts)}', f'"action":{_dump(action)}']
    if component:
        parts.append(f'"component":{_dump(component)}')
    parts.append(f'"status":{_dump(status)}')
    if duration_ms is not None:
        parts.append(f'"duration_ms":{int(duration_ms)}')
    if extra is not None and extra.strip():
        fragment = extra.strip()
        try:
            json.loads(fragment)
        except json.JSONDecodeError as exc:
            raise ValueError(f"extra is not valid JSON: {exc}") from exc
        if "\n" in fragment or "\r" in fragment:
            # keep one entry per line; re-encode compactly
            fragment = _dump(json.loads(fragment))
        parts.append(f'"extra":{fragment}')
    if prev_sha256:
        parts.append(f'"prev_sha256":{_dump(prev_sha256)}')
    return "{" + ",".join(parts) + "}"


class Ledger:
    """Append-only, hash-chained ledger stored as JSONL plus a head file.

    Parameters
    ----------
    state_dir:
        Directory holding ``ledger.jsonl`` and ``ledger.head``. Created on
        the first ``record()``; never created by reads.
    lock:
        Scoped exclusive lock held around ``record()``. Defaults to an
        ``flock`` on ``state_dir/ledger.lock``; pass ``NullLock()`` when
        writers are already serialized.
    """

    def __init__(self, state_dir: Path, lock: LedgerLock | None = None) -> None:
        self._state_dir = Path(state_dir)
        self._ledger_path = self._state_dir / LEDGER_FILENAME
        self._head_path = self._state_dir / HEAD_FILENAME
        self._lock = lock if lock is not None else FcntlFileLock(
            self._state_dir / LOCK_FILENAME
        )

    @property
    def ledger_path(self) -> Path:
        return self._ledger_path

    @property
    def head_path(self) -> Path:
        return self._head_path

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def record(
        self,
        action: str,
        component: str | None = None,
        status: str = "ok",
        duration_ms: int | None = None,
        extra: str | None = None,
    ) -> str:
        """Append one entry and return the new head.

        Raises ``ValueError`` for invalid arguments and ``LedgerIOError``
        if either artifact cannot be read or written. If the line is
        appended but the head write fails, nothing is rolled back; the
        next ``verify()`` reports the mismatch.
        """
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LedgerIOError(f"Cannot create state dir {self._state_dir}: {exc}") from exc

        with self._lock.hold():
            prev = self.head()
            line = canonical_line(
                ts=utc_now_iso(),
                action=action,
                component=component,
                status=status,
                duration_ms=duration_ms,
                extra=extra,
                prev_sha256=prev or None,
            )
            new_head = chain_hash(prev, line)

            try:
                with self._ledger_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as exc:
                raise LedgerIOError(f"Failed to append to {self._ledger_path}: {exc}") from exc
            try:
                self._head_path.write_text(new_head, encoding="utf-8")
            except OSError as exc:
                raise LedgerIOError(
                    f"Appended to {self._ledger_path} but failed to write head "
                    f"{self._head_path}: {exc}"
                ) from exc

        logger.info(
            "Ledger record action=%s component=%s status=%s head=%s",
            action, component or "-", status, new_head,
        )
        return new_head

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def head(self) -> str:
        """The stored head, or ``""`` when the ledger is empty.

        Undecodable bytes are replaced rather than rejected, so a corrupted
        head still compares unequal in ``verify()``.
        """
        if not self._head_path.exists():
            return ""
        try:
            raw = self._head_path.read_bytes()
        except OSError as exc:
            raise LedgerIOError(f"Cannot read head {self._head_path}: {exc}") from exc
        return raw.decode("utf-8", errors="replace").strip()

    def raw_lines(self) -> list[bytes]:
        """Lines of the line-store as stored bytes, split on ``\\n`` only."""
        if not self._ledger_path.exists():
            return []
        try:
            data = self._ledger_path.read_bytes()
        except OSError as exc:
            raise LedgerIOError(f"Cannot read ledger {self._ledger_path}: {exc}") from exc
        if not data:
            return []
        chunks = data.split(b"\n")
        if chunks[-1] == b"":
            chunks.pop()
        return chunks

    def lines(self) -> list[str]:
        """Lines of the line-store decoded as UTF-8, in file order."""
        decoded: list[str] = []
        for number, raw in enumerate(self.raw_lines(), start=1):
            try:
                decoded.append(raw.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise LedgerIOError(
                    f"{self._ledger_path}:{number}: ledger line is not UTF-8: {exc}"
                ) from exc
        return decoded

    def entries(self) -> list[LedgerEntry]:
        """Parse every line into a ``LedgerEntry``."""
        parsed: list[LedgerEntry] = []
        for number, line in enumerate(self.lines(), start=1):
            try:
                parsed.append(LedgerEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as exc:
                raise LedgerIOError(
                    f"{self._ledger_path}:{number}: malformed ledger line: {exc}"
                ) from exc
        return parsed

    def is_empty(self) -> bool:
        return not self.raw_lines() and not self.head()

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify(self) -> LedgerVerification:
        """Replay every line and compare the result with the stored head.

        Returns ``LedgerVerification(ok=True)`` or a ``LedgerChainMismatch``
        carrying both hashes. An empty ledger verifies trivially. Lines are
        hashed as stored bytes, so content that no longer decodes is still
        reported as a mismatch.
        """
        computed = ""
        count = 0
        for line in self.raw_lines():
            computed = chain_hash(computed, line)
            count += 1
        stored = self.head()

        if count == 0:
            if stored:
                logger.warning(
                    "Ledger %s has no entries but head %s is present",
                    self._ledger_path, stored,
                )
            return LedgerVerification(ok=True, stored_head=stored)
        if computed == stored:
            return LedgerVerification(
                ok=True, computed_head=computed, stored_head=stored, entry_count=count
            )
        logger.warning(
            "Ledger chain mismatch in %s: computed=%s stored=%s",
            self._ledger_path, computed or "<empty>", stored or "<empty>",
        )
        return LedgerChainMismatch(
            computed_head=computed, stored_head=stored, entry_count=count
        )

"""Hashing helpers for the ledger chain and manifest fingerprints."""

from __future__ import annotations

import hashlib
from pathlib import Path


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def chain_hash(previous_head: str, line: str | bytes) -> str:
    """Advance the ledger chain by one line.

    The first line of a ledger is hashed on its own; every later line is
    hashed together with the previous head as ``prev + "\\n" + line``.
    Text lines are hashed as UTF-8; byte lines are hashed as stored.
    """
    data = line.encode("utf-8") if isinstance(line, str) else line
    if not previous_head:
        return sha256_hex(data)
    return sha256_hex(previous_head.encode("utf-8") + b"\n" + data)


def file_sha256(path: Path, chunk_size: int = 65536) -> str:
    """SHA-256 of a file's bytes, read in chunks."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()

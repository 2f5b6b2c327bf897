"""Lock abstraction for the ledger's single-writer contract.

``Ledger.record`` holds a ``LedgerLock`` for the whole read-head /
append-line / write-head sequence. The default lock is an exclusive
``flock`` on a sidecar file; ``NullLock`` is for callers that already
serialize writers themselves.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class LedgerLock(Protocol):
    """A scoped, exclusive acquisition."""

    def hold(self) -> contextlib.AbstractContextManager[None]: ...


class FcntlFileLock:
    """Exclusive advisory lock via ``fcntl.flock`` on ``lock_path``.

    Blocks until the lock is available. Released on every exit path,
    including exceptions raised inside the ``with`` block.
    """

    def __init__(self, lock_path: Path) -> None:
        self._lock_path = Path(lock_path)

    @property
    def path(self) -> Path:
        return self._lock_path

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            logger.debug("Acquired ledger lock %s", self._lock_path)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                logger.debug("Released ledger lock %s", self._lock_path)
        finally:
            os.close(fd)


class NullLock:
    """No-op lock."""

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        yield

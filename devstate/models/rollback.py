"""Rollback plan and result models. Derived per invocation, never persisted."""

from __future__ import annotations

import shlex

from pydantic import BaseModel, ConfigDict


class RollbackAction(BaseModel):
    """One reversal: remove ``target`` from ``ecosystem`` with ``removal_command``."""

    model_config = ConfigDict(frozen=True)

    ecosystem: str
    target: str
    removal_command: list[str]

    @property
    def command_line(self) -> str:
        return shlex.join(self.removal_command)


class RollbackPlan(BaseModel):
    """An ordered list of reversal actions."""

    model_config = ConfigDict(frozen=True)

    actions: list[RollbackAction] = []

    def __len__(self) -> int:
        return len(self.actions)


class RollbackItemFailure(BaseModel):
    """A single removal that failed; collected, never raised."""

    model_config = ConfigDict(frozen=True)

    action: RollbackAction
    error: str


class RollbackResult(BaseModel):
    """Summary of executing a plan, dry-run or live."""

    model_config = ConfigDict(frozen=True)

    dry_run: bool
    lines: list[str] = []
    attempted: int = 0
    failures: list[RollbackItemFailure] = []

    @property
    def failure_count(self) -> int:
        return len(self.failures)

"""Pin audit report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class PinFinding(BaseModel):
    """An install line that bypasses the manifest. A finding, not a fault."""

    model_config = ConfigDict(frozen=True)

    file: str  # path relative to the scanned root
    line: str
    line_number: int
    rule: str = "unpinned"

    def render(self) -> str:
        return f"[UNPINNED] {self.file}: {self.line}"


class PinAuditReport(BaseModel):
    """Structured result of one audit run."""

    model_config = ConfigDict(frozen=True)

    status: Literal["pass", "fail"]
    root: str
    files_scanned: int = 0
    findings: list[PinFinding] = []

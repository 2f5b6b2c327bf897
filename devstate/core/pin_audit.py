"""Pin auditor — lint installer scripts for installs that bypass the manifest.

Each line is tokenized once into a ``ParsedLine``. Install-looking lines
(``pip install`` and ``npm install -g``) are run through ``DEFAULT_RULES``,
an ordered table of allow/deny rules; the first rule that applies decides.
The table ends with a catch-all deny, so an install line no allow rule
recognizes is a finding. Lines that install nothing are never evaluated.

This is a heuristic lint. It can miss unsafe lines and flag safe ones it
does not recognize; it prefers being right about what it does report.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from devstate.errors import PinAuditError
from devstate.models.audit import PinAuditReport, PinFinding

logger = logging.getLogger(__name__)

# Lines mentioning a resolver invocation are always exempt.
RESOLVER_MARKERS: tuple[str, ...] = ("version-resolver", "devstate manifest")

# Shell variables and helpers that carry resolver output into pip installs.
PIP_RESOLVER_PATTERNS: tuple[str, ...] = (
    r"\$\{?core_pkgs\b",
    r"\$\{?viz_pkgs\b",
    r"\$\{?web_pkgs\b",
    r"\$\{?db_pkgs\b",
    r"manifest_pip_group",
    r"build_pip_install_args",
)

# Shell variables that carry a resolved ``name@version`` into npm installs.
NPM_RESOLVER_PATTERNS: tuple[str, ...] = (
    r"\$\{pkg\}@\$\{pinned\}",
    r"\$\{?pkg\b",
)

# Legacy multi-tool fallback install, allowed until the course scripts move to the resolver.
NPM_LEGACY_FALLBACKS: tuple[str, ...] = (
    "typescript yarn pnpm create-react-app @vue/cli @angular/cli",
)

_PIP_INSTALL = re.compile(r"\bpip3?\s+install\b")
_NPM_INSTALL = re.compile(r"\bnpm\s+(?:install|i)\b")
_PIP_HELPER_DEF = re.compile(r"\bpip_install\w*\s*\(\)")
_NPM_VERSION_PIN = re.compile(r".@\d")
_SHELL_SEPARATORS = frozenset({"&&", "||", ";", "|", "\\"})
_PIP_VALUE_OPTIONS = frozenset({
    "-r", "--requirement", "-c", "--constraint", "-i", "--index-url",
    "--extra-index-url", "-t", "--target", "--prefix", "-f", "--find-links",
})


class InstallKind(str, Enum):
    """Which installer a line invokes."""

    PIP = "pip"
    NPM_GLOBAL = "npm_global"


class Verdict(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class ParsedLine(BaseModel):
    """One source line with its shell tokens and install classification."""

    model_config = ConfigDict(frozen=True)

    text: str
    tokens: tuple[str, ...]
    kind: InstallKind | None = None
    packages: tuple[str, ...] = ()  # positional arguments after ``install``

    @property
    def is_comment(self) -> bool:
        return self.text.lstrip().startswith("#")


class AuditRule(BaseModel):
    """A named predicate and the verdict it gives when it applies."""

    model_config = ConfigDict(frozen=True)

    name: str
    kinds: frozenset[InstallKind]
    predicate: Callable[[ParsedLine], bool]
    verdict: Verdict

    def applies(self, line: ParsedLine) -> bool:
        return line.kind in self.kinds and self.predicate(line)


# ---------------------------------------------------------------------------
# Tokenizing
# ---------------------------------------------------------------------------


def _tokenize(text: str) -> tuple[str, ...]:
    try:
        return tuple(shlex.split(text, posix=True))
    except ValueError:
        return tuple(text.split())


def _install_args(tokens: Sequence[str], value_options: frozenset[str]) -> tuple[str, ...]:
    """Positional arguments following the first ``install``/``i`` token."""
    try:
        start = next(i for i, tok in enumerate(tokens) if tok in ("install", "i")) + 1
    except StopIteration:
        return ()
    args: list[str] = []
    skip_next = False
    for tok in tokens[start:]:
        if tok in _SHELL_SEPARATORS or tok.startswith(("#", ">", "2>")):
            break
        if skip_next:
            skip_next = False
            continue
        if tok in value_options:
            skip_next = True
            continue
        if tok.startswith("-"):
            continue
        args.append(tok)
    return tuple(args)


def parse_line(text: str) -> ParsedLine:
    """Tokenize ``text`` and decide whether it is an install line."""
    tokens = _tokenize(text)
    kind: InstallKind | None = None
    packages: tuple[str, ...] = ()
    if _PIP_INSTALL.search(text):
        kind = InstallKind.PIP
        packages = _install_args(tokens, _PIP_VALUE_OPTIONS)
    elif _NPM_INSTALL.search(text) and ("-g" in tokens or "--global" in tokens):
        kind = InstallKind.NPM_GLOBAL
        packages = _install_args(tokens, frozenset())
    return ParsedLine(text=text, tokens=tokens, kind=kind, packages=packages)


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------


def _matches_any(patterns: Iterable[str]) -> Callable[[ParsedLine], bool]:
    compiled = [re.compile(p) for p in patterns]
    return lambda line: any(p.search(line.text) for p in compiled)


def _contains_any(needles: Iterable[str]) -> Callable[[ParsedLine], bool]:
    needles = tuple(needles)
    return lambda line: any(n in line.text for n in needles)


_ANY = frozenset(InstallKind)
_PIP = frozenset({InstallKind.PIP})
_NPM = frozenset({InstallKind.NPM_GLOBAL})

DEFAULT_RULES: tuple[AuditRule, ...] = (
    AuditRule(name="comment", kinds=_ANY, verdict=Verdict.ALLOW,
              predicate=lambda line: line.is_comment),
    AuditRule(name="resolver_marker", kinds=_ANY, verdict=Verdict.ALLOW,
              predicate=_contains_any(RESOLVER_MARKERS)),
    AuditRule(name="pip_helper_definition", kinds=_PIP, verdict=Verdict.ALLOW,
              predicate=lambda line: bool(_PIP_HELPER_DEF.search(line.text))),
    # requirements files get their own check later; exempt here
    AuditRule(name="pip_requirements_file", kinds=_PIP, verdict=Verdict.ALLOW,
              predicate=lambda line: "-r" in line.tokens or "--requirement" in line.tokens),
    AuditRule(name="pip_resolver_variable", kinds=_PIP, verdict=Verdict.ALLOW,
              predicate=_matches_any(PIP_RESOLVER_PATTERNS)),
    AuditRule(name="pip_exact_pin", kinds=_PIP, verdict=Verdict.ALLOW,
              predicate=lambda line: any("==" in p for p in line.packages)),
    AuditRule(name="npm_resolver_variable", kinds=_NPM, verdict=Verdict.ALLOW,
              predicate=_matches_any(NPM_RESOLVER_PATTERNS)),
    AuditRule(name="npm_flag_only", kinds=_NPM, verdict=Verdict.ALLOW,
              predicate=lambda line: not line.packages),
    AuditRule(name="npm_legacy_fallback", kinds=_NPM, verdict=Verdict.ALLOW,
              predicate=_contains_any(NPM_LEGACY_FALLBACKS)),
    AuditRule(name="npm_version_pin", kinds=_NPM, verdict=Verdict.ALLOW,
              predicate=lambda line: any(_NPM_VERSION_PIN.search(p) for p in line.packages)),
    AuditRule(name="unpinned", kinds=_ANY, verdict=Verdict.DENY,
              predicate=lambda line: True),
)


def classify(line: ParsedLine, rules: Sequence[AuditRule] = DEFAULT_RULES) -> AuditRule | None:
    """The first rule that applies to ``line``; ``None`` if it installs nothing."""
    if line.kind is None:
        return None
    for rule in rules:
        if rule.applies(line):
            return rule
    return None


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


class PinAuditor:
    """Scans script trees with an ordered rule table.

    Parameters
    ----------
    rules:
        Ordered rules; the first applicable rule decides a line.
    globs:
        File patterns to scan under each root, matched recursively.
    """

    def __init__(
        self,
        rules: Sequence[AuditRule] = DEFAULT_RULES,
        globs: Sequence[str] = ("*.sh",),
    ) -> None:
        self._rules = tuple(rules)
        self._globs = tuple(globs)

    def audit_lines(self, lines: Iterable[str], file: str) -> list[PinFinding]:
        findings: list[PinFinding] = []
        for number, text in enumerate(lines, start=1):
            rule = classify(parse_line(text), self._rules)
            if rule is not None and rule.verdict is Verdict.DENY:
                findings.append(
                    PinFinding(file=file, line=text, line_number=number, rule=rule.name)
                )
        return findings

    def _files(self, root: Path) -> list[Path]:
        found: set[Path] = set()
        for pattern in self._globs:
            found.update(p for p in root.rglob(pattern) if p.is_file())
        return sorted(found)

    def scan(self, root: Path) -> PinAuditReport:
        """Audit every matching file under ``root``.

        Raises ``PinAuditError`` if ``root`` is not a directory or a file
        cannot be read.
        """
        root = Path(root)
        if not root.is_dir():
            raise PinAuditError(f"Audit root {root} is not a directory")

        findings: list[PinFinding] = []
        files = self._files(root)
        for path in files:
            rel = path.relative_to(root).as_posix()
            logger.debug("Pin audit: scanning %s", rel)
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise PinAuditError(f"Cannot read {path}: {exc}") from exc
            findings.extend(self.audit_lines(text.splitlines(), rel))

        return PinAuditReport(
            status="fail" if findings else "pass",
            root=str(root),
            files_scanned=len(files),
            findings=findings,
        )


def scan(root: Path, globs: Sequence[str] = ("*.sh",)) -> PinAuditReport:
    """Audit ``root`` with the default rule table."""
    return PinAuditor(globs=globs).scan(root)

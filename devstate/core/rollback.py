"""Rollback planner — derive reversible uninstall actions from the manifest.

Plans are computed from manifest groups and are never persisted. Executing
a plan is dry-run by default. A live run is best-effort: each item's
failure is logged and collected, and the batch continues.

Discovery helpers (``list_brew_leaves``, ``list_apt_dev_packages``) only
report what is installed; nothing they return is ever removed.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from collections.abc import Callable

from devstate.core.manifest import (
    NODE_ECOSYSTEM,
    NODE_GLOBALS_GROUP,
    PYTHON_ECOSYSTEM,
    ManifestResolver,
)
from devstate.errors import ManifestLookupError
from devstate.models.rollback import (
    RollbackAction,
    RollbackItemFailure,
    RollbackPlan,
    RollbackResult,
)

logger = logging.getLogger(__name__)

REMOVAL_COMMANDS: dict[str, tuple[str, ...]] = {
    NODE_ECOSYSTEM: ("npm", "-g", "rm"),
    PYTHON_ECOSYSTEM: ("pip", "uninstall", "-y"),
}

_NOT_INSTALLED = re.compile(r"not installed|not found|no such package", re.IGNORECASE)
_APT_DEV_FILTER = re.compile(r"build-essential|cmake|git|python3|nodejs")

# Runs one removal command; raises on failure.
CommandRunner = Callable[[list[str]], None]


def subprocess_runner(command: list[str]) -> None:
    """Run ``command`` and raise ``CalledProcessError`` on a non-zero exit."""
    subprocess.run(command, check=True, capture_output=True, text=True)


def _is_not_installed(exc: subprocess.CalledProcessError) -> bool:
    output = f"{exc.stdout or ''}\n{exc.stderr or ''}"
    return bool(_NOT_INSTALLED.search(output))


class RollbackPlanner:
    """Builds and executes rollback plans against one manifest.

    Parameters
    ----------
    resolver:
        Resolver over the parsed manifest.
    runner:
        Executes a single removal command in live mode. Defaults to
        ``subprocess_runner``.
    """

    def __init__(
        self,
        resolver: ManifestResolver,
        runner: CommandRunner | None = None,
    ) -> None:
        self._resolver = resolver
        self._runner = runner or subprocess_runner

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _group_packages(self, ecosystem: str, group_path: str) -> list[str]:
        try:
            return list(self._resolver.resolve_group(ecosystem, group_path))
        except ManifestLookupError as exc:
            logger.warning("Rollback: %s; nothing to plan", exc)
            return []

    def plan_npm_globals(self) -> list[str]:
        """Every package name in ``node.globals``."""
        return self._group_packages(NODE_ECOSYSTEM, NODE_GLOBALS_GROUP)

    def plan_pip_group(self, group_path: str) -> list[str]:
        """Package names of a top-level or ``group.extras.sub`` python group.

        Extras sub-groups are not included when planning the parent group.
        A missing group yields an empty list and a warning.
        """
        return self._group_packages(PYTHON_ECOSYSTEM, group_path)

    def plan(
        self,
        *,
        npm_globals: bool = False,
        pip_groups: list[str] | tuple[str, ...] = (),
    ) -> RollbackPlan:
        """Build a plan: npm globals first, then pip groups in the given order."""
        actions: list[RollbackAction] = []
        if npm_globals:
            actions.extend(
                self._action(NODE_ECOSYSTEM, pkg) for pkg in self.plan_npm_globals()
            )
        for group in pip_groups:
            actions.extend(
                self._action(PYTHON_ECOSYSTEM, pkg) for pkg in self.plan_pip_group(group)
            )
        return RollbackPlan(actions=actions)

    @staticmethod
    def _action(ecosystem: str, target: str) -> RollbackAction:
        return RollbackAction(
            ecosystem=ecosystem,
            target=target,
            removal_command=[*REMOVAL_COMMANDS[ecosystem], target],
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, plan: RollbackPlan, dry_run: bool = True) -> RollbackResult:
        """Carry out ``plan``.

        Dry-run produces one ``would remove`` line per item and calls
        nothing. Live mode runs each removal once; failures are logged and
        collected, never raised, and "not installed" is treated as done.
        """
        lines: list[str] = []
        failures: list[RollbackItemFailure] = []
        attempted = 0

        for action in plan.actions:
            if dry_run:
                lines.append(f"would remove [{action.ecosystem}] {action.command_line}")
                continue

            attempted += 1
            lines.append(f"removing [{action.ecosystem}] {action.command_line}")
            try:
                self._runner(list(action.removal_command))
            except subprocess.CalledProcessError as exc:
                if _is_not_installed(exc):
                    logger.info("Rollback: %s was not installed", action.target)
                    continue
                failures.append(self._failure(action, f"exit status {exc.returncode}"))
            except subprocess.TimeoutExpired as exc:
                failures.append(self._failure(action, f"timed out after {exc.timeout}s"))
            except (subprocess.SubprocessError, OSError) as exc:
                failures.append(self._failure(action, str(exc) or type(exc).__name__))

        return RollbackResult(
            dry_run=dry_run, lines=lines, attempted=attempted, failures=failures
        )

    @staticmethod
    def _failure(action: RollbackAction, error: str) -> RollbackItemFailure:
        logger.warning("Rollback: %s failed: %s", action.command_line, error)
        return RollbackItemFailure(action=action, error=error)


# ---------------------------------------------------------------------------
# Read-only discovery
# ---------------------------------------------------------------------------


def _capture(command: list[str]) -> str:
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        logger.info("Discovery: %s could not run: %s", command[0], exc)
        return ""
    return result.stdout


def list_brew_leaves() -> list[str]:
    """Formulae installed on request (``brew leaves``). Informational only."""
    if shutil.which("brew") is None:
        logger.info("Discovery: brew not found")
        return []
    return [line.strip() for line in _capture(["brew", "leaves"]).splitlines() if line.strip()]


def list_apt_dev_packages() -> list[str]:
    """Installed apt packages matching the common dev-tool filter. Informational only."""
    if shutil.which("apt") is None:
        logger.info("Discovery: apt not found")
        return []
    packages: list[str] = []
    for line in _capture(["apt", "list", "--installed"]).splitlines():
        if "/" not in line or not _APT_DEV_FILTER.search(line):
            continue
        packages.append(line.split("/", 1)[0])
    return packages

"""Advisory lint for feature shell scripts and READMEs.

Every check here is a text-pattern heuristic over file contents. They can miss
real problems and flag harmless scripts; findings are only ever reported as
warnings. Syntax checking shells out to ``bash -n`` and is the one check whose
failure is treated as an error by the validator.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class Heuristic:
    """A named advisory check; ``predicate`` returns True when the text passes."""

    id: str
    predicate: Predicate
    message: str


@dataclass(frozen=True)
class HeuristicSet:
    _by_id: dict[str, Heuristic]

    @classmethod
    def from_checks(cls, checks: Iterable[Heuristic]) -> "HeuristicSet":
        entries: dict[str, Heuristic] = {}
        for check in checks:
            if check.id in entries:
                raise ValueError(f"Duplicate heuristic id: {check.id}")
            entries[check.id] = check
        return cls(_by_id=entries)

    def available(self) -> tuple[str, ...]:
        return tuple(self._by_id.keys())

    def get(self, heuristic_id: str) -> Heuristic:
        check = self._by_id.get((heuristic_id or "").strip())
        if check is None:
            available = ", ".join(self.available()) or "<none>"
            raise ValueError(f"Unknown heuristic id: {heuristic_id} (available: {available})")
        return check

    def without(self, *heuristic_ids: str) -> "HeuristicSet":
        for heuristic_id in heuristic_ids:
            self.get(heuristic_id)
        return HeuristicSet.from_checks(
            check for key, check in self._by_id.items() if key not in heuristic_ids
        )

    def run(self, text: str) -> list[str]:
        """Return the message of every check the text fails, in registration order."""
        findings: list[str] = []
        for check in self._by_id.values():
            if not check.predicate(text):
                findings.append(check.message)
        return findings


def contains(*needles: str) -> Predicate:
    return lambda text: any(needle in text for needle in needles)


def lacks(*needles: str) -> Predicate:
    return lambda text: not any(needle in text for needle in needles)


def matches(pattern: str, flags: int = 0) -> Predicate:
    compiled = re.compile(pattern, flags)
    return lambda text: compiled.search(text) is not None


INSTALL_SCRIPT_HEURISTICS = HeuristicSet.from_checks(
    [
        Heuristic(
            id="errexit",
            predicate=contains("set -e"),
            message="Script should use 'set -e' for proper error handling",
        ),
        Heuristic(
            id="shebang",
            predicate=contains("#!/bin/bash"),
            message="Script should start with '#!/bin/bash'",
        ),
        Heuristic(
            id="root_check",
            predicate=contains("id -u"),
            message="Script should validate it's running as root",
        ),
        Heuristic(
            id="idempotency",
            predicate=contains("command -v", "which"),
            message="Script should implement idempotency checks",
        ),
        Heuristic(
            id="hardcoded_paths",
            predicate=lacks("/home/", "/Users/"),
            message="Script may contain hardcoded user paths",
        ),
    ]
)

README_HEURISTICS = HeuristicSet.from_checks(
    [
        Heuristic(
            id="heading",
            predicate=contains("# "),
            message="README should have a main heading",
        ),
        Heuristic(
            id="usage",
            predicate=matches(r"usage|example", re.IGNORECASE),
            message="README should contain usage examples",
        ),
        Heuristic(
            id="options",
            predicate=matches(r"option", re.IGNORECASE),
            message="README should document available options",
        ),
    ]
)


def references_env_var(script_text: str, variable: str) -> bool:
    """True when ``$VARIABLE`` or ``${VARIABLE`` appears in the script."""
    pattern = r"\$\{?" + re.escape(variable) + r"(?![A-Za-z0-9_])"
    return re.search(pattern, script_text) is not None


@dataclass(frozen=True)
class SyntaxCheck:
    checked: bool
    ok: bool
    detail: str = ""


def check_shell_syntax(path: str | Path, *, timeout_seconds: float = 30.0) -> SyntaxCheck:
    """Run ``bash -n`` on a script. ``checked`` is False when bash is unavailable or times out."""

    bash = shutil.which("bash")
    if bash is None:
        logger.debug("bash not found on PATH; skipping syntax check for %s", path)
        return SyntaxCheck(checked=False, ok=True, detail="bash not found on PATH")

    try:
        proc = subprocess.run(
            [bash, "-n", str(path)],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        logger.debug("bash -n timed out after %ss for %s", timeout_seconds, path)
        return SyntaxCheck(checked=False, ok=True, detail=f"bash -n timed out after {timeout_seconds}s")
    except OSError as exc:
        return SyntaxCheck(checked=False, ok=True, detail=f"could not run bash: {exc}")
    if proc.returncode == 0:
        return SyntaxCheck(checked=True, ok=True)
    return SyntaxCheck(checked=True, ok=False, detail=(proc.stderr or proc.stdout).strip())

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValidationReport:
    feature: str
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.feature,
            "valid": self.ok,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class ReportBuilder:
    """Accumulates findings for a single validation pass."""

    feature: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def build(self) -> ValidationReport:
        return ValidationReport(
            feature=self.feature,
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
        )


@dataclass(frozen=True)
class ReportSummary:
    total: int
    errors: int
    warnings: int
    failed: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return self.errors == 0


def summarize_reports(reports: Iterable[ValidationReport]) -> ReportSummary:
    total = 0
    errors = 0
    warnings = 0
    failed: list[str] = []
    for report in reports:
        total += 1
        errors += len(report.errors)
        warnings += len(report.warnings)
        if not report.ok:
            failed.append(report.feature)
    return ReportSummary(total=total, errors=errors, warnings=warnings, failed=tuple(failed))

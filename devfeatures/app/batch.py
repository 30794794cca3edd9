"""Validate or build many features, one pipeline per feature.

Features share nothing but the output directory, and each writes distinct
filenames there, so parallel runs need no locking. Results always come back in
the order features were requested.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

from devfeatures.app.collection import discover_feature_dirs
from devfeatures.app.package import BuildMetadata, PackageOptions, PackagePlan, package
from devfeatures.app.validate import validate
from devfeatures.framework.config import PipelineConfig
from devfeatures.framework.errors import FeatureError, StructuralError
from devfeatures.framework.report import ValidationReport

logger = logging.getLogger(__name__)

T = TypeVar("T")


def select_features(
    available: Sequence[str],
    include: Iterable[str] = (),
    skip: Iterable[str] = (),
) -> list[str]:
    """
    Apply FEATURES/SKIP_FEATURES style selection.

    ``include`` (when non-empty) replaces ``available`` and keeps its own order;
    every included name must exist.

    Raises:
        StructuralError: an included feature is not in ``available``.
    """

    requested = [name for name in include if name]
    if requested:
        known = set(available)
        missing = [name for name in requested if name not in known]
        if missing:
            raise StructuralError(f"Feature directory not found: {', '.join(missing)}")
        selected = requested
    else:
        selected = list(available)

    skipped = set(skip)
    return [name for name in selected if name not in skipped]


def available_features(config: PipelineConfig) -> list[str]:
    return [path.name for path in discover_feature_dirs(config.src_path)]


def run_per_feature(
    features: Sequence[str],
    work: Callable[[str], T],
    *,
    parallel: bool = False,
    max_workers: int = 4,
) -> list[T]:
    if not parallel or len(features) < 2:
        return [work(name) for name in features]
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="devfeatures") as pool:
        return list(pool.map(work, features))


@dataclass(frozen=True)
class FeatureOutcome:
    feature: str
    report: ValidationReport | None = None
    result: BuildMetadata | PackagePlan | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        if self.error is not None:
            return False
        return self.report is None or self.report.ok

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"feature": self.feature, "ok": self.ok, "error": self.error}
        if self.report is not None:
            payload["validation"] = self.report.to_dict()
        if isinstance(self.result, PackagePlan):
            payload["plan"] = self.result.to_dict()
        elif isinstance(self.result, BuildMetadata):
            payload["metadata"] = self.result.to_dict()
            payload["archive"] = self.result.archive_path
        return payload


@dataclass(frozen=True)
class BatchSummary:
    outcomes: tuple[FeatureOutcome, ...]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> tuple[str, ...]:
        return tuple(outcome.feature for outcome in self.outcomes if not outcome.ok)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": list(self.failed),
            "features": [outcome.to_dict() for outcome in self.outcomes],
        }


def validate_many(config: PipelineConfig, features: Sequence[str]) -> list[ValidationReport]:
    def work(name: str) -> ValidationReport:
        return validate(config.feature_dir(name), name, test_dir=config.feature_test_dir(name))

    return run_per_feature(features, work, parallel=config.parallel, max_workers=config.max_workers)


def build_many(
    config: PipelineConfig,
    features: Sequence[str],
    *,
    skip_validation: bool = False,
) -> BatchSummary:
    """
    Validate then package each feature.

    A feature with validation errors is not packaged unless ``skip_validation``
    is set. Each feature writes its own ``<id>-build-summary.json``.
    """

    def work(name: str) -> FeatureOutcome:
        report: ValidationReport | None = None
        if not skip_validation:
            report = validate(config.feature_dir(name), name, test_dir=config.feature_test_dir(name))
            if not report.ok:
                logger.error("%s: validation failed with %d error(s); not packaging", name, len(report.errors))
                return FeatureOutcome(feature=name, report=report)

        options = PackageOptions(
            dry_run=config.dry_run,
            push=config.push,
            registry=config.registry,
            workspace=config.workspace_root,
            summary_name=f"{name}-build-summary.json",
        )
        try:
            result = package(config.feature_dir(name), name, config.output_path, options)
        except (FeatureError, OSError) as exc:
            logger.error("%s: packaging failed: %s", name, exc)
            return FeatureOutcome(feature=name, report=report, error=f"{exc.__class__.__name__}: {exc}")
        return FeatureOutcome(feature=name, report=report, result=result)

    outcomes = run_per_feature(features, work, parallel=config.parallel, max_workers=config.max_workers)
    return BatchSummary(outcomes=tuple(outcomes))

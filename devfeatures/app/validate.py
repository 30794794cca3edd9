"""Feature directory validation.

``validate`` never raises for problems in the feature itself: every finding is
recorded in the returned report so one run surfaces everything. Errors mark the
feature invalid; warnings are advisory.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from devfeatures.framework.errors import SchemaError
from devfeatures.framework.heuristics import (
    INSTALL_SCRIPT_HEURISTICS,
    README_HEURISTICS,
    HeuristicSet,
    check_shell_syntax,
    references_env_var,
)
from devfeatures.framework.manifest import (
    INSTALL_SCRIPT_FILENAME,
    MANIFEST_FILENAME,
    README_FILENAME,
    SCENARIOS_FILENAME,
    SUPPORTED_OPTION_TYPES,
    TEST_SCRIPT_FILENAME,
    FeatureManifest,
    is_semver,
    load_manifest,
)
from devfeatures.framework.report import ReportBuilder, ValidationReport

logger = logging.getLogger(__name__)


def default_test_dir(feature_dir: str | os.PathLike[str], feature_name: str) -> Path:
    """
    Locate the tests for a feature.

    Features laid out as ``<workspace>/src/<name>`` keep tests in
    ``<workspace>/test/<name>``; anything else is expected to carry a ``test``
    subdirectory.
    """

    path = Path(feature_dir)
    if path.parent.name == "src":
        return path.parent.parent / "test" / feature_name
    return path / "test"


def validate(
    feature_dir: str | os.PathLike[str],
    feature_name: str,
    *,
    test_dir: str | os.PathLike[str] | None = None,
    install_heuristics: HeuristicSet = INSTALL_SCRIPT_HEURISTICS,
    readme_heuristics: HeuristicSet = README_HEURISTICS,
) -> ValidationReport:
    report = ReportBuilder(feature=feature_name)
    root = Path(feature_dir)
    logger.debug("Validating feature %s at %s", feature_name, root)

    if not root.is_dir():
        report.error(f"Feature directory does not exist: {root}")
        return report.build()

    manifest_path = root / MANIFEST_FILENAME
    install_path = root / INSTALL_SCRIPT_FILENAME
    readme_path = root / README_FILENAME

    if not manifest_path.is_file():
        report.error(f"Missing required file: {MANIFEST_FILENAME}")

    if not install_path.is_file():
        report.error(f"Missing required file: {INSTALL_SCRIPT_FILENAME}")
    elif not os.access(install_path, os.X_OK):
        report.warn(
            f"{INSTALL_SCRIPT_FILENAME} is not executable (will be made executable during installation)"
        )

    if not readme_path.is_file():
        report.warn(f"Missing recommended file: {README_FILENAME}")

    manifest: FeatureManifest | None = None
    if manifest_path.is_file():
        try:
            manifest = load_manifest(manifest_path)
        except SchemaError as exc:
            report.error(str(exc))
        except UnicodeDecodeError as exc:
            report.error(f"{MANIFEST_FILENAME} is not valid UTF-8: {exc}")
        except OSError as exc:
            report.error(f"Cannot read {MANIFEST_FILENAME}: {exc}")

    if manifest is not None:
        _check_manifest_fields(manifest, feature_name, report)

    install_text: str | None = None
    if install_path.is_file():
        try:
            install_text = install_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            report.error(f"Cannot read {INSTALL_SCRIPT_FILENAME}: {exc}")
        else:
            _check_script_syntax(install_path, INSTALL_SCRIPT_FILENAME, report)
            for message in install_heuristics.run(install_text):
                report.warn(message)

    if readme_path.is_file():
        try:
            readme_text = readme_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            report.warn(f"Cannot read {README_FILENAME}: {exc}")
        else:
            for message in readme_heuristics.run(readme_text):
                report.warn(message)

    tests = Path(test_dir) if test_dir is not None else default_test_dir(root, feature_name)
    _check_tests(tests, report)

    if manifest is not None and install_text is not None:
        for option in manifest.options:
            if not references_env_var(install_text, option.env_var):
                report.warn(
                    f"Option '{option.name}' may not be used in {INSTALL_SCRIPT_FILENAME} "
                    f"(expected variable: ${option.env_var})"
                )

    result = report.build()
    logger.debug(
        "Validated %s: %d error(s), %d warning(s)",
        feature_name,
        len(result.errors),
        len(result.warnings),
    )
    return result


def _check_manifest_fields(manifest: FeatureManifest, feature_name: str, report: ReportBuilder) -> None:
    if not manifest.id:
        report.error("Missing required field: id")
    elif manifest.id != feature_name:
        report.error(f"Feature id '{manifest.id}' does not match directory name '{feature_name}'")

    if not manifest.version:
        report.error("Missing required field: version")
    elif not is_semver(manifest.version):
        report.warn(f"Version '{manifest.version}' does not follow semantic versioning (x.y.z)")

    if not manifest.name:
        report.error("Missing required field: name")

    if not manifest.description:
        report.warn("Missing recommended field: description")

    for option in manifest.options:
        if not option.type:
            report.warn(f"Option '{option.name}' missing type field")
        elif option.type not in SUPPORTED_OPTION_TYPES:
            report.warn(f"Option '{option.name}' has unsupported type: {option.type}")
        if not option.description:
            report.warn(f"Option '{option.name}' missing description")


def _check_script_syntax(path: Path, label: str, report: ReportBuilder) -> None:
    result = check_shell_syntax(path)
    if not result.checked:
        report.warn(f"Could not check {label} syntax: {result.detail}")
    elif not result.ok:
        detail = f": {result.detail}" if result.detail else ""
        report.error(f"Bash syntax errors found in {label}{detail}")


def _check_tests(test_dir: Path, report: ReportBuilder) -> None:
    if not test_dir.is_dir():
        report.warn(f"No test directory found: {test_dir}")
        return

    test_script = test_dir / TEST_SCRIPT_FILENAME
    if test_script.is_file():
        _check_script_syntax(test_script, f"test/{TEST_SCRIPT_FILENAME}", report)
    else:
        report.warn(f"No {TEST_SCRIPT_FILENAME} script found in test directory")

    scenarios = test_dir / SCENARIOS_FILENAME
    if scenarios.is_file():
        try:
            json.loads(scenarios.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            report.error(f"Test scenarios JSON has syntax errors: {exc}")
        except OSError as exc:
            report.error(f"Cannot read {SCENARIOS_FILENAME}: {exc}")
    else:
        report.warn(f"No {SCENARIOS_FILENAME} file found (optional)")

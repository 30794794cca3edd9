from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from devfeatures.foundation.config_io import find_repo_root, load_config
from devfeatures.foundation.logging_utils import setup_operational_logger
from devfeatures.framework.config import PipelineConfig, parse_csv_list

LOGGER_NAME = "devfeatures"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devfeatures", add_help=True)
    parser.add_argument("--config", dest="config_path", default=None, help="Explicit config YAML path")
    parser.add_argument("--log-level", default=None, help="stderr log level (default: from config)")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--workspace", default=None, help="Workspace holding src/ and test/")
    common.add_argument("--json", action="store_true", help="Write structured results to stdout")

    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", parents=[common], help="Validate one feature")
    validate.add_argument("feature")

    build = sub.add_parser("build", parents=[common], help="Package one feature")
    build.add_argument("feature")
    _add_build_args(build)
    build.add_argument(
        "--validate",
        action="store_true",
        help="Run validation first and refuse to package on errors",
    )

    validate_all = sub.add_parser("validate-all", parents=[common], help="Validate every feature")
    _add_selection_args(validate_all)

    build_all = sub.add_parser("build-all", parents=[common], help="Validate and package every feature")
    _add_selection_args(build_all)
    _add_build_args(build_all)
    build_all.add_argument(
        "--skip-validation",
        action="store_true",
        help="Package features even when validation reports errors",
    )

    collection = sub.add_parser("collection", parents=[common], help="Write the collection document")
    collection.add_argument("--output", default=None, help="Collection file path")
    collection.add_argument("--repository", default=None)
    collection.add_argument("--ref", default=None)
    collection.add_argument("--sha", default=None)
    collection.add_argument("--timestamp", default=None)

    return parser


def _add_build_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", default=None, help="Output directory (default: build.output_dir)")
    parser.add_argument("--dry-run", action="store_true", default=None)
    parser.add_argument("--push", action="store_true", default=None)
    parser.add_argument("--registry", default=None)


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--features", default=None, help="Comma-separated features to include")
    parser.add_argument("--skip-features", default=None, help="Comma-separated features to skip")
    parser.add_argument("--parallel", action="store_true", default=None)
    parser.add_argument("--max-workers", type=int, default=None)


def resolve_config(args: argparse.Namespace, environ: dict[str, str] | None = None) -> tuple[PipelineConfig, list[str]]:
    env = dict(os.environ if environ is None else environ)
    cfg, meta = load_config(config_path=args.config_path)

    base_dir = _infer_repo_root(meta)

    config, warnings = PipelineConfig.from_dict(cfg, base_dir=base_dir)
    config = config.with_env_overrides(env)

    updates: dict[str, Any] = {}
    if getattr(args, "workspace", None):
        updates["workspace_root"] = os.path.abspath(args.workspace)
    if getattr(args, "output", None) and args.command != "collection":
        updates["output_dir"] = os.path.abspath(args.output)
    if getattr(args, "dry_run", None):
        updates["dry_run"] = True
    if getattr(args, "push", None):
        updates["push"] = True
    if getattr(args, "registry", None):
        updates["registry"] = args.registry
    if getattr(args, "parallel", None):
        updates["parallel"] = True
    if getattr(args, "max_workers", None) is not None:
        if args.max_workers < 1:
            raise ValueError("--max-workers must be >= 1")
        updates["max_workers"] = args.max_workers
    if getattr(args, "features", None):
        updates["features"] = parse_csv_list(args.features, "--features")
    if getattr(args, "skip_features", None):
        updates["skip_features"] = parse_csv_list(args.skip_features, "--skip-features")
    if args.log_level:
        updates["log_level"] = str(args.log_level).upper()
    return (replace(config, **updates) if updates else config), warnings


def _infer_repo_root(meta: dict[str, Any]) -> str:
    """Directory that relative config paths resolve from."""

    raw = meta.get("repo_root")
    if isinstance(raw, str) and raw.strip():
        return raw
    if meta.get("paths"):
        try:
            return find_repo_root(os.path.dirname(meta["paths"][0]))
        except FileNotFoundError:
            pass
    return os.getcwd()


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2))
    sys.stdout.write("\n")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    try:
        config, config_warnings = resolve_config(args)
    except (ValueError, FileNotFoundError) as exc:
        print(f"devfeatures: configuration error: {exc}", file=sys.stderr)
        return 1

    log_dir = config.resolve(config.log_dir) if config.log_dir else None
    logger, _log_file = setup_operational_logger(LOGGER_NAME, log_dir=log_dir, level=config.log_level)
    for warning in config_warnings:
        logger.warning(warning)

    if args.command == "validate":
        return _cmd_validate(args, config, logger)

    if args.command == "build":
        return _cmd_build(args, config, logger)

    if args.command == "validate-all":
        return _cmd_validate_all(args, config, logger)

    if args.command == "build-all":
        return _cmd_build_all(args, config, logger)

    if args.command == "collection":
        return _cmd_collection(args, config, logger)

    raise AssertionError(f"Unhandled command: {args.command}")


def _log_report(report, logger: logging.Logger) -> None:
    for message in report.errors:
        logger.error("%s: %s", report.feature, message)
    for message in report.warnings:
        logger.warning("%s: %s", report.feature, message)


def _cmd_validate(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger) -> int:
    from .app.validate import validate

    name = args.feature
    logger.info("Validating feature: %s (%s)", name, config.feature_dir(name))
    report = validate(config.feature_dir(name), name, test_dir=config.feature_test_dir(name))
    _log_report(report, logger)
    logger.info("Feature: %s | Errors: %d | Warnings: %d", name, len(report.errors), len(report.warnings))

    if report.ok:
        logger.info("Feature validation passed with %d warning(s)", len(report.warnings))
    else:
        logger.error("Feature validation failed with %d error(s)", len(report.errors))

    if args.json:
        _emit_json(report.to_dict())
    return 0 if report.ok else 1


def _cmd_build(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger) -> int:
    from .app.package import PackageOptions, package
    from .app.validate import validate
    from .framework.errors import FeatureError

    name = args.feature
    if args.validate:
        report = validate(config.feature_dir(name), name, test_dir=config.feature_test_dir(name))
        _log_report(report, logger)
        if not report.ok:
            logger.error("Not packaging %s: validation failed with %d error(s)", name, len(report.errors))
            if args.json:
                _emit_json({"validation": report.to_dict()})
            return 1

    options = PackageOptions(
        dry_run=config.dry_run,
        push=config.push,
        registry=config.registry,
        workspace=config.workspace_root,
    )
    try:
        result = package(config.feature_dir(name), name, config.output_path, options)
    except (FeatureError, OSError) as exc:
        logger.error("Build failed for %s: %s", name, exc)
        return 1

    logger.info("Feature build completed: %s -> %s", name, config.output_path)
    if args.json:
        _emit_json(result.to_dict())
    return 0


def _selected_features(config: PipelineConfig, logger: logging.Logger) -> list[str] | None:
    from .app.batch import available_features, select_features
    from .framework.errors import StructuralError

    available = available_features(config)
    if not available and not config.features:
        logger.error("No features found under %s", config.src_path)
        return None
    try:
        selected = select_features(available, config.features, config.skip_features)
    except StructuralError as exc:
        logger.error("%s", exc)
        return None
    logger.info("Features: %s", ", ".join(selected) or "<none>")
    return selected


def _cmd_validate_all(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger) -> int:
    from .app.batch import validate_many
    from .framework.report import summarize_reports

    features = _selected_features(config, logger)
    if features is None:
        return 1

    reports = validate_many(config, features)
    for report in reports:
        _log_report(report, logger)
    summary = summarize_reports(reports)
    logger.info(
        "Validated %d feature(s) | Errors: %d | Warnings: %d",
        summary.total,
        summary.errors,
        summary.warnings,
    )
    if summary.failed:
        logger.error("Failed features: %s", ", ".join(summary.failed))

    if args.json:
        _emit_json(
            {
                "total": summary.total,
                "errors": summary.errors,
                "warnings": summary.warnings,
                "failed": list(summary.failed),
                "features": [report.to_dict() for report in reports],
            }
        )
    return 0 if summary.ok else 1


def _cmd_build_all(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger) -> int:
    from .app.batch import build_many

    features = _selected_features(config, logger)
    if features is None:
        return 1

    summary = build_many(config, features, skip_validation=args.skip_validation)
    logger.info("Built %d of %d feature(s)", summary.passed, summary.total)
    if summary.failed:
        logger.error("Failed features: %s", ", ".join(summary.failed))

    if args.json:
        _emit_json(summary.to_dict())
    return 0 if summary.ok else 1


def _cmd_collection(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger) -> int:
    from .app.collection import (
        SourceInformation,
        aggregate,
        discover_feature_dirs,
        duplicate_ids,
        write_collection,
    )

    source = SourceInformation.from_env(os.environ, source=config.collection_source)
    source = replace(
        source,
        repository=args.repository or source.repository,
        ref=args.ref or source.ref,
        sha=args.sha or source.sha,
        timestamp=args.timestamp or source.timestamp,
    )

    document = aggregate(discover_feature_dirs(config.src_path), source)
    duplicates = duplicate_ids(document)
    if duplicates:
        logger.warning("Duplicate feature ids in collection: %s", ", ".join(duplicates))

    output = os.path.abspath(args.output) if args.output else config.resolve(config.collection_path)
    write_collection(document, output)

    if args.json:
        _emit_json(document.to_dict())
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))

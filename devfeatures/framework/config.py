from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts:
      - True/False
      - 0/1 (ints)
      - strings: true/false/1/0/yes/no (case-insensitive, surrounding whitespace ignored)

    Raises:
      ValueError for anything else, with the provided config key path.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
        raise ValueError(f"Invalid boolean for {path}: {value!r}")

    raise ValueError(f"Invalid boolean for {path}: {value!r}")


def parse_int(value: Any, path: str) -> int:
    if value is None:
        raise ValueError(f"Invalid config value for {path}: None")
    if isinstance(value, bool):
        raise ValueError(f"Invalid config type for {path}: expected int, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"Invalid config value for {path}: must be an int")
        try:
            return int(value.strip())
        except Exception as exc:  # noqa: BLE001
            raise ValueError(f"Invalid config value for {path}: must be an int") from exc
    raise ValueError(f"Invalid config type for {path}: expected int")


def parse_csv_list(value: Any, path: str) -> tuple[str, ...]:
    """Accept a YAML list or a comma-separated string (the FEATURES env convention)."""

    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValueError(f"Invalid config type for {path}: expected list or comma-separated string")

    out: list[str] = []
    for idx, item in enumerate(items):
        if not isinstance(item, str):
            raise ValueError(f"Invalid config type for {path}[{idx}]: expected string")
        name = item.strip()
        if name:
            out.append(name)
    return tuple(out)


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_SCHEMA: Mapping[str, Any] = {
    "strict": None,
    "workspace": {"root": None, "src_dir": None, "test_dir": None},
    "build": {"output_dir": None, "dry_run": None},
    "registry": {"url": None, "push": None},
    "batch": {"parallel": None, "max_workers": None, "features": None, "skip_features": None},
    "logging": {"level": None, "log_dir": None},
    "collection": {"output_path": None, "source": None},
}


def _collect_unknown_keys(mapping: Any, schema: Mapping[str, Any], *, prefix: str) -> list[str]:
    if not isinstance(mapping, Mapping):
        return []
    unknown: list[str] = []
    for key, value in mapping.items():
        if not isinstance(key, str):
            continue
        dotted = f"{prefix}.{key}" if prefix else key
        if key not in schema:
            unknown.append(dotted)
            continue
        subschema = schema.get(key)
        if isinstance(subschema, Mapping):
            unknown.extend(_collect_unknown_keys(value, subschema, prefix=dotted))
    return unknown


@dataclass(frozen=True)
class PipelineConfig:
    workspace_root: str
    src_dir: str = "src"
    test_dir: str = "test"

    output_dir: str = "dist"
    dry_run: bool = False

    registry: str | None = None
    push: bool = False

    parallel: bool = False
    max_workers: int = 4
    features: tuple[str, ...] = ()
    skip_features: tuple[str, ...] = ()

    log_level: str = "INFO"
    log_dir: str | None = None

    collection_path: str = "devcontainer-collection.json"
    collection_source: str = "github"

    @property
    def src_path(self) -> str:
        return self.resolve(self.src_dir)

    @property
    def test_path(self) -> str:
        return self.resolve(self.test_dir)

    @property
    def output_path(self) -> str:
        return self.resolve(self.output_dir)

    def resolve(self, value: str) -> str:
        """Resolve a configured path against the workspace root."""
        expanded = os.path.expandvars(os.path.expanduser(value.strip()))
        if not os.path.isabs(expanded):
            expanded = os.path.join(self.workspace_root, expanded)
        return os.path.abspath(expanded)

    def feature_dir(self, feature_name: str) -> str:
        return os.path.join(self.src_path, feature_name)

    def feature_test_dir(self, feature_name: str) -> str:
        return os.path.join(self.test_path, feature_name)

    @staticmethod
    def from_dict(
        cfg: Mapping[str, Any],
        *,
        base_dir: str | None = None,
    ) -> tuple["PipelineConfig", list[str]]:
        """
        Parse and validate configuration, returning (PipelineConfig, warnings).

        ``workspace.root`` is resolved against ``base_dir`` (defaults to the
        current directory) when relative.

        Raises:
            ValueError: if keys are invalid, or unknown keys exist under ``strict: true``.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        warnings: list[str] = []

        strict_unknown_keys = False
        if "strict" in cfg:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        unknown_keys = sorted(set(_collect_unknown_keys(cfg, _SCHEMA, prefix="")))
        if unknown_keys:
            if strict_unknown_keys:
                raise ValueError("Unknown config keys: " + ", ".join(unknown_keys))
            warnings.extend(f"Unknown config key: {key}" for key in unknown_keys)

        def get_mapping(path: str) -> Mapping[str, Any]:
            cur: Any = cfg.get(path)
            if cur is None:
                return {}
            if not isinstance(cur, Mapping):
                raise ValueError(f"Invalid config type for {path}: expected mapping")
            return cur

        def optional_str(section: Mapping[str, Any], path: str) -> str | None:
            key = path.rsplit(".", 1)[-1]
            cur = section.get(key)
            if cur is None:
                return None
            if not isinstance(cur, str):
                raise ValueError(f"Invalid config type for {path}: expected string")
            return cur.strip() or None

        workspace_cfg = get_mapping("workspace")
        build_cfg = get_mapping("build")
        registry_cfg = get_mapping("registry")
        batch_cfg = get_mapping("batch")
        logging_cfg = get_mapping("logging")
        collection_cfg = get_mapping("collection")

        root = base_dir or os.getcwd()
        root_raw = optional_str(workspace_cfg, "workspace.root")
        if root_raw:
            expanded = os.path.expandvars(os.path.expanduser(root_raw))
            root = expanded if os.path.isabs(expanded) else os.path.join(root, expanded)

        max_workers = parse_int(batch_cfg.get("max_workers", 4), "batch.max_workers")
        if max_workers < 1:
            raise ValueError("Invalid config value for batch.max_workers: must be >= 1")

        log_level = (optional_str(logging_cfg, "logging.level") or "INFO").upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid config value for logging.level: {log_level!r} (expected: {'|'.join(_LOG_LEVELS)})"
            )

        push = parse_bool(registry_cfg.get("push", False), "registry.push")
        registry = optional_str(registry_cfg, "registry.url")
        if push and not registry:
            warnings.append("registry.push is true but registry.url is not set; push will be skipped")

        config = PipelineConfig(
            workspace_root=os.path.abspath(root),
            src_dir=optional_str(workspace_cfg, "workspace.src_dir") or "src",
            test_dir=optional_str(workspace_cfg, "workspace.test_dir") or "test",
            output_dir=optional_str(build_cfg, "build.output_dir") or "dist",
            dry_run=parse_bool(build_cfg.get("dry_run", False), "build.dry_run"),
            registry=registry,
            push=push,
            parallel=parse_bool(batch_cfg.get("parallel", False), "batch.parallel"),
            max_workers=max_workers,
            features=parse_csv_list(batch_cfg.get("features"), "batch.features"),
            skip_features=parse_csv_list(batch_cfg.get("skip_features"), "batch.skip_features"),
            log_level=log_level,
            log_dir=optional_str(logging_cfg, "logging.log_dir"),
            collection_path=(
                optional_str(collection_cfg, "collection.output_path") or "devcontainer-collection.json"
            ),
            collection_source=optional_str(collection_cfg, "collection.source") or "github",
        )
        return config, warnings

    def with_env_overrides(self, environ: Mapping[str, str]) -> "PipelineConfig":
        """
        Apply the build-script environment conventions.

        ``REGISTRY``, ``PUSH`` and ``DRY_RUN`` override the registry/build keys;
        ``FEATURES`` and ``SKIP_FEATURES`` are comma-separated batch selectors.
        Empty variables are ignored.
        """

        updates: dict[str, Any] = {}
        registry = (environ.get("REGISTRY") or "").strip()
        if registry:
            updates["registry"] = registry
        if (environ.get("PUSH") or "").strip():
            updates["push"] = parse_bool(environ["PUSH"], "PUSH")
        if (environ.get("DRY_RUN") or "").strip():
            updates["dry_run"] = parse_bool(environ["DRY_RUN"], "DRY_RUN")
        if (environ.get("FEATURES") or "").strip():
            updates["features"] = parse_csv_list(environ["FEATURES"], "FEATURES")
        if (environ.get("SKIP_FEATURES") or "").strip():
            updates["skip_features"] = parse_csv_list(environ["SKIP_FEATURES"], "SKIP_FEATURES")
        return replace(self, **updates) if updates else self

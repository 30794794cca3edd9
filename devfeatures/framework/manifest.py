from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devfeatures.framework.errors import SchemaError

MANIFEST_FILENAME = "devcontainer-feature.json"
INSTALL_SCRIPT_FILENAME = "install.sh"
README_FILENAME = "README.md"
TEST_SCRIPT_FILENAME = "test.sh"
SCENARIOS_FILENAME = "scenarios.json"

SUPPORTED_OPTION_TYPES: frozenset[str] = frozenset({"string", "boolean"})

# Prefix match: "1.0.0-beta.1" and "1.2.3+build" are accepted.
_SEMVER_RE = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+")


def is_semver(version: str) -> bool:
    return bool(_SEMVER_RE.match(version or ""))


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Mapping):
        # dependsOn is a mapping of feature reference -> options upstream.
        return tuple(str(k) for k in value.keys())
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return (str(value),)


@dataclass(frozen=True)
class OptionSpec:
    name: str
    type: str | None = None
    description: str | None = None
    default: Any = None
    enum: tuple[str, ...] = ()
    proposals: tuple[str, ...] = ()

    @property
    def env_var(self) -> str:
        """Environment variable the install script is expected to read."""
        return self.name.upper()

    @classmethod
    def from_dict(cls, name: str, raw: Any) -> "OptionSpec":
        if not isinstance(raw, Mapping):
            return cls(name=name)
        return cls(
            name=name,
            type=_optional_str(raw.get("type")),
            description=_optional_str(raw.get("description")),
            default=raw.get("default"),
            enum=_str_tuple(raw.get("enum")),
            proposals=_str_tuple(raw.get("proposals")),
        )


@dataclass(frozen=True)
class FeatureManifest:
    """
    Parsed `devcontainer-feature.json`.

    Field accessors are lenient (missing values become ``None`` or empty) so the
    validator can report every problem in one pass. ``raw`` keeps the decoded
    document so downstream records re-emit it unchanged.
    """

    id: str | None
    version: str | None
    name: str | None
    description: str | None
    options: tuple[OptionSpec, ...] = ()
    depends_on: tuple[str, ...] = ()
    installs_after: tuple[str, ...] = ()
    container_env: Mapping[str, str] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FeatureManifest":
        if not isinstance(payload, Mapping):
            raise SchemaError(f"Manifest must be a JSON object, got {type(payload).__name__}")

        raw_options = payload.get("options")
        options: list[OptionSpec] = []
        if isinstance(raw_options, Mapping):
            for option_name, option_raw in raw_options.items():
                options.append(OptionSpec.from_dict(str(option_name), option_raw))

        raw_env = payload.get("containerEnv")
        container_env: dict[str, str] = {}
        if isinstance(raw_env, Mapping):
            container_env = {str(k): "" if v is None else str(v) for k, v in raw_env.items()}

        return cls(
            id=_optional_str(payload.get("id")),
            version=_optional_str(payload.get("version")),
            name=_optional_str(payload.get("name")),
            description=_optional_str(payload.get("description")),
            options=tuple(options),
            depends_on=_str_tuple(payload.get("dependsOn")),
            installs_after=_str_tuple(payload.get("installsAfter")),
            container_env=container_env,
            raw=copy.deepcopy(dict(payload)),
        )

    def option_names(self) -> tuple[str, ...]:
        return tuple(option.name for option in self.options)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.raw))


def load_manifest(path: str | Path) -> FeatureManifest:
    """
    Read and parse a manifest file.

    Raises:
        FileNotFoundError: if the file does not exist.
        SchemaError: if the file is not a JSON object.
    """

    manifest_path = Path(path)
    text = manifest_path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Invalid JSON syntax in {manifest_path.name}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SchemaError(f"{manifest_path.name} must contain a JSON object")
    return FeatureManifest.from_dict(payload)

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from devfeatures.framework.artifacts import atomic_write_json, utc_now_iso8601
from devfeatures.framework.errors import SchemaError
from devfeatures.framework.manifest import MANIFEST_FILENAME, FeatureManifest, load_manifest

logger = logging.getLogger(__name__)

COLLECTION_FILENAME = "devcontainer-collection.json"


@dataclass(frozen=True)
class SourceInformation:
    source: str = "github"
    repository: str | None = None
    ref: str | None = None
    sha: str | None = None
    timestamp: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str], *, source: str = "github") -> "SourceInformation":
        """Fill fields from the GitHub Actions variables when present."""

        def get(name: str) -> str | None:
            value = (environ.get(name) or "").strip()
            return value or None

        return cls(
            source=source,
            repository=get("GITHUB_REPOSITORY"),
            ref=get("GITHUB_REF"),
            sha=get("GITHUB_SHA"),
            timestamp=None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "repository": self.repository,
            "ref": self.ref,
            "sha": self.sha,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CollectionDocument:
    source_information: SourceInformation
    features: tuple[FeatureManifest, ...] = ()

    def feature_ids(self) -> tuple[str | None, ...]:
        return tuple(feature.id for feature in self.features)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceInformation": self.source_information.to_dict(),
            "features": [feature.to_dict() for feature in self.features],
        }


def discover_feature_dirs(src_dir: str | os.PathLike[str]) -> list[Path]:
    """Immediate subdirectories of ``src_dir``, sorted by name."""

    root = Path(src_dir)
    if not root.is_dir():
        return []
    return sorted((entry for entry in root.iterdir() if entry.is_dir()), key=lambda p: p.name)


def aggregate(
    feature_dirs: Iterable[str | os.PathLike[str]],
    source_info: SourceInformation,
) -> CollectionDocument:
    """
    Merge the manifests found in ``feature_dirs`` into one collection, in input order.

    Directories without a manifest are not features and are skipped. Manifests
    that fail to parse are skipped with a warning. Duplicate ids are kept; see
    ``duplicate_ids``.
    """

    features: list[FeatureManifest] = []
    for feature_dir in feature_dirs:
        manifest_path = Path(feature_dir) / MANIFEST_FILENAME
        if not manifest_path.is_file():
            continue
        try:
            manifest = load_manifest(manifest_path)
        except (SchemaError, UnicodeDecodeError) as exc:
            logger.warning("Skipping %s: %s", manifest_path, exc)
            continue
        logger.debug("Adding feature: %s", manifest.id or Path(feature_dir).name)
        features.append(manifest)

    if source_info.timestamp is None:
        source_info = replace(source_info, timestamp=utc_now_iso8601())
    return CollectionDocument(source_information=source_info, features=tuple(features))


def duplicate_ids(document: CollectionDocument) -> list[str]:
    counts = Counter(feature_id for feature_id in document.feature_ids() if feature_id)
    return sorted(feature_id for feature_id, count in counts.items() if count > 1)


def write_collection(document: CollectionDocument, path: str | os.PathLike[str]) -> Path:
    target = Path(path)
    atomic_write_json(target, document.to_dict())
    logger.info("Collection metadata written: %s (%d feature(s))", target, len(document.features))
    return target

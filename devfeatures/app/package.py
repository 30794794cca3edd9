"""Feature packaging: archive, build metadata and run summary.

Every artifact is written under a temporary name and renamed into place, so an
interrupted run leaves either the previous artifact or nothing under the final
name. Re-running with the same inputs overwrites each artifact by filename.
"""

from __future__ import annotations

import gzip
import logging
import os
import socket
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devfeatures.framework.artifacts import atomic_output, atomic_write_json, utc_now_iso8601
from devfeatures.framework.errors import PackagingError, SchemaError, StructuralError
from devfeatures.framework.manifest import (
    INSTALL_SCRIPT_FILENAME,
    MANIFEST_FILENAME,
    README_FILENAME,
    FeatureManifest,
    load_manifest,
)

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "feature-"
ARCHIVE_SUFFIX = ".tgz"
SUMMARY_FILENAME = "build-summary.json"

# Fixed archive member mtime so identical trees produce identical bytes.
_ARCHIVE_MTIME = 0


def archive_filename(feature_id: str) -> str:
    return f"{ARCHIVE_PREFIX}{feature_id}{ARCHIVE_SUFFIX}"


def metadata_filename(feature_id: str) -> str:
    return f"{feature_id}-metadata.json"


@dataclass(frozen=True)
class PackageOptions:
    dry_run: bool = False
    push: bool = False
    registry: str | None = None
    workspace: str | None = None
    summary_name: str = SUMMARY_FILENAME
    build_host: str | None = None


@dataclass(frozen=True)
class RegistryTarget:
    """Where a feature would be published. Nothing here performs network I/O."""

    registry: str
    reference: str
    publish_command: tuple[str, ...]

    @classmethod
    def compose(cls, registry: str, feature_id: str, version: str, feature_dir: str) -> "RegistryTarget":
        namespace = registry.rstrip("/")
        return cls(
            registry=namespace,
            reference=f"{namespace}/{feature_id}:{version}",
            publish_command=("devcontainer", "features", "publish", "--namespace", namespace, feature_dir),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "registry": self.registry,
            "reference": self.reference,
            "publish_command": list(self.publish_command),
        }


@dataclass(frozen=True)
class BuildInfo:
    tarball: str
    date: str
    host: str

    def to_dict(self) -> dict[str, str]:
        return {"tarball": self.tarball, "date": self.date, "host": self.host}


@dataclass(frozen=True)
class BuildMetadata:
    """
    The manifest document plus a ``build`` record.

    Only ``manifest`` and ``build`` are serialized; the remaining fields describe
    where this run put its artifacts.
    """

    manifest: FeatureManifest
    build: BuildInfo
    archive_path: str = field(default="", compare=False)
    metadata_path: str = field(default="", compare=False)
    summary_path: str = field(default="", compare=False)
    entries: tuple[str, ...] = field(default=(), compare=False)
    warnings: tuple[str, ...] = field(default=(), compare=False)
    registry_target: RegistryTarget | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        payload = self.manifest.to_dict()
        payload["build"] = self.build.to_dict()
        return payload


@dataclass(frozen=True)
class PackagePlan:
    """What a dry run would produce."""

    feature_id: str
    version: str
    output_dir: str
    archive_path: str
    metadata_path: str
    summary_path: str
    files: tuple[str, ...]
    registry_target: RegistryTarget | None = None
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": True,
            "feature": {"id": self.feature_id, "version": self.version},
            "output": self.output_dir,
            "archive": self.archive_path,
            "metadata": self.metadata_path,
            "summary": self.summary_path,
            "files": list(self.files),
            "registry": self.registry_target.to_dict() if self.registry_target else None,
            "warnings": list(self.warnings),
        }


def load_packageable_manifest(feature_dir: Path, feature_name: str) -> FeatureManifest:
    """
    Re-check the minimal identity invariants packaging depends on.

    Raises:
        StructuralError: feature directory, manifest or install script missing.
        SchemaError: manifest unparseable, id missing/mismatched, or version missing.
    """

    if not feature_dir.is_dir():
        raise StructuralError(f"Feature directory does not exist: {feature_dir}")
    manifest_path = feature_dir / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise StructuralError(f"Missing required file: {MANIFEST_FILENAME}")
    if not (feature_dir / INSTALL_SCRIPT_FILENAME).is_file():
        raise StructuralError(f"Missing required file: {INSTALL_SCRIPT_FILENAME}")

    manifest = load_manifest(manifest_path)
    if not manifest.id:
        raise SchemaError(f"Feature id is not set in {MANIFEST_FILENAME}")
    if not manifest.version:
        raise SchemaError(f"Feature version is not set in {MANIFEST_FILENAME}")
    if manifest.id != feature_name:
        raise SchemaError(f"Feature id '{manifest.id}' does not match directory name '{feature_name}'")
    return manifest


def default_workspace(feature_dir: Path) -> str:
    """The repository holding `<workspace>/src/<name>`, else the feature's parent."""
    resolved = feature_dir.resolve()
    if resolved.parent.name == "src":
        return str(resolved.parent.parent)
    return str(resolved.parent)


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True


def collect_entries(feature_dir: Path, *, exclude: Path | None = None) -> list[tuple[Path, str]]:
    """
    List every file and directory under ``feature_dir`` as ``(path, arcname)``.

    Arcnames are POSIX paths relative to ``feature_dir``, sorted. ``exclude``
    (typically an output directory nested in the feature) is skipped entirely.
    """

    root = feature_dir.resolve()
    excluded = exclude.resolve() if exclude is not None else None
    entries: list[tuple[Path, str]] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept: list[str] = []
        for name in sorted(dirnames):
            candidate = current / name
            if excluded is not None and _is_within(candidate.resolve(), excluded):
                continue
            kept.append(name)
            entries.append((candidate, candidate.relative_to(root).as_posix()))
        dirnames[:] = kept
        for name in sorted(filenames):
            candidate = current / name
            if excluded is not None and _is_within(candidate.resolve(), excluded):
                continue
            entries.append((candidate, candidate.relative_to(root).as_posix()))
    entries.sort(key=lambda item: item[1])
    return entries


def _normalize_member(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    info.mtime = _ARCHIVE_MTIME
    return info


def write_archive(archive_path: Path, entries: list[tuple[Path, str]]) -> None:
    with open(archive_path, "wb") as raw:
        # filename="" keeps the temporary file name out of the gzip header.
        with gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as compressed:
            with tarfile.open(fileobj=compressed, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for path, arcname in entries:
                    tar.add(str(path), arcname=arcname, recursive=False, filter=_normalize_member)


def list_archive(archive_path: str | os.PathLike[str]) -> list[str]:
    try:
        with tarfile.open(archive_path, mode="r:gz") as tar:
            return tar.getnames()
    except (tarfile.TarError, OSError) as exc:
        raise PackagingError(f"Cannot read archive {archive_path}: {exc}") from exc


def verify_archive_entries(names: list[str]) -> list[str]:
    """
    Check a listing for the files every feature archive needs.

    Returns advisory warnings; raises PackagingError when a required file is absent.
    """

    normalized = {name[2:] if name.startswith("./") else name for name in names}
    for required in (MANIFEST_FILENAME, INSTALL_SCRIPT_FILENAME):
        if required not in normalized:
            raise PackagingError(f"{required} missing from archive")
    warnings: list[str] = []
    if README_FILENAME not in normalized:
        warnings.append(f"{README_FILENAME} not found in archive (recommended)")
    return warnings


def _registry_target(
    options: PackageOptions, manifest: FeatureManifest, feature_dir: Path, warnings: list[str]
) -> RegistryTarget | None:
    if not options.push:
        return None
    if not options.registry:
        warnings.append("Push requested but no registry is set; skipping registry push")
        return None
    assert manifest.id is not None and manifest.version is not None
    return RegistryTarget.compose(options.registry, manifest.id, manifest.version, str(feature_dir))


def package(
    feature_dir: str | os.PathLike[str],
    feature_name: str,
    output_dir: str | os.PathLike[str],
    options: PackageOptions | None = None,
) -> BuildMetadata | PackagePlan:
    """
    Package one feature into ``output_dir``.

    Produces ``feature-<id>.tgz``, ``<id>-metadata.json`` and the run summary.
    With ``options.dry_run`` the same preconditions are checked and a
    ``PackagePlan`` is returned without touching the filesystem.

    Raises:
        StructuralError, SchemaError: preconditions failed.
        PackagingError: output_dir is the feature directory, or the
            written archive failed verification.
    """

    opts = options or PackageOptions()
    root = Path(feature_dir)
    out = Path(output_dir).resolve()
    manifest = load_packageable_manifest(root, feature_name)
    if out == root.resolve():
        raise PackagingError(f"Output directory must not be the feature directory itself: {out}")
    feature_id = manifest.id
    version = manifest.version
    assert feature_id is not None and version is not None

    archive_name = archive_filename(feature_id)
    meta_name = metadata_filename(feature_id)
    archive_path = out / archive_name
    metadata_path = out / meta_name
    summary_path = out / opts.summary_name

    logger.info("Packaging feature %s v%s (%s)", feature_id, version, manifest.name or "")
    entries = collect_entries(root, exclude=out)
    warnings: list[str] = []
    target = _registry_target(opts, manifest, root, warnings)

    if opts.dry_run:
        logger.info("DRY RUN: would create archive %s", archive_path)
        logger.info("DRY RUN: would generate metadata %s", metadata_path)
        if target is not None:
            logger.info("DRY RUN: would push to registry %s", target.reference)
        for message in warnings:
            logger.warning(message)
        return PackagePlan(
            feature_id=feature_id,
            version=version,
            output_dir=str(out),
            archive_path=str(archive_path),
            metadata_path=str(metadata_path),
            summary_path=str(summary_path),
            files=tuple(arcname for _path, arcname in entries),
            registry_target=target,
            warnings=tuple(warnings),
        )

    out.mkdir(parents=True, exist_ok=True)

    with atomic_output(archive_path) as temp_archive:
        try:
            write_archive(temp_archive, entries)
        except OSError as exc:
            raise PackagingError(f"Failed to create archive {archive_path}: {exc}") from exc
        names = list_archive(temp_archive)
        warnings.extend(verify_archive_entries(names))
    logger.info("Archive created: %s (%d bytes)", archive_path, archive_path.stat().st_size)

    build_date = utc_now_iso8601()
    metadata = BuildMetadata(
        manifest=manifest,
        build=BuildInfo(
            tarball=archive_name,
            date=build_date,
            host=opts.build_host or socket.gethostname(),
        ),
        archive_path=str(archive_path),
        metadata_path=str(metadata_path),
        summary_path=str(summary_path),
        entries=tuple(names),
        warnings=tuple(warnings),
        registry_target=target,
    )
    atomic_write_json(metadata_path, metadata.to_dict())
    logger.info("Metadata generated: %s", metadata_path)

    if target is not None:
        logger.info("Registry reference: %s", target.reference)
        logger.info("Publish command: %s", " ".join(target.publish_command))

    atomic_write_json(
        summary_path,
        build_summary(
            manifest,
            build_date=build_date,
            workspace=opts.workspace or default_workspace(root),
            output_dir=str(out),
            tarball=archive_name,
            metadata=meta_name,
            push_requested=opts.push,
            registry=opts.registry,
        ),
    )
    logger.info("Build summary generated: %s", summary_path)

    for message in warnings:
        logger.warning(message)
    return metadata


def build_summary(
    manifest: FeatureManifest,
    *,
    build_date: str,
    workspace: str,
    output_dir: str,
    tarball: str,
    metadata: str,
    push_requested: bool,
    registry: str | None,
) -> dict[str, Any]:
    return {
        "feature": {
            "id": manifest.id,
            "version": manifest.version,
            "name": manifest.name,
        },
        "build": {
            "date": build_date,
            "workspace": workspace,
            "output": output_dir,
            "tarball": tarball,
            "metadata": metadata,
        },
        "registry": {
            "push_requested": push_requested,
            "registry": registry,
        },
    }

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping


def _read_umask() -> int:
    current = os.umask(0)
    os.umask(current)
    return current


# Queried once at import; os.umask can only be read by setting it.
_UMASK = _read_umask()
ARTIFACT_MODE = 0o644 & ~_UMASK


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@contextmanager
def atomic_output(path: Path) -> Iterator[Path]:
    """
    Yield a temporary sibling of ``path`` and rename it into place on success.

    The temporary file is removed if the body raises, so only complete files ever
    appear under the final name.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name + ".", suffix=".tmp")
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        yield temp_path
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    # mkstemp creates 0600 files.
    os.chmod(temp_path, ARTIFACT_MODE)
    os.replace(temp_path, path)


def atomic_write_text(path: Path, content: str) -> None:
    with atomic_output(path) as temp_path:
        temp_path.write_text(content, encoding="utf-8", newline="")


def atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
    atomic_write_text(path, json.dumps(dict(payload), ensure_ascii=False, indent=2) + "\n")

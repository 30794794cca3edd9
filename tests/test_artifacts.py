import json
import os
import stat

import pytest

from devfeatures.framework.artifacts import ARTIFACT_MODE, atomic_output, atomic_write_json


def _current_umask() -> int:
    current = os.umask(0)
    os.umask(current)
    return current


def test_artifact_mode_honours_umask():
    assert ARTIFACT_MODE == 0o644 & ~_current_umask()


def test_atomic_write_json_uses_artifact_mode(tmp_path):
    target = tmp_path / "out" / "hello-world-metadata.json"

    atomic_write_json(target, {"id": "hello-world"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"id": "hello-world"}
    assert stat.S_IMODE(target.stat().st_mode) == ARTIFACT_MODE
    assert [p.name for p in target.parent.iterdir()] == ["hello-world-metadata.json"]


def test_atomic_output_leaves_nothing_on_failure(tmp_path):
    target = tmp_path / "feature-x.tgz"

    with pytest.raises(RuntimeError):
        with atomic_output(target) as temp_path:
            temp_path.write_bytes(b"partial")
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []

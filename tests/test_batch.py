import threading
import time
from dataclasses import replace

import pytest

from conftest import write_feature
from devfeatures.app.batch import (
    available_features,
    build_many,
    run_per_feature,
    select_features,
    validate_many,
)
from devfeatures.framework.config import PipelineConfig
from devfeatures.framework.errors import StructuralError


def _config(workspace, **overrides) -> PipelineConfig:
    config, _ = PipelineConfig.from_dict({}, base_dir=str(workspace))
    return replace(config, **overrides) if overrides else config


def test_select_features_include_keeps_requested_order():
    assert select_features(["a", "b", "c"], include=["c", "a"]) == ["c", "a"]


def test_select_features_skip_applies_after_include():
    assert select_features(["a", "b", "c"], skip=["b"]) == ["a", "c"]
    assert select_features(["a", "b", "c"], include=["a", "b"], skip=["a"]) == ["b"]


def test_select_features_unknown_include_raises():
    with pytest.raises(StructuralError, match="Feature directory not found: ghost"):
        select_features(["a"], include=["a", "ghost"])


def test_run_per_feature_parallel_preserves_input_order():
    seen_threads = set()
    lock = threading.Lock()

    def work(name: str) -> str:
        with lock:
            seen_threads.add(threading.current_thread().name)
        time.sleep(0.05 if name == "first" else 0)
        return name.upper()

    names = ["first", "second", "third", "fourth"]
    results = run_per_feature(names, work, parallel=True, max_workers=4)

    assert results == ["FIRST", "SECOND", "THIRD", "FOURTH"]
    assert all(name.startswith("devfeatures") for name in seen_threads)


def test_available_features_lists_src(workspace):
    write_feature(workspace, "b")
    write_feature(workspace, "a")

    assert available_features(_config(workspace)) == ["a", "b"]


def test_validate_many_matches_sequential(workspace):
    write_feature(workspace, "a")
    write_feature(workspace, "b", manifest={"id": "x", "version": "1.0.0", "name": "B"})

    sequential = validate_many(_config(workspace), ["a", "b"])
    parallel = validate_many(_config(workspace, parallel=True), ["a", "b"])

    assert sequential == parallel
    assert [r.feature for r in sequential] == ["a", "b"]
    assert sequential[0].ok and not sequential[1].ok


def test_build_many_gates_packaging_on_validation(workspace):
    write_feature(workspace, "good")
    write_feature(workspace, "bad", manifest={"id": "good", "version": "1.0.0", "name": "Bad"})

    summary = build_many(_config(workspace, parallel=True), ["good", "bad"])

    dist = workspace / "dist"
    assert summary.failed == ("bad",)
    assert summary.passed == 1
    assert (dist / "feature-good.tgz").is_file()
    assert (dist / "good-build-summary.json").is_file()
    assert not (dist / "bad-build-summary.json").exists()
    payload = summary.to_dict()
    assert payload["features"][0]["archive"] == str(dist.resolve() / "feature-good.tgz")
    assert payload["features"][1]["validation"]["valid"] is False


def test_build_many_skip_validation_surfaces_packaging_error(workspace):
    write_feature(workspace, "bad", manifest={"id": "other", "version": "1.0.0", "name": "Bad"})

    summary = build_many(_config(workspace), ["bad"], skip_validation=True)

    outcome = summary.outcomes[0]
    assert outcome.report is None
    assert outcome.error.startswith("SchemaError: ")
    assert not summary.ok


def test_build_many_dry_run_writes_nothing(workspace):
    write_feature(workspace, "good")

    summary = build_many(_config(workspace, dry_run=True), ["good"])

    assert summary.ok
    assert summary.to_dict()["features"][0]["plan"]["dry_run"] is True
    assert not (workspace / "dist").exists()

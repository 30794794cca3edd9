import json
import logging

from conftest import default_manifest, write_feature
from devfeatures.app.collection import (
    SourceInformation,
    aggregate,
    discover_feature_dirs,
    duplicate_ids,
    write_collection,
)


def _source() -> SourceInformation:
    return SourceInformation(
        repository="example/features",
        ref="refs/heads/main",
        sha="abc123",
        timestamp="2024-01-01T00:00:00Z",
    )


def test_empty_input_yields_empty_collection():
    document = aggregate([], _source())

    assert document.to_dict() == {"sourceInformation": _source().to_dict(), "features": []}


def test_features_keep_input_order_and_full_documents(workspace):
    first = write_feature(workspace, "zeta")
    second = write_feature(workspace, "alpha")

    document = aggregate([first, second], _source())

    assert document.feature_ids() == ("zeta", "alpha")
    assert document.to_dict()["features"] == [default_manifest("zeta"), default_manifest("alpha")]


def test_discovery_is_sorted_and_skips_non_features(workspace):
    write_feature(workspace, "zeta")
    write_feature(workspace, "alpha")
    (workspace / "src" / "notes").mkdir()
    (workspace / "src" / "README.md").write_text("# Features\n", encoding="utf-8")

    dirs = discover_feature_dirs(workspace / "src")
    document = aggregate(dirs, _source())

    assert [d.name for d in dirs] == ["alpha", "notes", "zeta"]
    assert document.feature_ids() == ("alpha", "zeta")


def test_discovery_of_missing_src_dir_is_empty(tmp_path):
    assert discover_feature_dirs(tmp_path / "nope") == []


def test_duplicate_ids_are_kept_and_reported(workspace):
    a = write_feature(workspace, "a", manifest={"id": "same", "version": "1.0.0", "name": "A"})
    b = write_feature(workspace, "b", manifest={"id": "same", "version": "2.0.0", "name": "B"})

    document = aggregate([a, b], _source())

    assert document.feature_ids() == ("same", "same")
    assert duplicate_ids(document) == ["same"]


def test_unparseable_manifest_is_skipped_with_warning(workspace, caplog):
    good = write_feature(workspace, "good")
    bad = write_feature(workspace, "bad", manifest="{ nope")

    with caplog.at_level(logging.WARNING, logger="devfeatures.app.collection"):
        document = aggregate([bad, good], _source())

    assert document.feature_ids() == ("good",)
    assert any("Skipping" in record.getMessage() for record in caplog.records)


def test_missing_timestamp_is_filled():
    document = aggregate([], SourceInformation())

    assert document.source_information.timestamp.endswith("Z")
    assert document.source_information.source == "github"


def test_source_information_from_env():
    info = SourceInformation.from_env(
        {"GITHUB_REPOSITORY": "me/features", "GITHUB_REF": " refs/tags/v1 ", "GITHUB_SHA": ""},
    )

    assert info.repository == "me/features"
    assert info.ref == "refs/tags/v1"
    assert info.sha is None
    assert info.timestamp is None


def test_write_collection_round_trips(workspace, tmp_path):
    document = aggregate([write_feature(workspace, "hello-world")], _source())

    path = write_collection(document, tmp_path / "out" / "devcontainer-collection.json")

    assert json.loads(path.read_text(encoding="utf-8")) == document.to_dict()

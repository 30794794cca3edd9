import os
from pathlib import Path

import pytest

from devfeatures.foundation.config_io import find_repo_root, load_config

ENV_VAR = "TEST_DEVFEATURES_CONFIG"


def test_load_config_base_only(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("build:\n  output_dir: out\n", encoding="utf-8")

    cfg, meta = load_config(config_rel_path=str(tmp_path), env_var=ENV_VAR)

    assert cfg == {"build": {"output_dir": "out"}}
    assert meta["mode"] == "base"
    assert os.path.basename(meta["paths"][0]) == "config.yaml"


def test_load_config_base_plus_local_overlay(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("registry:\n  url: null\n  push: false\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("registry:\n  url: ghcr.io/me/features\n", encoding="utf-8")

    cfg, meta = load_config(config_rel_path=str(tmp_path), env_var=ENV_VAR)

    assert cfg == {"registry": {"url": "ghcr.io/me/features", "push": False}}
    assert meta["mode"] == "base+local"
    assert len(meta["paths"]) == 2


def test_load_config_overlay_type_mismatch_raises(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("batch:\n  features: [a]\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("batch:\n  features:\n    a: 1\n", encoding="utf-8")

    with pytest.raises(ValueError, match=r"Invalid config overlay merge at batch.features"):
        load_config(config_rel_path=str(tmp_path), env_var=ENV_VAR)


def test_load_config_invalid_yaml_raises(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("a: [1, 2\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(config_rel_path=str(tmp_path), env_var=ENV_VAR)


def test_load_config_env_var_skips_overlay(tmp_path, monkeypatch):
    explicit = tmp_path / "ci.yaml"
    explicit.write_text("build:\n  dry_run: true\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("build:\n  dry_run: false\n", encoding="utf-8")
    monkeypatch.setenv(ENV_VAR, str(explicit))

    cfg, meta = load_config(env_var=ENV_VAR)

    assert cfg == {"build": {"dry_run": True}}
    assert meta["mode"] == "env"
    assert meta["paths"] == [str(explicit.resolve())]


def test_load_config_missing_base_returns_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)

    cfg, meta = load_config(config_rel_path=str(tmp_path / "missing"), env_var=ENV_VAR)

    assert cfg == {}
    assert meta["mode"] == "defaults"


def test_load_config_missing_base_required_raises(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)

    with pytest.raises(FileNotFoundError, match="Missing base config file"):
        load_config(config_rel_path=str(tmp_path / "missing"), env_var=ENV_VAR, required=True)


def test_load_config_finds_repo_root_from_subdir(tmp_path, monkeypatch):
    repo = tmp_path / "features-repo"
    (repo / "config").mkdir(parents=True)
    (repo / "src" / "hello-world").mkdir(parents=True)
    (repo / "pyproject.toml").write_text("", encoding="utf-8")
    (repo / "config" / "config.yaml").write_text("strict: true\n", encoding="utf-8")
    monkeypatch.delenv(ENV_VAR, raising=False)
    monkeypatch.chdir(repo / "src" / "hello-world")

    cfg, meta = load_config(env_var=ENV_VAR)

    assert cfg == {"strict": True}
    assert Path(meta["paths"][0]).resolve() == (repo / "config" / "config.yaml").resolve()
    assert Path(str(meta["repo_root"])).resolve() == repo.resolve()


def test_find_repo_root_accepts_git_marker(tmp_path):
    (tmp_path / ".git").mkdir()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert Path(find_repo_root(nested)) == tmp_path.resolve()

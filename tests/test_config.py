import json

import pytest
import yaml

from whisper_provision import config


def test_defaults(cfg, tmp_path):
    assert cfg.get("source.url") == "https://github.com/ggml-org/whisper.cpp"
    assert cfg.get("build.jobs_fraction") == 0.75
    assert cfg.source_dir == tmp_path / "lib" / "whisper.cpp"
    assert cfg.stable_entry == tmp_path / "lib" / "whisper.cpp" / "main"
    assert [rel for rel, _ in cfg.candidate_paths()] == ["build/bin/whisper-cli", "build/bin/main"]
    assert cfg.get("missing.key", "fallback") == "fallback"


def test_yaml_file_in_cwd_is_merged(cfg, tmp_path):
    (tmp_path / "whisper-provision.yaml").write_text(
        "build:\n  min_jobs: 2\npublish:\n  entry: whisper\n", encoding="utf-8")

    loaded = config.load()

    assert loaded.get("build.min_jobs") == 2
    assert loaded.get("build.tool") == "make"
    assert loaded.stable_entry.name == "whisper"
    assert loaded.path == tmp_path / "whisper-provision.yaml"


def test_env_var_and_overrides(cfg, tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"build": {"jobs": "3"}}), encoding="utf-8")
    monkeypatch.setenv(config.ENV_VAR, str(path))

    loaded = config.load(overrides={"build": {"min_jobs": 2}})

    assert loaded.get("build.jobs") == 3
    assert loaded.get("build.min_jobs") == 2


def test_validation(cfg):
    with pytest.raises(ValueError):
        config.load(overrides={"build": {"min_jobs": 0}}, fatal=True)
    with pytest.raises(ValueError):
        config.load(overrides={"build": {"on_failure": "explode"}}, fatal=True)
    with pytest.raises(ValueError):
        config.load(overrides={"bogus": {}}, fatal=True)
    ok, issues = config.validate_config(config.load(overrides={"build": {"candidates": []}}))
    assert not ok
    assert "build.candidates must be a non-empty list" in issues


def test_human_size():
    assert config._human_size_to_bytes("10M") == 10 * 1024 * 1024
    assert config._human_size_to_bytes("512KB") == 512 * 1024
    assert config._human_size_to_bytes(42) == 42
    assert config._human_size_to_bytes("lots") is None


def test_save_writes_only_overrides(cfg, tmp_path):
    loaded = config.load(overrides={"build": {"min_jobs": 2}})
    out = config.save(str(tmp_path / "saved.yaml"), loaded)

    data = yaml.safe_load(out.read_text(encoding="utf-8"))

    assert data["build"] == {"min_jobs": 2}
    assert "source" not in data

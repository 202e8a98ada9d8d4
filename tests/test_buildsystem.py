"""Tests for the build phase."""

from whisper_provision import buildsystem, config, errors


def _populate(cfg):
    cfg.source_dir.mkdir(parents=True, exist_ok=True)
    (cfg.source_dir / "Makefile").write_text("all:\n", encoding="utf-8")


def test_existing_artifact_skips_build(cfg, runner, make_exe):
    _populate(cfg)
    make_exe(cfg.source_dir / "build" / "bin" / "main")

    res = buildsystem.build(cfg, platform="linux")

    assert res["ok"] is True
    assert res["skipped"] is True
    assert runner.calls == []


def test_build_invokes_make_with_jobs_in_source_dir(cfg, runner):
    _populate(cfg)

    res = buildsystem.build(cfg, platform="linux", cpu_count=8)

    assert res["ok"] is True
    assert res["skipped"] is False
    assert res["jobs"] == 6
    make_calls = [(c, cwd) for c, cwd in runner.calls if c[0] == "make"]
    assert make_calls == [(["make", "-j6"], str(cfg.source_dir))]
    assert (cfg.source_dir / "build" / "bin" / "whisper-cli").exists()


def test_min_jobs_bound(tmp_path, runner):
    cfg = config.load(overrides={"paths": {"root": str(tmp_path)}, "build": {"min_jobs": 2}})
    _populate(cfg)

    res = buildsystem.build(cfg, platform="linux", cpu_count=1)

    assert res["command"] == ["make", "-j2"]


def test_explicit_jobs_override(tmp_path, runner):
    cfg = config.load(overrides={"paths": {"root": str(tmp_path)}, "build": {"jobs": 5}})
    assert buildsystem.resolve_jobs(cfg, cpu_count=64) == 5


def test_missing_toolchain(cfg, runner):
    _populate(cfg)
    runner.tool_present = False

    res = buildsystem.build(cfg, platform="darwin")

    assert res["ok"] is False
    assert res["error"] == errors.MISSING_TOOLCHAIN
    assert any("xcode-select --install" in line for line in res["remedy"])
    assert runner.commands("make") == []


def test_build_failure_carries_manual_command(cfg, runner):
    _populate(cfg)
    runner.make_rc = 2

    res = buildsystem.build(cfg, platform="linux")

    assert res["ok"] is False
    assert res["error"] == errors.BUILD_FAILURE
    assert res["rc"] == 2
    assert res["remedy"] == ["cd lib/whisper.cpp && make"]


def test_check_source_missing_and_empty(cfg):
    res = buildsystem.check_source(cfg)
    assert res["error"] == errors.MISSING_SOURCE

    cfg.source_dir.mkdir(parents=True)
    (cfg.source_dir / ".git").mkdir()
    (cfg.source_dir / ".gitkeep").write_text("", encoding="utf-8")
    res = buildsystem.check_source(cfg)
    assert res["error"] == errors.MISSING_SOURCE
    assert "empty" in res["detail"]

    (cfg.source_dir / "Makefile").write_text("all:\n", encoding="utf-8")
    assert buildsystem.check_source(cfg)["ok"] is True


def test_find_artifacts_preference_order(cfg, make_exe):
    make_exe(cfg.source_dir / "build" / "bin" / "main")
    make_exe(cfg.source_dir / "build" / "bin" / "whisper-cli")

    found = buildsystem.find_artifacts(cfg)

    assert [rel for rel, _ in found] == ["build/bin/whisper-cli", "build/bin/main"]


def test_prepare_runs_commands_from_root(tmp_path, runner):
    cfg = config.load(overrides={"paths": {"root": str(tmp_path)}, "prepare": {"commands": ["tsc --build"]}})

    res = buildsystem.prepare(cfg)

    assert res["ok"] is True
    assert runner.calls == [(["tsc", "--build"], str(tmp_path))]


def test_dry_run_build_does_not_run_make(cfg, runner):
    _populate(cfg)

    res = buildsystem.build(cfg, dry_run=True, platform="linux", cpu_count=4)

    assert res["dry_run"] is True
    assert res["command"] == ["make", "-j3"]
    assert runner.commands("make") == []

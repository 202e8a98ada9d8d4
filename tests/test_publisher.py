"""Tests for the stable entry state machine."""

import os

import pytest

from whisper_provision import config, errors, publisher

CLI_REL = os.path.join("build", "bin", "whisper-cli")
MAIN_REL = os.path.join("build", "bin", "main")


@pytest.fixture
def built(cfg, make_exe):
    cli = make_exe(cfg.source_dir / "build" / "bin" / "whisper-cli", b"new-cli")
    old = make_exe(cfg.source_dir / "build" / "bin" / "main", b"old-main")
    return cli, old


def test_prefers_newer_candidate(cfg, built):
    res = publisher.publish(cfg, platform="linux")

    assert res["ok"] is True
    assert res["method"] == "symlink"
    assert res["target"] == "build/bin/whisper-cli"
    entry = cfg.stable_entry
    assert entry.is_symlink()
    assert os.readlink(entry) == CLI_REL
    assert entry.read_bytes() == b"new-cli"


def test_falls_back_to_deprecated_name(cfg, make_exe):
    make_exe(cfg.source_dir / "build" / "bin" / "main", b"old-main")

    res = publisher.publish(cfg, platform="linux")

    assert res["target"] == "build/bin/main"
    assert os.readlink(cfg.stable_entry) == MAIN_REL


def test_symlink_failure_copies_bytes(cfg, built, monkeypatch):
    def no_links(*a, **k):
        raise OSError("symlinks not supported")
    monkeypatch.setattr(publisher.os, "symlink", no_links)

    res = publisher.publish(cfg, platform="linux")

    assert res["method"] == "copy"
    entry = cfg.stable_entry
    assert not entry.is_symlink()
    assert entry.read_bytes() == built[0].read_bytes()
    assert os.access(entry, os.X_OK)
    assert sorted(p.name for p in cfg.source_dir.iterdir()) == ["build"]


def test_windows_always_copies(cfg, built, monkeypatch):
    def fail(*a, **k):
        raise AssertionError("symlink must not be attempted on windows")
    monkeypatch.setattr(publisher.os, "symlink", fail)

    res = publisher.publish(cfg, platform="win32")

    assert res["method"] == "copy"
    assert cfg.stable_entry.read_bytes() == b"new-cli"


def test_force_copy_setting(tmp_path, make_exe):
    cfg = config.load(overrides={"paths": {"root": str(tmp_path)}, "publish": {"force_copy": True}})
    make_exe(cfg.source_dir / "build" / "bin" / "whisper-cli", b"x")

    res = publisher.publish(cfg, platform="linux")

    assert res["method"] == "copy"


def test_directory_entry_is_left_untouched(cfg, built):
    entry = cfg.stable_entry
    entry.mkdir()
    (entry / "keep.txt").write_text("user data", encoding="utf-8")

    for _ in range(2):
        res = publisher.publish(cfg, platform="linux")
        assert res["ok"] is True
        assert res["created"] is False
        assert res["state"] == "exists"

    assert entry.is_dir()
    assert (entry / "keep.txt").read_text(encoding="utf-8") == "user data"


def test_stale_file_is_replaced(cfg, built):
    cfg.stable_entry.write_bytes(b"stale")

    res = publisher.publish(cfg, platform="linux")

    assert res["created"] is True
    assert cfg.stable_entry.is_symlink()
    assert cfg.stable_entry.read_bytes() == b"new-cli"


def test_stale_and_dangling_symlink_is_replaced(cfg, built):
    os.symlink("build/bin/gone", cfg.stable_entry)

    res = publisher.publish(cfg, platform="linux")

    assert res["created"] is True
    assert os.readlink(cfg.stable_entry) == CLI_REL


def test_repeated_publish_is_idempotent(cfg, built):
    first = publisher.publish(cfg, platform="linux")
    second = publisher.publish(cfg, platform="linux")

    assert first["target"] == second["target"]
    assert os.readlink(cfg.stable_entry) == CLI_REL


def test_no_candidate_is_a_warning(cfg):
    cfg.source_dir.mkdir(parents=True)

    res = publisher.publish(cfg, platform="linux")

    assert res["ok"] is True
    assert res["error"] == errors.PUBLISH_WARNING
    assert res["created"] is False
    assert publisher.entry_kind(cfg.stable_entry) == publisher.ABSENT


def test_failed_copy_is_a_warning(cfg, built, monkeypatch):
    def no_links(*a, **k):
        raise OSError("symlinks not supported")
    monkeypatch.setattr(publisher.os, "symlink", no_links)

    def broken_copy(src, dst, *a, **k):
        with open(dst, "wb") as fh:
            fh.write(b"par")
        raise OSError("disk full")
    monkeypatch.setattr(publisher.shutil, "copy2", broken_copy)

    res = publisher.publish(cfg, platform="linux")

    assert res["ok"] is True
    assert res["error"] == errors.PUBLISH_WARNING
    assert publisher.entry_kind(cfg.stable_entry) == publisher.ABSENT
    assert not (cfg.source_dir / "main.tmp").exists()


def test_copy_ignores_leftover_temp_directory(cfg, built):
    leftover = cfg.source_dir / "main.tmp"
    leftover.mkdir()

    res = publisher.publish(cfg, platform="win32")

    assert res["method"] == "copy"
    assert publisher.entry_kind(cfg.stable_entry) == publisher.FILE
    assert cfg.stable_entry.read_bytes() == b"new-cli"
    assert leftover.is_dir() and not any(leftover.iterdir())


def test_dry_run_keeps_stale_entry(cfg, built):
    cfg.stable_entry.write_bytes(b"stale")

    res = publisher.publish(cfg, dry_run=True, platform="linux")

    assert res["dry_run"] is True
    assert cfg.stable_entry.read_bytes() == b"stale"

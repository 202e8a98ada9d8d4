from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

import pytest

from whisper_provision import config


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root = logging.getLogger("whisper_provision")
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()


@pytest.fixture
def cfg(tmp_path: Path, monkeypatch):
    """Config rooted in a sandbox; no user or cwd config files leak in."""
    monkeypatch.delenv(config.ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return config.load(overrides={"paths": {"root": str(tmp_path)}})


def make_executable(path: Path, payload: bytes = b"#!/bin/sh\necho whisper\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    os.chmod(path, 0o755)
    return path


class FakeRunner:
    """Stands in for subprocess.run; records calls and simulates git/make/which."""

    def __init__(self, tool_present: bool = True, clone_rc: int = 0, make_rc: int = 0,
                 make_outputs=("build/bin/whisper-cli",), other_rc: int = 0):
        self.calls = []
        self.tool_present = tool_present
        self.clone_rc = clone_rc
        self.make_rc = make_rc
        self.make_outputs = make_outputs
        self.other_rc = other_rc

    def __call__(self, cmd, cwd=None, **kwargs):
        self.calls.append((list(cmd), cwd))
        rc = 0
        if cmd[0] in ("which", "where"):
            rc = 0 if self.tool_present else 1
        elif cmd[:2] == ["git", "clone"]:
            rc = self.clone_rc
            if rc == 0:
                dest = Path(cwd) / cmd[-1]
                dest.mkdir(parents=True, exist_ok=True)
                (dest / "Makefile").write_text("all:\n", encoding="utf-8")
                (dest / ".git").mkdir(exist_ok=True)
        elif cmd[0] == "make":
            rc = self.make_rc
            if rc == 0:
                for rel in self.make_outputs:
                    make_executable(Path(cwd) / rel)
        else:
            rc = self.other_rc
        return subprocess.CompletedProcess(cmd, rc)

    def commands(self, name):
        return [c for c, _ in self.calls if c[0] == name]


@pytest.fixture
def make_exe():
    return make_executable


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake

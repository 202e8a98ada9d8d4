# whisper_provision/buildsystem.py
# -*- coding: utf-8 -*-
"""
buildsystem.py - Build phase for the native source tree

API:
  check_source(cfg)  -> stage result (MissingSource when the tree is absent/empty)
  find_artifacts(cfg) -> [(relpath, path), ...] existing candidates, most preferred first
  build(cfg, dry_run=False) -> stage result
  prepare(cfg, dry_run=False) -> stage result for the configured pre-build commands

Result:
  dict {
    "ok": True/False,
    "stage": "source" | "build" | "prepare",
    "error": "MissingSource|MissingToolchain|BuildFailure|PrepareFailure" (on failure),
    "remedy": [...],   # manual commands
    ...
  }

Behaviour:
  - Build is idempotent: an existing candidate artifact means the tool is not invoked.
  - Tool output is streamed to the inherited stdout/stderr, never buffered.
"""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from whisper_provision import errors, toolchain
from whisper_provision.config import Config, get_config
from whisper_provision.fetcher import display_path, list_entries
from whisper_provision.logging import get_logger

logger = get_logger("buildsystem")

# --- helpers ---
def _run_streaming(cmd: List[str], cwd: Path) -> int:
    """Run cmd with inherited stdio so long compilations stay visible. Returns rc."""
    logger.debug("RUN: %s (cwd=%s)", " ".join(cmd), cwd)
    proc = subprocess.run(cmd, cwd=str(cwd))
    return proc.returncode

def build_command(cfg: Config, jobs: int) -> List[str]:
    return [cfg.get("build.tool", "make"), f"-j{jobs}"]

def resolve_jobs(cfg: Config, cpu_count: Optional[int] = None) -> int:
    explicit = cfg.get("build.jobs")
    if explicit:
        return max(1, int(explicit))
    return toolchain.compute_jobs(cpu_count,
                                  fraction=cfg.get("build.jobs_fraction", toolchain.JOBS_FRACTION),
                                  minimum=cfg.get("build.min_jobs", 1))

def find_artifacts(cfg: Config) -> List[Tuple[str, Path]]:
    return [(rel, p) for rel, p in cfg.candidate_paths() if p.exists()]

def is_built(cfg: Config) -> bool:
    return bool(find_artifacts(cfg))

def manual_build_remedy(cfg: Config) -> List[str]:
    return [f"cd {display_path(cfg, cfg.source_dir)} && {cfg.get('build.tool', 'make')}"]

# --- source check ---
def check_source(cfg: Optional[Config] = None) -> Dict[str, Any]:
    cfg = cfg or get_config()
    src = cfg.source_dir
    shown = display_path(cfg, src)
    remedy = ["Please run \"whisper-provision fetch\" first to clone the source tree."]
    if not src.is_dir():
        return errors.failure("source", errors.MISSING_SOURCE, f"{shown} directory not found!", remedy=remedy)
    if not list_entries(src, cfg.get("source.ignore_when_checking") or []):
        return errors.failure("source", errors.MISSING_SOURCE, f"{shown} directory is empty!", remedy=remedy)
    return errors.ok("source", path=str(src))

# --- build ---
def build(cfg: Optional[Config] = None, dry_run: bool = False, platform: Optional[str] = None,
          cpu_count: Optional[int] = None) -> Dict[str, Any]:
    """
    Compile the source tree unless a candidate artifact already exists.
    Failure kinds: MissingToolchain, BuildFailure. The caller applies the failure policy.
    """
    cfg = cfg or get_config()
    src = cfg.source_dir
    tool = cfg.get("build.tool", "make")

    existing = find_artifacts(cfg)
    if existing:
        logger.info("%s is already compiled (%s)", display_path(cfg, src), existing[0][0])
        return errors.ok("build", skipped=True, artifact=str(existing[0][1]))

    if not toolchain.has_tool(tool, platform):
        return errors.failure("build", errors.MISSING_TOOLCHAIN, f"\"{tool}\" command not found!",
                              remedy=toolchain.remediation(tool, platform))

    jobs = resolve_jobs(cfg, cpu_count)
    cmd = build_command(cfg, jobs)
    logger.info("Compiling %s (this may take 2-5 minutes)...", display_path(cfg, src))
    logger.info("Using %d parallel jobs...", jobs)
    if dry_run:
        logger.info("[dry-run] would run: %s (cwd=%s)", " ".join(cmd), src)
        return errors.ok("build", skipped=False, dry_run=True, jobs=jobs, command=cmd)

    try:
        rc = _run_streaming(cmd, src)
    except OSError as e:
        return errors.failure("build", errors.BUILD_FAILURE, f"Compilation failed: {e}",
                              remedy=manual_build_remedy(cfg), jobs=jobs, command=cmd)
    if rc != 0:
        return errors.failure("build", errors.BUILD_FAILURE, f"Compilation failed: {' '.join(cmd)} exited with {rc}",
                              remedy=manual_build_remedy(cfg), rc=rc, jobs=jobs, command=cmd)

    logger.info("✓ %s compiled successfully", display_path(cfg, src))
    produced = find_artifacts(cfg)
    if not produced:
        logger.warning("Build finished but no known executable was produced")
    return errors.ok("build", skipped=False, jobs=jobs, command=cmd,
                     artifact=str(produced[0][1]) if produced else None)

# --- prepare ---
def prepare(cfg: Optional[Config] = None, dry_run: bool = False) -> Dict[str, Any]:
    """Run the configured pre-build commands (opaque, e.g. `tsc`) from the package root."""
    cfg = cfg or get_config()
    commands = cfg.get("prepare.commands") or []
    ran: List[str] = []
    for step in commands:
        cmd = step if isinstance(step, list) else shlex.split(step)
        shown = " ".join(cmd)
        logger.info("Running %s...", shown)
        if dry_run:
            logger.info("[dry-run] would run prepare step: %s", shown)
            continue
        try:
            rc = _run_streaming(cmd, cfg.root)
        except OSError as e:
            return errors.failure("prepare", errors.PREPARE_FAILURE, f"Prepare failed: {e}", remedy=[shown], ran=ran)
        if rc != 0:
            return errors.failure("prepare", errors.PREPARE_FAILURE, f"Prepare failed: {shown} exited with {rc}",
                                  remedy=[shown], rc=rc, ran=ran)
        ran.append(shown)
    return errors.ok("prepare", ran=ran)

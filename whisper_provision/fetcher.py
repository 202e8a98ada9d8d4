# whisper_provision/fetcher.py
# -*- coding: utf-8 -*-
"""
Fetch phase: make sure the native source tree is present.

- Creates the target directory (with parents) when missing
- Judges emptiness ignoring placeholder entries (".gitkeep")
- Shallow-clones the upstream repository into an empty directory
- A populated directory is left alone: no network operation happens
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from whisper_provision import errors
from whisper_provision.config import Config, get_config
from whisper_provision.logging import get_logger

logger = get_logger("fetcher")


def list_entries(path: Path, ignore: Iterable[str] = ()) -> List[str]:
    """Directory entries of `path` minus the ignored names; [] if the directory is missing."""
    ignored = set(ignore)
    try:
        return sorted(e for e in os.listdir(path) if e not in ignored)
    except FileNotFoundError:
        return []


def is_populated(path: Path, ignore: Iterable[str] = ()) -> bool:
    return path.is_dir() and bool(list_entries(path, ignore))


def display_path(cfg: Config, path: Path) -> str:
    try:
        return str(path.relative_to(cfg.root))
    except ValueError:
        return str(path)


def clone_command(cfg: Config, dest: Optional[Path] = None, shallow: bool = True) -> List[str]:
    cmd = ["git", "clone"]
    depth = cfg.get("source.depth", 1)
    if shallow and depth:
        cmd.append(f"--depth={depth}")
    cmd += [cfg.get("source.url"), display_path(cfg, dest or cfg.source_dir)]
    return cmd


def _remove_placeholders(path: Path, placeholders: Iterable[str]) -> List[str]:
    # git refuses to clone into a non-empty directory
    removed = []
    for name in placeholders:
        p = path / name
        if p.is_file() or p.is_symlink():
            p.unlink()
            removed.append(name)
            logger.debug("removed placeholder %s", p)
    return removed


def _restore_placeholders(path: Path, names: Iterable[str]):
    if not path.is_dir():
        return
    for name in names:
        p = path / name
        if not os.path.lexists(p):
            p.touch()
            logger.debug("restored placeholder %s", p)


def ensure_source(cfg: Optional[Config] = None, dry_run: bool = False) -> Dict[str, Any]:
    """
    Ensure the source tree exists and is non-empty.
    Returns a stage result; a failed clone is reported as CloneFailure.
    """
    cfg = cfg or get_config()
    src = cfg.source_dir
    placeholders = cfg.get("source.placeholders") or []
    shown = display_path(cfg, src)

    logger.info("Post-install: Checking %s source tree...", shown)
    if not src.exists():
        logger.info("Creating %s directory...", shown)
        if not dry_run:
            try:
                src.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                return errors.failure("fetch", errors.CLONE_FAILURE, f"cannot create {src}: {e}",
                                      remedy=[f"mkdir -p {shown}", " ".join(clone_command(cfg, shallow=False))])
    if src.exists() and not src.is_dir():
        return errors.failure("fetch", errors.CLONE_FAILURE, f"{shown} is not a directory",
                              remedy=[f"Remove or rename {shown}, then clone it with:",
                                      "  " + " ".join(clone_command(cfg, shallow=False))])

    if list_entries(src, placeholders):
        logger.info("✓ %s already exists", shown)
        return errors.ok("fetch", path=str(src), cloned=False)

    cmd = clone_command(cfg)
    logger.info("Cloning %s ...", cfg.get("source.url"))
    logger.info("This may take a minute...")
    if dry_run:
        logger.info("[dry-run] would run: %s (cwd=%s)", " ".join(cmd), cfg.root)
        return errors.ok("fetch", path=str(src), cloned=False, dry_run=True)

    remedy = ["You can manually clone it with:", "  " + " ".join(clone_command(cfg, shallow=False))]
    removed = _remove_placeholders(src, placeholders)
    try:
        proc = subprocess.run(cmd, cwd=str(cfg.root))
    except OSError as e:
        _restore_placeholders(src, removed)
        return errors.failure("fetch", errors.CLONE_FAILURE, f"Failed to clone {cfg.get('source.url')}: {e}", remedy=remedy)
    if proc.returncode != 0:
        _restore_placeholders(src, removed)
        return errors.failure("fetch", errors.CLONE_FAILURE,
                              f"Failed to clone {cfg.get('source.url')}: git exited with {proc.returncode}",
                              remedy=remedy, rc=proc.returncode)
    if not list_entries(src, placeholders):
        _restore_placeholders(src, removed)
        return errors.failure("fetch", errors.CLONE_FAILURE, f"clone finished but {shown} is still empty", remedy=remedy)

    logger.info("✓ %s cloned successfully", shown)
    return errors.ok("fetch", path=str(src), cloned=True)

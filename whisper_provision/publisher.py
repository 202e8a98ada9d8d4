# whisper_provision/publisher.py
# -*- coding: utf-8 -*-
"""
Publish phase: expose the built executable under one stable path.

  INIT -> entry absent            -> resolve candidate
  INIT -> entry is symlink/file   -> remove stale entry -> resolve candidate
  INIT -> entry is anything else  -> done, left untouched
  resolve -> no candidate         -> done, warning
  resolve -> candidate            -> relative symlink, or copy when the link fails

Nothing here is fatal: problems come back as PublishWarning results.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from whisper_provision import errors, toolchain
from whisper_provision.config import Config, get_config
from whisper_provision.logging import get_logger

logger = get_logger("publisher")

ABSENT = "absent"
SYMLINK = "symlink"
FILE = "file"
OTHER = "other"


def entry_kind(path: Path) -> str:
    """Kind of whatever sits at `path`, without following symlinks."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return ABSENT
    if stat.S_ISLNK(st.st_mode):
        return SYMLINK
    if stat.S_ISREG(st.st_mode):
        return FILE
    return OTHER


def resolve_candidate(cfg: Config) -> Optional[Tuple[str, Path]]:
    """First existing candidate in preference order."""
    for rel, path in cfg.candidate_paths():
        if path.is_file():
            return rel, path
    return None


def _atomic_copy(src: Path, dst: Path):
    # fresh temp file; whatever already sits at "main.tmp" is never reused
    fd, tmp = tempfile.mkstemp(dir=str(dst.parent), prefix=dst.name + ".", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copy2(src, tmp)
        os.replace(tmp, dst)
    except BaseException:
        if os.path.lexists(tmp):
            os.unlink(tmp)
        raise


def _copy(rel: str, src: Path, dst: Path) -> Dict[str, Any]:
    try:
        _atomic_copy(src, dst)
    except OSError as e:
        logger.warning("Warning: Could not create %s executable: %s", dst.name, e)
        logger.warning("You may need to manually copy the %s binary", rel)
        return errors.warning("publish", f"copy of {rel} failed: {e}",
                              remedy=[f"cp {src} {dst}"], created=False, entry=str(dst))
    logger.info("✓ Copied: %s -> %s", rel, dst.name)
    return errors.ok("publish", created=True, method="copy", target=rel, entry=str(dst))


def publish(cfg: Optional[Config] = None, dry_run: bool = False, platform: Optional[str] = None) -> Dict[str, Any]:
    cfg = cfg or get_config()
    entry = cfg.stable_entry
    kind = entry_kind(entry)

    if kind == OTHER:
        # never destroy a directory or other unexpected content
        logger.info("%s executable already exists", entry.name)
        return errors.ok("publish", created=False, state="exists", entry=str(entry))

    if kind in (SYMLINK, FILE):
        if dry_run:
            logger.info("[dry-run] would remove old %s %s", kind, entry)
        else:
            try:
                entry.unlink()
            except OSError as e:
                logger.warning("Warning: Could not remove old %s: %s", entry.name, e)
                return errors.warning("publish", f"cannot remove stale {entry}: {e}",
                                      remedy=[f"rm {entry}"], created=False, entry=str(entry))
            logger.info("Removed old %s file/symlink", entry.name)

    found = resolve_candidate(cfg)
    if found is None:
        logger.warning("Warning: Could not find whisper executable")
        return errors.warning("publish", "no build artifact found",
                              remedy=["Expected one of: " + ", ".join(rel for rel, _ in cfg.candidate_paths())],
                              created=False, entry=str(entry))
    rel, target = found
    link_target = os.path.relpath(target, entry.parent)

    use_copy = toolchain.os_family(platform) == "windows" or bool(cfg.get("publish.force_copy"))
    if dry_run:
        logger.info("[dry-run] would %s %s -> %s", "copy" if use_copy else "link", entry.name, link_target)
        return errors.ok("publish", created=False, dry_run=True, target=rel, entry=str(entry))

    if use_copy:
        return _copy(rel, target, entry)

    try:
        os.symlink(link_target, entry)
    except (OSError, NotImplementedError) as e:
        logger.info("Symlink failed (%s), copying file instead...", e)
        return _copy(rel, target, entry)
    logger.info("✓ Created symlink: %s -> %s", entry.name, link_target)
    return errors.ok("publish", created=True, method="symlink", target=rel, entry=str(entry))

# whisper_provision/config.py
# -*- coding: utf-8 -*-
"""
whisper-provision configuration loader

Features:
- Read YAML/JSON config from multiple locations (explicit path, env override, cwd, user)
- Merge with authoritative DEFAULTS, normalize/coerce types (human sizes to bytes)
- Validate structure and types, warn or error (fatal optional)
- Provide typed access via Config dataclass (get(), source_dir, stable_entry, candidate_paths())
- Command-line overrides are merged on top of the file values
- Save writes only the overrides (diff against DEFAULTS)
"""

from __future__ import annotations
import os
import json
import logging
from pathlib import Path
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List, Tuple, Union

import yaml

logger = logging.getLogger("whisper_provision.config")

ENV_VAR = "WHISPER_PROVISION_CONFIG"

# ----------------------------
# DEFAULT configuration (authoritative base)
# ----------------------------
DEFAULTS: Dict[str, Any] = {
    "paths": {
        "root": None,  # None -> current working directory
    },
    "source": {
        "dir": "lib/whisper.cpp",
        "url": "https://github.com/ggml-org/whisper.cpp",
        "depth": 1,
        "placeholders": [".gitkeep"],
        "ignore_when_checking": [".git", ".gitkeep"],
    },
    "build": {
        "tool": "make",
        "jobs": None,
        "jobs_fraction": 0.75,
        "min_jobs": 1,
        "on_failure": None,  # abort | warn ; None -> command default
        "candidates": ["build/bin/whisper-cli", "build/bin/main"],
    },
    "publish": {
        "entry": "main",
        "force_copy": False,
    },
    "prepare": {
        "commands": [],
    },
    "logging": {
        "level": "INFO",
        "color": True,
        "prefix": "whisper-node",
        "file": None,
        "max_size": "10M",
        "backups": 3,
    },
}

# ----------------------------
# Dataclass to hold config
# ----------------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=dict)     # values loaded from file (if any)
    merged: Dict[str, Any] = field(default_factory=dict)  # merged with DEFAULTS
    path: Optional[Path] = None

    def get(self, path: str, default: Any = None) -> Any:
        """Dot-separated getter for merged config."""
        parts = path.split(".") if path else []
        cur: Any = self.merged
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur

    def as_dict(self) -> Dict[str, Any]:
        return deepcopy(self.merged)

    @property
    def root(self) -> Path:
        r = self.get("paths.root")
        return Path(r) if r else Path.cwd()

    @property
    def source_dir(self) -> Path:
        src = Path(self.get("source.dir"))
        return src if src.is_absolute() else self.root / src

    @property
    def stable_entry(self) -> Path:
        return self.source_dir / self.get("publish.entry", "main")

    def candidate_paths(self) -> List[Tuple[str, Path]]:
        """Ordered (relative, absolute) candidate artifact paths, most preferred first."""
        out: List[Tuple[str, Path]] = []
        for rel in self.get("build.candidates") or []:
            out.append((rel, self.source_dir / rel))
        return out

# ----------------------------
# Module state
# ----------------------------
_CONFIG: Optional[Config] = None

# ----------------------------
# Utilities
# ----------------------------
def _human_size_to_bytes(val: Union[str, int, None]) -> Optional[int]:
    if val is None:
        return None
    if isinstance(val, int):
        return val
    s = str(val).strip().upper()
    units = {"KB": 1024, "MB": 1024**2, "GB": 1024**3, "K": 1024, "M": 1024**2, "G": 1024**3}
    try:
        for suffix, mul in units.items():
            if s.endswith(suffix):
                num = float(s[: -len(suffix)].strip())
                return int(num * mul)
        return int(float(s))
    except ValueError:
        logger.warning("config: cannot parse human size '%s'", val)
        return None

def _expand_path(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    return os.path.expanduser(os.path.expandvars(str(val)))

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    res = deepcopy(a)
    for k, v in b.items():
        if k in res and isinstance(res[k], dict) and isinstance(v, dict):
            res[k] = _deep_merge(res[k], v)
        else:
            res[k] = deepcopy(v)
    return res

def _find_candidates(explicit: Optional[str] = None) -> List[Path]:
    candidates: List[Path] = []
    env = os.environ.get(ENV_VAR)
    if explicit:
        candidates.append(Path(explicit))
    if env:
        candidates.append(Path(env))
    candidates.extend([
        Path.cwd() / "whisper-provision.yaml",
        Path.cwd() / "whisper-provision.yml",
        Path.cwd() / "whisper-provision.json",
        Path.home() / ".config" / "whisper-provision" / "config.yaml",
    ])
    return candidates

def _load_file(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("config: failed reading %s: %s", path, e)
        return None

    if path.suffix.lower() == ".json":
        try:
            return json.loads(txt) or {}
        except json.JSONDecodeError as e:
            logger.error("config: json parse fail %s: %s", path, e)
            return None

    try:
        data = yaml.safe_load(txt)
    except yaml.YAMLError as e:
        logger.error("config: yaml parse fail %s: %s", path, e)
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.error("config: %s must contain a mapping at top level", path)
        return None
    return data

def _normalize_and_coerce(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize path fields, convert human sizes and coerce basic types."""
    out = deepcopy(cfg)
    path_keys = [
        ("paths", "root"),
        ("source", "dir"),
        ("logging", "file"),
    ]
    for section, key in path_keys:
        ref = out.get(section)
        if isinstance(ref, dict) and ref.get(key):
            ref[key] = _expand_path(ref[key])

    # Convert human sizes
    if isinstance(out.get("logging"), dict) and "max_size" in out["logging"]:
        ms = _human_size_to_bytes(out["logging"]["max_size"])
        if ms is not None:
            out["logging"]["max_size_bytes"] = ms

    # Coerce numbers
    build = out.get("build")
    if isinstance(build, dict):
        try:
            if build.get("jobs") is not None:
                build["jobs"] = int(build["jobs"])
            build["min_jobs"] = int(build.get("min_jobs", 1))
            build["jobs_fraction"] = float(build.get("jobs_fraction", 0.75))
        except (TypeError, ValueError):
            logger.debug("config: failed to coerce build fields", exc_info=True)
        if isinstance(build.get("on_failure"), str):
            build["on_failure"] = build["on_failure"].strip().lower()

    source = out.get("source")
    if isinstance(source, dict):
        try:
            source["depth"] = int(source.get("depth", 1))
        except (TypeError, ValueError):
            logger.debug("config: failed to coerce source.depth", exc_info=True)

    return out

def _allowed_top_level_keys() -> List[str]:
    return list(DEFAULTS.keys())

def _validate_structure(cfg: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Return (ok, issues_list). Non-fatal warnings unless called with fatal=True in load."""
    warnings: List[str] = []
    for k in cfg.keys():
        if k not in _allowed_top_level_keys():
            warnings.append(f"Unknown top-level config key: {k}")
    build = cfg.get("build") or {}
    mj = build.get("min_jobs")
    if not isinstance(mj, int) or mj < 1:
        warnings.append("build.min_jobs must be integer >= 1")
    bj = build.get("jobs")
    if bj is not None and (not isinstance(bj, int) or bj < 1):
        warnings.append("build.jobs must be null or integer >= 1")
    frac = build.get("jobs_fraction")
    if not isinstance(frac, float) or not (0.0 < frac <= 1.0):
        warnings.append("build.jobs_fraction must be a number in (0, 1]")
    cands = build.get("candidates")
    if not isinstance(cands, list) or not cands:
        warnings.append("build.candidates must be a non-empty list")
    if build.get("on_failure") not in (None, "abort", "warn"):
        warnings.append("build.on_failure must be one of: abort, warn")
    cmds = (cfg.get("prepare") or {}).get("commands")
    if cmds is not None and not isinstance(cmds, list):
        warnings.append("prepare.commands should be a list")
    for key in ("placeholders", "ignore_when_checking"):
        val = (cfg.get("source") or {}).get(key)
        if val is not None and not isinstance(val, list):
            warnings.append(f"source.{key} should be a list")
    return (len(warnings) == 0, warnings)

# ----------------------------
# Loading
# ----------------------------
def _find_path(explicit: Optional[str] = None) -> Optional[Path]:
    for p in _find_candidates(explicit):
        if p and p.exists():
            return p
    return None

def load(explicit_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None, fatal: bool = False) -> Config:
    """
    Load and merge config. Overrides (e.g. from the command line) win over the file.
    If fatal=True then structural validation failures raise ValueError.
    """
    global _CONFIG
    cfg_path = _find_path(explicit_path)
    if explicit_path and cfg_path != Path(explicit_path):
        logger.warning("config: explicit config %s not found", explicit_path)
    raw: Dict[str, Any] = {}
    if cfg_path:
        data = _load_file(cfg_path)
        if data is None:
            msg = f"config: file found but could not be parsed: {cfg_path}"
            if fatal:
                raise ValueError(msg)
            logger.warning(msg)
        else:
            raw = data
    merged = _deep_merge(DEFAULTS, raw)
    if overrides:
        merged = _deep_merge(merged, overrides)
    normalized = _normalize_and_coerce(merged)
    ok, issues = _validate_structure(normalized)
    if not ok:
        msg = f"config: validation issues: {issues}"
        if fatal:
            logger.error(msg)
            raise ValueError(msg)
        logger.warning(msg)
    cfg_obj = Config(raw=raw, merged=normalized, path=cfg_path)
    _CONFIG = cfg_obj
    logger.debug("config: loaded merged config (from=%s)", str(cfg_path) if cfg_path else "<defaults>")
    return cfg_obj

def get_config() -> Config:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load()
    return _CONFIG

def validate_config(cfg: Optional[Config] = None) -> Tuple[bool, List[str]]:
    cfg = cfg or get_config()
    ok, issues = _validate_structure(cfg.merged)
    root = cfg.get("paths.root")
    if root and not Path(root).is_dir():
        issues.append(f"paths.root {root} is not a directory")
    return (len(issues) == 0, issues)

# ----------------------------
# Save: write only override (diff) to avoid clobbering defaults
# ----------------------------
def _compute_override(merged: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    def diff(a: Any, b: Any) -> Any:
        if type(a) != type(b):
            return deepcopy(a)
        if isinstance(a, dict):
            out = {}
            for k, v in a.items():
                if k not in b:
                    out[k] = deepcopy(v)
                else:
                    d = diff(v, b[k])
                    if d is not None:
                        out[k] = d
            return out or None
        if a != b:
            return deepcopy(a)
        return None
    return diff(merged, defaults) or {}

def save(path: str, cfg: Optional[Config] = None, override_only: bool = True) -> Path:
    cfg = cfg or get_config()
    merged = cfg.as_dict()
    # derived value, recomputed on load
    merged.get("logging", {}).pop("max_size_bytes", None)
    to_write = _compute_override(merged, DEFAULTS) if override_only else merged
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(to_write, fh, default_flow_style=False, sort_keys=False)
    logger.info("config: saved config to %s (override_only=%s)", out_path, override_only)
    return out_path

def dump(cfg: Optional[Config] = None) -> str:
    """Merged configuration rendered as YAML."""
    cfg = cfg or get_config()
    return yaml.safe_dump(cfg.as_dict(), default_flow_style=False, sort_keys=False)

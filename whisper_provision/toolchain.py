# whisper_provision/toolchain.py
# -*- coding: utf-8 -*-
"""
Toolchain detection for the native build.

- probe the build tool with the platform lookup command (which/where)
- remediation text per OS family (macOS, Linux, Windows)
- parallel job count policy
"""

from __future__ import annotations

import math
import os
import subprocess
import sys
from typing import Dict, List, Optional

from whisper_provision.logging import get_logger

logger = get_logger("toolchain")

JOBS_FRACTION = 0.75

_INSTALL_HINTS: Dict[str, str] = {
    "macos": "macOS: xcode-select --install",
    "linux": "Linux: sudo apt-get install build-essential",
    "windows": "Windows: https://gnuwin32.sourceforge.net/packages/make.htm",
}


def os_family(platform: Optional[str] = None) -> str:
    plat = platform or sys.platform
    if plat == "darwin":
        return "macos"
    if plat.startswith("win") or plat == "cygwin":
        return "windows"
    return "linux"


def lookup_command(tool: str, platform: Optional[str] = None) -> List[str]:
    if os_family(platform) == "windows":
        return ["where", tool]
    return ["which", tool]


def has_tool(tool: str, platform: Optional[str] = None) -> bool:
    """Only the exit status of the lookup matters; its output is discarded."""
    cmd = lookup_command(tool, platform)
    try:
        proc = subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError:
        logger.debug("lookup command %s unavailable", cmd[0], exc_info=True)
        return False
    return proc.returncode == 0


def remediation(tool: str, platform: Optional[str] = None) -> List[str]:
    family = os_family(platform)
    lines = ["Please install build tools:"]
    if tool == "make":
        lines.append("  - " + _INSTALL_HINTS[family])
    else:
        lines.append(f"  - install '{tool}' and make sure it is on PATH")
    return lines


def compute_jobs(cpu_count: Optional[int] = None, fraction: float = JOBS_FRACTION, minimum: int = 1) -> int:
    """floor(cpus * fraction), never below `minimum` (and never below 1)."""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(minimum, 1, math.floor(cpus * fraction))

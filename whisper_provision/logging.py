# whisper_provision/logging.py
# -*- coding: utf-8 -*-
"""
whisper-provision logging

Features:
 - Console color formatter with the "[<prefix>] message" status line
 - Optional rotating file handler
 - Module-aware LoggerAdapter (get_logger)
 - Idempotent (re)configuration from config.Config
"""

from __future__ import annotations
import sys
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER = "whisper_provision"

_logger = logging.getLogger("whisper_provision.logging")

# ----------------------
# Color formatter
# ----------------------
class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[37m",    # light gray
        logging.INFO: "\033[36m",     # cyan
        logging.WARNING: "\033[33m",  # yellow
        logging.ERROR: "\033[31m",    # red
        logging.CRITICAL: "\033[41;37m", # white on red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = color

    def format(self, record):
        msg = super().format(record)
        if self.color:
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{msg}{self.RESET}"
        return msg

# ----------------------
# ProvisionLogger (singleton)
# ----------------------
class ProvisionLogger:
    _instance = None
    _singleton_lock = threading.Lock()

    def __new__(cls):
        with cls._singleton_lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._inited = False
        return cls._instance

    def __init__(self):
        if self._inited:
            return
        self._lock = threading.RLock()
        self._root = logging.getLogger(ROOT_LOGGER)
        self._handlers: List[logging.Handler] = []
        self._inited = True

    def configure(self, cfg: Dict[str, Any], stream=None):
        """Replace our handlers according to the `logging` section of the config."""
        with self._lock:
            for h in list(self._handlers):
                self._root.removeHandler(h)
                h.close()
            self._handlers.clear()

            level = getattr(logging, str(cfg.get("level", "INFO")).upper(), logging.INFO)
            prefix = cfg.get("prefix") or "whisper-node"
            fmt = f"[{prefix}] %(message)s"

            ch = logging.StreamHandler(stream or sys.stdout)
            ch.setLevel(level)
            ch.setFormatter(ColorFormatter(fmt, color=bool(cfg.get("color", True)) and _isatty(stream or sys.stdout)))
            self._root.addHandler(ch)
            self._handlers.append(ch)

            if cfg.get("file"):
                file_path = Path(cfg["file"]).expanduser()
                try:
                    file_path.parent.mkdir(parents=True, exist_ok=True)
                    max_bytes = cfg.get("max_size_bytes") or 10 * 1024 * 1024
                    fh = logging.handlers.RotatingFileHandler(str(file_path), maxBytes=max_bytes, backupCount=int(cfg.get("backups", 3)), encoding="utf-8")
                except OSError:
                    _logger.warning("logging: cannot open log file %s", file_path, exc_info=True)
                else:
                    fh.setLevel(logging.DEBUG)
                    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
                    self._root.addHandler(fh)
                    self._handlers.append(fh)

            self._root.setLevel(min([level] + [h.level for h in self._handlers]))

    def get_logger(self, module_name: str) -> logging.LoggerAdapter:
        """Return a LoggerAdapter that injects 'wp_module' into records."""
        base = logging.getLogger(f"{ROOT_LOGGER}.{module_name}")
        return logging.LoggerAdapter(base, {"wp_module": module_name})

def _isatty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())

# ----------------------
# Public factory
# ----------------------
_GLOBAL_LOGGER = ProvisionLogger()

def get_logger(module: str) -> logging.LoggerAdapter:
    return _GLOBAL_LOGGER.get_logger(module)

def configure(cfg: Dict[str, Any], stream=None):
    return _GLOBAL_LOGGER.configure(cfg, stream=stream)

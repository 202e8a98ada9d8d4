# whisper_provision/errors.py
# -*- coding: utf-8 -*-
"""
Failure kinds, the build-failure policy and stage result helpers.

Phases report failures as result dicts:

  {"ok": False, "stage": "fetch|build|publish|prepare", "error": <kind>,
   "detail": "...", "remedy": ["manual command", ...]}

The orchestrator (provisioner.py) decides which failures are fatal.
"""

from __future__ import annotations
import enum
from typing import Any, Dict, List, Optional

MISSING_SOURCE = "MissingSource"
MISSING_TOOLCHAIN = "MissingToolchain"
BUILD_FAILURE = "BuildFailure"
PUBLISH_WARNING = "PublishWarning"
CLONE_FAILURE = "CloneFailure"
PREPARE_FAILURE = "PrepareFailure"

# downgraded to warnings under OnBuildFailure.WARN_AND_CONTINUE; every other failure kind is fatal
WARNABLE_KINDS = (MISSING_TOOLCHAIN, BUILD_FAILURE)


class OnBuildFailure(enum.Enum):
    ABORT = "abort"
    WARN_AND_CONTINUE = "warn"

    @classmethod
    def parse(cls, value: Any, default: "OnBuildFailure") -> "OnBuildFailure":
        if value is None:
            return default
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class ProvisionError(RuntimeError):
    kind = "ProvisionError"

    def __init__(self, message: str, remedy: Optional[List[str]] = None, result: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.remedy = list(remedy or [])
        self.result = result or {}


class MissingSourceError(ProvisionError):
    kind = MISSING_SOURCE


class MissingToolchainError(ProvisionError):
    kind = MISSING_TOOLCHAIN


class BuildFailureError(ProvisionError):
    kind = BUILD_FAILURE


class CloneFailureError(ProvisionError):
    kind = CLONE_FAILURE


class PrepareFailureError(ProvisionError):
    kind = PREPARE_FAILURE


_BY_KIND = {cls.kind: cls for cls in (MissingSourceError, MissingToolchainError, BuildFailureError,
                                      CloneFailureError, PrepareFailureError)}


def ok(stage: str, **detail) -> Dict[str, Any]:
    res: Dict[str, Any] = {"ok": True, "stage": stage}
    res.update(detail)
    return res


def failure(stage: str, kind: str, detail: str, remedy: Optional[List[str]] = None, **extra) -> Dict[str, Any]:
    res: Dict[str, Any] = {"ok": False, "stage": stage, "error": kind, "detail": detail, "remedy": list(remedy or [])}
    res.update(extra)
    return res


def warning(stage: str, detail: str, remedy: Optional[List[str]] = None, **extra) -> Dict[str, Any]:
    """Non-fatal outcome: ok stays True, the warning is carried along."""
    res: Dict[str, Any] = {"ok": True, "stage": stage, "error": PUBLISH_WARNING, "warning": detail, "remedy": list(remedy or [])}
    res.update(extra)
    return res


def raise_for_result(result: Dict[str, Any]) -> Dict[str, Any]:
    """Raise the matching ProvisionError for a failed stage result, else return it."""
    if result.get("ok"):
        return result
    cls = _BY_KIND.get(result.get("error"), ProvisionError)
    raise cls(result.get("detail") or "provisioning failed", remedy=result.get("remedy"), result=result)

# whisper_provision/provisioner.py
# -*- coding: utf-8 -*-
"""
Provisioner - runs fetch / build / publish in order and applies the failure policy.

Flows:
  provision : fetch -> build -> publish           (build failure: warn by default)
  build     : source check -> build -> publish    (build failure: abort by default)
  prepare   : prepare commands -> build flow
  fetch     : fetch
  publish   : publish

Summary:
  dict {
    "ok": True/False,
    "flow": "...",
    "exit_code": 0 | 1,
    "stages": [stage results...],
    "warnings": [stage results that carried a warning...],
    "fatal": failing stage result or None,
  }
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional

from whisper_provision import buildsystem, errors, fetcher, publisher, toolchain
from whisper_provision.config import Config, get_config
from whisper_provision.errors import OnBuildFailure
from whisper_provision.logging import get_logger

logger = get_logger("provisioner")

FLOWS: Dict[str, List[str]] = {
    "provision": ["fetch", "build", "publish"],
    "build": ["source", "build", "publish"],
    "prepare": ["prepare", "source", "build", "publish"],
    "fetch": ["fetch"],
    "publish": ["publish"],
}

DEFAULT_POLICY: Dict[str, OnBuildFailure] = {
    "provision": OnBuildFailure.WARN_AND_CONTINUE,
}


class Provisioner:
    def __init__(self, cfg: Optional[Config] = None, dry_run: bool = False, platform: Optional[str] = None):
        self.cfg = cfg or get_config()
        self.dry_run = dry_run
        self.platform = platform
        self._steps: Dict[str, Callable[[], Dict[str, Any]]] = {
            "fetch": lambda: fetcher.ensure_source(self.cfg, dry_run=self.dry_run),
            "source": lambda: buildsystem.check_source(self.cfg),
            "build": lambda: buildsystem.build(self.cfg, dry_run=self.dry_run, platform=self.platform),
            "publish": lambda: publisher.publish(self.cfg, dry_run=self.dry_run, platform=self.platform),
            "prepare": lambda: buildsystem.prepare(self.cfg, dry_run=self.dry_run),
        }

    def policy_for(self, flow: str, override: Any = None) -> OnBuildFailure:
        default = DEFAULT_POLICY.get(flow, OnBuildFailure.ABORT)
        if override is not None:
            return OnBuildFailure.parse(override, default)
        return OnBuildFailure.parse(self.cfg.get("build.on_failure"), default)

    def _report_fatal(self, res: Dict[str, Any]):
        logger.error("Error: %s", res.get("detail"))
        for line in res.get("remedy") or []:
            logger.error("%s", line)

    def _report_build_warning(self, res: Dict[str, Any]):
        logger.warning("Warning: Failed to compile %s automatically", self.cfg.source_dir.name)
        logger.warning("%s", res.get("detail"))
        if res.get("error") == errors.MISSING_TOOLCHAIN:
            for line in res.get("remedy") or []:
                logger.warning("%s", line)
            logger.warning("Then compile it with: whisper-provision build")
            return
        logger.warning("You can manually compile it with:")
        logger.warning("  whisper-provision build")
        for line in res.get("remedy") or []:
            logger.warning("  or: %s", line)

    def run(self, flow: str, on_build_failure: Any = None, raise_on_fatal: bool = False) -> Dict[str, Any]:
        if flow not in FLOWS:
            raise ValueError(f"unknown flow: {flow}")
        policy = self.policy_for(flow, on_build_failure)
        summary: Dict[str, Any] = {"ok": False, "flow": flow, "exit_code": 0, "policy": policy.value,
                                   "stages": [], "warnings": [], "fatal": None}
        logger.debug("flow %s (policy=%s, dry_run=%s)", flow, policy.value, self.dry_run)

        build_failed = False
        for step in FLOWS[flow]:
            if step == "publish" and build_failed:
                logger.info("Skipping %s: nothing was built", step)
                summary["stages"].append({"ok": True, "stage": "publish", "skipped": True})
                continue
            res = self._steps[step]()
            summary["stages"].append(res)

            if res.get("ok"):
                if res.get("error"):
                    summary["warnings"].append(res)
                    for line in res.get("remedy") or []:
                        logger.warning("%s", line)
                continue

            kind = res.get("error")
            if kind in errors.WARNABLE_KINDS and policy is OnBuildFailure.WARN_AND_CONTINUE:
                self._report_build_warning(res)
                summary["warnings"].append(res)
                build_failed = True
                continue

            self._report_fatal(res)
            summary["fatal"] = res
            summary["exit_code"] = 1
            if raise_on_fatal:
                errors.raise_for_result(res)
            return summary

        summary["ok"] = True
        if build_failed:
            logger.info("Finished with warnings")
        elif flow in ("build", "prepare", "provision"):
            logger.info("Build complete! ✓")
        return summary


def collect_status(cfg: Optional[Config] = None, platform: Optional[str] = None, probe_tool: bool = True) -> Dict[str, Any]:
    """Read-only snapshot of the provisioning state."""
    cfg = cfg or get_config()
    src = cfg.source_dir
    entry = cfg.stable_entry
    kind = publisher.entry_kind(entry)
    found = publisher.resolve_candidate(cfg)
    tool = cfg.get("build.tool", "make")
    link = None
    if kind == publisher.SYMLINK:
        link = os.readlink(entry)
    return {
        "source_dir": str(src),
        "source_populated": fetcher.is_populated(src, cfg.get("source.ignore_when_checking") or []),
        "artifacts": [rel for rel, _ in buildsystem.find_artifacts(cfg)],
        "preferred": found[0] if found else None,
        "entry": str(entry),
        "entry_kind": kind,
        "entry_link": link,
        "tool": tool,
        "tool_available": toolchain.has_tool(tool, platform) if probe_tool else None,
        "jobs": buildsystem.resolve_jobs(cfg),
    }


def run_flow(flow: str, cfg: Optional[Config] = None, dry_run: bool = False,
             on_build_failure: Any = None, platform: Optional[str] = None) -> Dict[str, Any]:
    return Provisioner(cfg, dry_run=dry_run, platform=platform).run(flow, on_build_failure=on_build_failure)

#!/usr/bin/env python3
# whisper_provision/cli.py
"""
whisper-provision CLI

Subcommands:
- provision : post-install flow (fetch, build with warnings only, publish)
- fetch     : clone the source tree if missing
- build     : build (fatal on failure) and publish the stable entry
- prepare   : run configured pre-build commands, then build
- publish   : (re)create the stable entry only
- status    : show the provisioning state
- config    : print / validate / save the merged configuration

Exit codes: 0 success or warning, 1 fatal provisioning failure, 2 unexpected error.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from whisper_provision import __version__, config as config_mod
from whisper_provision.logging import configure as configure_logging, get_logger
from whisper_provision.provisioner import FLOWS, collect_status, run_flow

logger = get_logger("cli")

console = Console()

# -----------------------
# Small pretty helpers
# -----------------------
def print_ok(msg: str):
    console.print(f"[bold green]✔[/] {msg}")

def print_warn(msg: str):
    console.print(f"[bold yellow]![/] {msg}")

def print_err(msg: str):
    console.print(f"[bold red]✖[/] {msg}")

# -----------------------
# Commands
# -----------------------
def cmd_flow(args, cfg: config_mod.Config) -> int:
    summary = run_flow(args.cmd, cfg, dry_run=args.dry_run, on_build_failure=args.on_build_failure)
    if summary["fatal"]:
        print_err(f"{args.cmd} failed: {summary['fatal'].get('error')}")
    elif summary["warnings"]:
        print_warn(f"{args.cmd} finished with {len(summary['warnings'])} warning(s)")
    else:
        print_ok(f"{args.cmd} complete")
    return summary["exit_code"]

def cmd_status(args, cfg: config_mod.Config) -> int:
    st = collect_status(cfg)
    table = Table(title="whisper-provision status")
    table.add_column("item", style="cyan")
    table.add_column("value")
    table.add_row("source", f"{st['source_dir']} ({'populated' if st['source_populated'] else 'empty'})")
    table.add_row("artifacts", ", ".join(st["artifacts"]) or "-")
    table.add_row("preferred", st["preferred"] or "-")
    entry = st["entry_kind"]
    if st["entry_link"]:
        entry += f" -> {st['entry_link']}"
    table.add_row("stable entry", f"{st['entry']} ({entry})")
    tool_state = "found" if st["tool_available"] else "missing"
    table.add_row("build tool", f"{st['tool']} ({tool_state}, -j{st['jobs']})")
    console.print(table)
    return 0

def cmd_config(args, cfg: config_mod.Config) -> int:
    if args.save:
        path = config_mod.save(args.save, cfg)
        print_ok(f"Saved to {path}")
        return 0
    if args.validate:
        ok, issues = config_mod.validate_config(cfg)
        if ok:
            print_ok("configuration is valid")
            return 0
        for it in issues:
            print_err(escape(it))
        return 1
    console.print(config_mod.dump(cfg), markup=False, highlight=False)
    return 0

# -----------------------
# Argparse wiring
# -----------------------
def make_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="whisper-provision", description="Fetch, build and publish whisper.cpp")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--config", help="explicit config file (YAML or JSON)")
    ap.add_argument("--root", help="package root holding lib/ (default: cwd)")
    ap.add_argument("--dry-run", action="store_true", help="only report what would be done")
    ap.add_argument("--jobs", type=int, help="explicit parallel job count")
    ap.add_argument("--min-jobs", type=int, help="lower bound for the computed job count")
    ap.add_argument("--on-build-failure", choices=["abort", "warn"], help="override the build failure policy")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="cmd")

    sub.add_parser("provision", help="fetch, build (failure is a warning) and publish")
    sub.add_parser("fetch", help="clone the source tree if missing")
    sub.add_parser("build", help="build (failure is fatal) and publish")
    sub.add_parser("prepare", help="run prepare.commands, then build")
    sub.add_parser("publish", help="(re)create the stable entry")
    sub.add_parser("status", help="show provisioning state")
    p_cfg = sub.add_parser("config", help="show or validate configuration")
    p_cfg.add_argument("--validate", action="store_true")
    p_cfg.add_argument("--save", help="write the overrides to PATH")
    return ap

def _overrides(args) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if args.root:
        out.setdefault("paths", {})["root"] = args.root
    build: Dict[str, Any] = {}
    if args.jobs is not None:
        build["jobs"] = args.jobs
    if args.min_jobs is not None:
        build["min_jobs"] = args.min_jobs
    if build:
        out["build"] = build
    if args.verbose:
        out["logging"] = {"level": "DEBUG"}
    return out

def main(argv: Optional[List[str]] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = make_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 0

    try:
        configure_logging(config_mod.DEFAULTS["logging"])
        cfg = config_mod.load(args.config, overrides=_overrides(args))
        configure_logging(cfg.get("logging") or {})
        if args.cmd in FLOWS:
            return cmd_flow(args, cfg)
        if args.cmd == "status":
            return cmd_status(args, cfg)
        if args.cmd == "config":
            return cmd_config(args, cfg)
        parser.print_help()
        return 0
    except Exception as e:
        logger.debug("unexpected failure", exc_info=True)
        print_err(f"Command failed: {escape(str(e))}")
        return 2

if __name__ == "__main__":
    sys.exit(main())

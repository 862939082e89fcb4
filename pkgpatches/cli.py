#!/usr/bin/env python3
# pkgpatches/cli.py
"""
pkgpatches CLI - drives the plugin outside of a package manager run

How it works:
- loads config (pkgpatches.config) and configures logging from it
- reads the installed package set from installed.json
- activates PatchesPlugin against that host and fires the same lifecycle
  events the package manager would (post-install-cmd, pre-package-*)
- uses rich for tables and status lines
"""

from __future__ import annotations

import os
import sys
import json
import logging
import argparse
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.table import Table

from pkgpatches import config as config_mod
from pkgpatches.console import PatchIO, Verbosity
from pkgpatches.errors import PatchesError
from pkgpatches.fetcher import RemoteContentCache, Transport
from pkgpatches.hooks import (
    POST_INSTALL_CMD,
    PRE_PACKAGE_UNINSTALL,
    PRE_PACKAGE_UPDATE,
    HookManager,
    HostContext,
    PackageEvent,
    PatchesPlugin,
    ScriptEvent,
    UninstallOperation,
    UpdateOperation,
)
from pkgpatches.host import InstallationManager, InstalledRepository
from pkgpatches.logging import apply_config, get_logger, set_console_level
from pkgpatches.resolution import History, PatchReport, PatchResolver

logger = get_logger("cli")
console = Console(stderr=True, highlight=False)

# -----------------------
# Small pretty helpers
# -----------------------
def print_ok(msg: str):
    console.print(f"[bold green]✔[/] {msg}")

def print_warn(msg: str):
    console.print(f"[bold yellow]![/] {msg}")

def print_err(msg: str):
    console.print(f"[bold red]✖[/] {msg}")

def print_info(msg: str):
    console.print(f"[cyan]{msg}[/cyan]")

# -----------------------
# CLI Implementation
# -----------------------
class PkgPatchesCLI:
    def __init__(self, installed: Optional[str] = None, vendor_dir: Optional[str] = None,
                 verbosity: Verbosity = Verbosity.NORMAL, transport: Optional[Transport] = None,
                 out: Optional[Console] = None):
        host_cfg = config_mod.get_host_config()
        self.installed_path = installed or host_cfg.get("installed", "vendor/composer/installed.json")
        self.vendor_dir = vendor_dir or host_cfg.get("vendor_dir", "vendor")
        self.package_type = host_cfg.get("package_type", PatchesPlugin.PACKAGE_TYPE)
        self.verbosity = verbosity
        self.transport = transport
        self.out = out
        self._host: Optional[HostContext] = None

    def host(self) -> HostContext:
        if self._host is None:
            repository = InstalledRepository.from_file(self.installed_path)
            manager = InstallationManager(self.vendor_dir, base_dir=os.path.dirname(os.path.abspath(self.installed_path)))
            self._host = HostContext(repository, manager, PatchIO(self.verbosity, self.out))
        return self._host

    def plugin(self, hooks: HookManager) -> PatchesPlugin:
        plugin = PatchesPlugin(self.package_type)
        plugin.activate(self.host(), transport=self.transport)
        plugin.subscribe(hooks)
        return plugin

    # --------------
    # commands
    # --------------
    def apply(self) -> PatchReport:
        hooks = HookManager()
        self.plugin(hooks)
        report = PatchReport("apply")
        for result in hooks.run(POST_INSTALL_CMD, ScriptEvent(POST_INSTALL_CMD, self.host())):
            report.merge(result)
        return report

    def restore(self, package_name: str, update: bool = False) -> PatchReport:
        host = self.host()
        package = host.repository.find_package(package_name)
        if package is None:
            raise PatchesError(f"package {package_name} is not installed")
        hooks = HookManager()
        self.plugin(hooks)
        if update:
            event = PackageEvent(PRE_PACKAGE_UPDATE, UpdateOperation(package, package), host)
        else:
            event = PackageEvent(PRE_PACKAGE_UNINSTALL, UninstallOperation(package), host)
        report = PatchReport("restore")
        for result in hooks.run(event.name, event):
            report.merge(result)
        return report

    def list_patches(self, package_name: str) -> List[Dict[str, Any]]:
        """Patches touching `package_name` as the next apply would see them."""
        host = self.host()
        package = host.repository.find_package(package_name)
        if package is None:
            raise PatchesError(f"package {package_name} is not installed")
        quiet = PatchIO(Verbosity.QUIET, self.out)
        resolver = PatchResolver(host.repository, host.installation_manager, RemoteContentCache(self.transport), quiet)
        rows = []
        for patches, target in resolver.discover(package, History("list")):
            for patch in patches:
                rows.append({
                    "package": target.name,
                    "version": target.pretty_version,
                    "checksum": patch.checksum,
                    "title": patch.title or "",
                    "url": patch.url,
                })
        return rows

# -----------------------
# Output
# -----------------------
def _print_report(report: PatchReport):
    counts = f"{len(report.done)} done, {len(report.skipped)} skipped, {len(report.failed)} failed"
    if report.errors:
        for name, err in report.errors:
            print_warn(f"{name}: {err}")
    if report.failed:
        print_warn(f"{report.phase}: {counts}")
    else:
        print_ok(f"{report.phase}: {counts}")

def _print_rows(rows: List[Dict[str, Any]], as_json: bool):
    if as_json:
        print(json.dumps(rows, indent=2))
        return
    if not rows:
        print_info("no patches")
        return
    table = Table(title="Patches")
    table.add_column("Package")
    table.add_column("Version")
    table.add_column("Checksum")
    table.add_column("Title")
    table.add_column("URL")
    for r in rows:
        table.add_row(r["package"], r["version"], r["checksum"][:12], r["title"], r["url"])
    Console(highlight=False).print(table)

# -----------------------
# Argparse wiring
# -----------------------
def make_parser():
    ap = argparse.ArgumentParser(prog="pkgpatches", description="Apply and revert patches declared by installed packages")
    ap.add_argument("--config", help="config file (YAML or JSON)")
    ap.add_argument("--installed", help="path to installed.json")
    ap.add_argument("--vendor-dir", help="directory packages are installed into")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="more output (repeat for more)")
    ap.add_argument("-q", "--quiet", action="store_true", help="only errors")
    sub = ap.add_subparsers(dest="cmd")

    # apply
    sub.add_parser("apply", help="apply pending patches to all installed packages")

    # restore
    p_restore = sub.add_parser("restore", help="revert patches touching a package")
    p_restore.add_argument("package")
    p_restore.add_argument("--update", action="store_true", help="fire pre-package-update instead of pre-package-uninstall")

    # list
    p_list = sub.add_parser("list", help="show the patches that touch a package")
    p_list.add_argument("package")
    p_list.add_argument("--json", action="store_true")

    # config
    p_config = sub.add_parser("config", help="show or validate configuration")
    p_config.add_argument("--print", dest="print_config", action="store_true")
    p_config.add_argument("--validate", action="store_true")

    return ap

def _verbosity(args) -> Verbosity:
    if args.quiet:
        return Verbosity.QUIET
    return Verbosity(min(Verbosity.NORMAL + args.verbose, Verbosity.DEBUG))

def main(argv: Optional[List[str]] = None, transport: Optional[Transport] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = make_parser()
    args = parser.parse_args(argv)

    try:
        cfg = config_mod.load(args.config)
        apply_config(cfg.section("logging"))
        if args.verbose >= 2:
            set_console_level(logging.DEBUG)
        elif args.verbose == 1:
            set_console_level(logging.INFO)

        if args.cmd == "config":
            if args.validate:
                ok, issues = config_mod.validate_config()
                for issue in issues:
                    print_err(issue)
                if not ok:
                    return 1
                print_ok(f"config ok ({cfg.path or 'defaults'})")
            if args.print_config or not args.validate:
                print(yaml.safe_dump(cfg.as_dict(), sort_keys=False, default_flow_style=False), end="")
            return 0

        if args.cmd is None:
            parser.print_help()
            return 0

        cli = PkgPatchesCLI(args.installed, args.vendor_dir, _verbosity(args), transport=transport)
        if args.cmd == "apply":
            _print_report(cli.apply())
        elif args.cmd == "restore":
            _print_report(cli.restore(args.package, update=args.update))
        elif args.cmd == "list":
            _print_rows(cli.list_patches(args.package), args.json)
    except PatchesError as e:
        logger.debug("command failed", exc_info=True)
        print_err(f"Command failed: {e}")
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())

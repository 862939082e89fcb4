# pkgpatches/resolution.py
"""
resolution.py - patch discovery and the apply/restore protocols

Discovery collects, for one initial package, every (patches, target package)
pair that still has to be processed in the current run:
- other installed packages declaring patches for the initial package
- the initial package's own declarations, which may target any installed package
A History instance (one per run phase) records "<declaring>-><target>" keys so
each pair is handled at most once per run.

There is no ledger of applied patches. State is checked with dry runs instead: a patch whose
dry-run apply fails but whose dry-run revert succeeds is already applied.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pkgpatches.console import PatchIO, Verbosity
from pkgpatches.errors import PatchCommandError, PatchSetError, TransportError
from pkgpatches.fetcher import RemoteContentCache
from pkgpatches.host import InstallationManager, InstalledRepository, Package
from pkgpatches.logging import get_logger
from pkgpatches.patches import Patch, PatchSet

logger = get_logger("resolution")

PatchesAndPackage = Tuple[List[Patch], Package]


class History:
    """Run-scoped set of processed "<declaring>-><target>" keys."""

    def __init__(self, phase: str = ""):
        self.phase = phase
        self._seen: set = set()

    @staticmethod
    def key(declaring: str, target: str) -> str:
        return f"{declaring}->{target}"

    def mark(self, key: str):
        self._seen.add(key)

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._seen))


@dataclass
class PatchReport:
    """Outcome of one apply or restore pass: (package name, patch checksum) pairs."""
    phase: str
    done: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.errors

    def merge(self, other: "PatchReport"):
        self.done.extend(other.done)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)
        self.errors.extend(other.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "done": [list(x) for x in self.done],
            "skipped": [list(x) for x in self.skipped],
            "failed": [list(x) for x in self.failed],
            "errors": [list(x) for x in self.errors],
        }


class PatchResolver:
    def __init__(self, repository: InstalledRepository, installation_manager: InstallationManager,
                 cache: RemoteContentCache, io: Optional[PatchIO] = None,
                 options: Optional[Dict[str, Any]] = None):
        self.repository = repository
        self.installation_manager = installation_manager
        self.cache = cache
        self.io = io or PatchIO()
        self.options = options
        self._patch_sets: Dict[Tuple[str, str], PatchSet] = {}
        self._errors: List[Tuple[str, str]] = []
        # declaring packages whose patch set failed; not retried within this resolver
        self._failed: set = set()

    # -------------------------
    # discovery
    # -------------------------
    def _patch_set(self, package: Package) -> PatchSet:
        config = package.patches
        key = (package.name, config if isinstance(config, str) else json.dumps(config, sort_keys=True))
        ps = self._patch_sets.get(key)
        if ps is None:
            ps = PatchSet(config, self.cache, options=self.options)
            self._patch_sets[key] = ps
        return ps

    def discover(self, initial_package: Package, history: History) -> List[PatchesAndPackage]:
        """Patches still to process for `initial_package` in this run, as (patches, target) pairs."""
        packages = self.repository.get_packages()
        patch_sets: List[Tuple[Package, List[Package]]] = []
        for package in packages:
            if package.patches and package.name != initial_package.name:
                patch_sets.append((package, [initial_package]))
        if initial_package.patches:
            patch_sets.append((initial_package, packages))

        result: List[PatchesAndPackage] = []
        for declaring, targets in patch_sets:
            if declaring.name in self._failed:
                continue
            try:
                patch_set = self._patch_set(declaring)
                for target in targets:
                    key = History.key(declaring.name, target.name)
                    if key in history:
                        continue
                    # marked before resolving: an empty result still counts as processed
                    history.mark(key)
                    patches = patch_set.resolve(target.name, target.version)
                    if patches:
                        result.append((patches, target))
            except (TransportError, PatchSetError) as e:
                self._failed.add(declaring.name)
                logger.warning("could not resolve patches declared by %s: %s", declaring.name, e)
                self.io.write(f"  <warning>Could not resolve patches declared by {declaring.name}</warning>")
                if self.io.is_verbose():
                    self.io.write(f"<warning>{e}</warning>")
                self._errors.append((declaring.name, str(e)))
        return result

    def _drain_errors(self, report: PatchReport):
        report.errors.extend(self._errors)
        self._errors = []

    # -------------------------
    # apply
    # -------------------------
    def apply(self, history: History, packages: Optional[List[Package]] = None) -> PatchReport:
        """Apply every pending patch for the installed packages (or for `packages`)."""
        report = PatchReport("apply")
        self.io.write("<info>Maintaining patches</info>")
        for initial_package in (packages if packages is not None else self.repository.get_canonical_packages()):
            for patches, package in self.discover(initial_package, history):
                path = self.installation_manager.get_install_path(package)
                for patch in patches:
                    self._apply_patch(patch, package, path, report)
        self._drain_errors(report)
        return report

    def _apply_patch(self, patch: Patch, package: Package, path: str, report: PatchReport):
        self.io.write_patch_notice("test", patch, package)
        try:
            patch.apply(path, dry_run=True)
        except PatchCommandError as apply_error:
            try:
                # if reverting would work, the patch is already in place
                patch.revert(path, dry_run=True)
            except PatchCommandError:
                self.io.write_patch_notice("apply", patch, package, apply_error)
                report.failed.append((package.name, patch.checksum))
                return
            logger.debug("patch %s already applied to %s: %s", patch.checksum, package.name, apply_error)
            self.io.write(f"  Patch <info>{patch.checksum}</info> already applied to <info>{package.name}</info>", Verbosity.VERBOSE)
            report.skipped.append((package.name, patch.checksum))
            return
        self.io.write_patch_notice("apply", patch, package)
        try:
            patch.apply(path)
        except PatchCommandError as e:
            self.io.write_patch_failure("apply", e)
            report.failed.append((package.name, patch.checksum))
            return
        report.done.append((package.name, patch.checksum))

    # -------------------------
    # restore
    # -------------------------
    def restore(self, initial_package: Package, history: History) -> PatchReport:
        """Revert, newest first, the patches touching `initial_package` before it goes away."""
        report = PatchReport("restore")
        for patches, package in self.discover(initial_package, history):
            path = self.installation_manager.get_install_path(package)
            for patch in reversed(patches):
                try:
                    patch.revert(path, dry_run=True)
                except PatchCommandError as e:
                    self.io.write_patch_notice("revert", patch, package, e)
                    report.skipped.append((package.name, patch.checksum))
                    continue
                self.io.write_patch_notice("revert", patch, package)
                try:
                    patch.revert(path)
                except PatchCommandError as e:
                    self.io.write_patch_failure("revert", e)
                    report.failed.append((package.name, patch.checksum))
                    continue
                report.done.append((package.name, patch.checksum))
        self._drain_errors(report)
        return report

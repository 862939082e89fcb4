# pkgpatches/hooks.py
"""
hooks.py - lifecycle event wiring

- Event names fired by the package manager and the handlers they map to:
  pre-package-uninstall / pre-package-update -> restore,
  post-install-cmd / post-update-cmd -> apply
- Operation: tagged view of the host's package operation (update | uninstall | unexpected)
- HookManager: event name -> handlers, run in priority order
- PatchesPlugin: activation, no-op installer registration and the two handlers
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pkgpatches.console import PatchIO
from pkgpatches.errors import UnexpectedOperationError
from pkgpatches.fetcher import RemoteContentCache, Transport
from pkgpatches.host import InstallationManager, InstalledRepository, Package
from pkgpatches.logging import get_logger
from pkgpatches.resolution import History, PatchReport, PatchResolver

logger = get_logger("hooks")

PRE_PACKAGE_UNINSTALL = "pre-package-uninstall"
PRE_PACKAGE_UPDATE = "pre-package-update"
POST_INSTALL_CMD = "post-install-cmd"
POST_UPDATE_CMD = "post-update-cmd"

# -----------------------------
# Host-side operations and events
# -----------------------------
@dataclass
class InstallOperation:
    package: Package
    job: str = "install"


@dataclass
class UpdateOperation:
    initial_package: Package
    target_package: Package
    job: str = "update"


@dataclass
class UninstallOperation:
    package: Package
    job: str = "uninstall"


@dataclass
class HostContext:
    """What the package manager hands to a plugin on activation."""
    repository: InstalledRepository
    installation_manager: InstallationManager
    io: PatchIO = field(default_factory=PatchIO)


@dataclass
class PackageEvent:
    name: str
    operation: Any
    host: Optional[HostContext] = None


@dataclass
class ScriptEvent:
    name: str
    host: Optional[HostContext] = None


class OperationKind(enum.Enum):
    UPDATE = "update"
    UNINSTALL = "uninstall"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Operation:
    kind: OperationKind
    initial_package: Optional[Package] = None
    description: str = ""

    @classmethod
    def from_host(cls, operation: Any) -> "Operation":
        job = getattr(operation, "job", None)
        if job == "update":
            return cls(OperationKind.UPDATE, operation.initial_package)
        if job == "uninstall":
            return cls(OperationKind.UNINSTALL, operation.package)
        return cls(OperationKind.UNEXPECTED, None, type(operation).__name__ if job is None else f"{type(operation).__name__}({job})")

    def initial(self) -> Package:
        """The package whose patches must be reverted; fatal for unexpected operations."""
        if self.kind is OperationKind.UNEXPECTED or self.initial_package is None:
            raise UnexpectedOperationError(f"Unexpected operation {self.description}")
        return self.initial_package

# -----------------------------
# HookManager
# -----------------------------
class HookManager:
    def __init__(self):
        self.hooks: Dict[str, List[Dict[str, Any]]] = {}

    def register(self, event: str, name: str, handler: Callable[[Any], Any], priority: int = 10,
                 origin: str = "runtime"):
        if event not in self.hooks:
            self.hooks[event] = []
        self.hooks[event].append({
            "name": name,
            "handler": handler,
            "priority": priority,
            "origin": origin,
            "enabled": True,
        })
        # higher priority first; stable for equal priorities
        self.hooks[event].sort(key=lambda h: -h["priority"])

    def unregister(self, event: str, name: str):
        if event in self.hooks:
            self.hooks[event] = [h for h in self.hooks[event] if h["name"] != name]

    def list(self, event: Optional[str] = None) -> List[Dict[str, Any]]:
        if event:
            return list(self.hooks.get(event, []))
        all_hooks = []
        for entries in self.hooks.values():
            all_hooks.extend(entries)
        return all_hooks

    def enable(self, event: str, name: str):
        for hook in self.hooks.get(event, []):
            if hook["name"] == name:
                hook["enabled"] = True

    def disable(self, event: str, name: str):
        for hook in self.hooks.get(event, []):
            if hook["name"] == name:
                hook["enabled"] = False

    def run(self, event: str, payload: Any = None) -> List[Any]:
        """Call every enabled handler for `event`; a handler exception aborts the dispatch."""
        results = []
        hooks = self.hooks.get(event, [])
        if not hooks:
            return results
        logger.debug("running %d hooks for event '%s'", len(hooks), event)
        for hook in hooks:
            if not hook["enabled"]:
                continue
            try:
                results.append(hook["handler"](payload))
            except Exception:
                logger.error("hook %s failed for event '%s'", hook["name"], event)
                raise
        return results

# -----------------------------
# Installer registration
# -----------------------------
class NoopInstaller:
    """Installer for the plugin's own package type; packages of that type carry only metadata."""

    def __init__(self, package_type: str, io: Optional[PatchIO] = None):
        self.package_type = package_type
        self.io = io

    def supports(self, package_type: str) -> bool:
        return package_type == self.package_type

    def is_installed(self, repository: InstalledRepository, package: Package) -> bool:
        return repository.find_package(package.name) is not None

    def install(self, repository: InstalledRepository, package: Package):
        if not self.is_installed(repository, package):
            repository.add_package(package)

    def update(self, repository: InstalledRepository, initial: Package, target: Package):
        repository.remove_package(initial)
        repository.add_package(target)

    def uninstall(self, repository: InstalledRepository, package: Package):
        repository.remove_package(package)

    def get_install_path(self, package: Package) -> str:
        return ""

# -----------------------------
# Plugin
# -----------------------------
class PatchesPlugin:
    """
    Applies patches declared in `extra.patches` after install/update commands
    and reverts them before packages are updated or removed.

    Each handler keeps its own History for the lifetime of the plugin
    instance, i.e. one command invocation.
    """

    PACKAGE_TYPE = "patches"

    def __init__(self, package_type: Optional[str] = None):
        self.package_type = package_type or self.PACKAGE_TYPE
        self.host: Optional[HostContext] = None
        self.cache: Optional[RemoteContentCache] = None
        self.resolver: Optional[PatchResolver] = None
        self.apply_history = History("apply")
        self.restore_history = History("restore")

    @staticmethod
    def get_subscribed_events() -> Dict[str, str]:
        return {
            PRE_PACKAGE_UNINSTALL: "restore",
            PRE_PACKAGE_UPDATE: "restore",
            POST_UPDATE_CMD: "apply",
            POST_INSTALL_CMD: "apply",
        }

    def activate(self, host: HostContext, transport: Optional[Transport] = None,
                 options: Optional[Dict[str, Any]] = None):
        self.host = host
        self.cache = RemoteContentCache(transport)
        self.resolver = PatchResolver(host.repository, host.installation_manager, self.cache, host.io, options=options)
        host.installation_manager.add_installer(NoopInstaller(self.package_type, host.io))
        logger.debug("plugin activated (package type %s)", self.package_type)

    def subscribe(self, hooks: HookManager):
        for event, method in self.get_subscribed_events().items():
            hooks.register(event, f"pkgpatches.{method}", getattr(self, method), origin="plugin")

    def _require_resolver(self) -> PatchResolver:
        if self.resolver is None:
            raise RuntimeError("PatchesPlugin used before activate()")
        return self.resolver

    def restore(self, event: PackageEvent) -> PatchReport:
        """Revert patches on/from the package an update or uninstall is about to replace."""
        resolver = self._require_resolver()
        initial_package = Operation.from_host(event.operation).initial()
        return resolver.restore(initial_package, self.restore_history)

    def apply(self, event: ScriptEvent) -> PatchReport:
        """Apply the patches of every installed package."""
        resolver = self._require_resolver()
        return resolver.apply(self.apply_history)

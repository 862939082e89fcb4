# pkgpatches/host.py
"""
host.py - adapters for the package manager's installed-package view

- Package: name, version, pretty version, type and the `extra` metadata block
- InstalledRepository: the installed package set, loaded from installed.json
- InstallationManager: install path resolution and the installer registry
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pkgpatches.errors import ConfigError
from pkgpatches.logging import get_logger

logger = get_logger("host")


@dataclass
class Package:
    name: str
    version: str
    pretty_version: Optional[str] = None
    type: str = "library"
    extra: Dict[str, Any] = field(default_factory=dict)
    install_path: Optional[str] = None

    def __post_init__(self):
        if self.pretty_version is None:
            self.pretty_version = self.version

    @property
    def patches(self) -> Optional[Any]:
        """The declared `extra.patches` configuration, or None."""
        value = (self.extra or {}).get("patches")
        return value if value else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Package":
        name = data.get("name")
        if not name:
            raise ConfigError(f"installed package entry without a name: {data!r}")
        version = str(data.get("version_normalized") or data.get("version") or "")
        return cls(
            name=name,
            version=version,
            pretty_version=data.get("version") or version,
            type=data.get("type") or "library",
            extra=data.get("extra") or {},
            install_path=data.get("install-path") or data.get("install_path"),
        )


class InstalledRepository:
    """The set of currently installed packages."""

    def __init__(self, packages: Optional[Iterable[Package]] = None, path: Optional[str] = None):
        self._packages: List[Package] = list(packages or [])
        self.path = path

    @classmethod
    def from_file(cls, path: str) -> "InstalledRepository":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigError(f"cannot read installed packages from {path}: {e}") from e
        except ValueError as e:
            raise ConfigError(f"invalid installed packages file {path}: {e}") from e
        # both the old (list) and the new ({"packages": [...]}) layouts exist
        entries = data.get("packages", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ConfigError(f"invalid installed packages file {path}: expected a list of packages")
        repo = cls((Package.from_dict(e) for e in entries), path=os.path.abspath(path))
        logger.debug("loaded %d installed packages from %s", len(repo._packages), path)
        return repo

    def get_packages(self) -> List[Package]:
        return list(self._packages)

    def get_canonical_packages(self) -> List[Package]:
        """First occurrence of each package name, in repository order."""
        seen = set()
        out = []
        for p in self._packages:
            if p.name in seen:
                continue
            seen.add(p.name)
            out.append(p)
        return out

    def find_package(self, name: str) -> Optional[Package]:
        for p in self._packages:
            if p.name == name:
                return p
        return None

    def add_package(self, package: Package):
        self._packages.append(package)

    def remove_package(self, package: Package):
        self._packages = [p for p in self._packages if p is not package]


class InstallationManager:
    """Resolves install paths and keeps the installer registry."""

    def __init__(self, vendor_dir: str = "vendor", base_dir: Optional[str] = None):
        self.vendor_dir = os.path.abspath(vendor_dir)
        # install-path entries in installed.json are relative to its own directory
        self.base_dir = base_dir
        self._installers: List[Any] = []

    def get_install_path(self, package: Package) -> str:
        if package.install_path:
            if os.path.isabs(package.install_path):
                return package.install_path
            return os.path.normpath(os.path.join(self.base_dir or self.vendor_dir, package.install_path))
        return os.path.join(self.vendor_dir, *package.name.split("/"))

    def add_installer(self, installer: Any):
        self._installers.insert(0, installer)

    def get_installer(self, package_type: str) -> Optional[Any]:
        for installer in self._installers:
            if installer.supports(package_type):
                return installer
        return None

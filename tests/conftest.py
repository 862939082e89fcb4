import io
import json
import logging

import pytest
from rich.console import Console

from pkgpatches import config
from pkgpatches.console import PatchIO, Verbosity
from pkgpatches.errors import PatchCommandError, TransportError
from pkgpatches.fetcher import RemoteContentCache
from pkgpatches.host import InstallationManager, InstalledRepository, Package
from pkgpatches.patches import Patch


class FakeTransport:
    """In-memory transport; records every fetch."""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.calls = []

    def fetch(self, origin, url):
        self.calls.append((origin, url))
        if url not in self.files:
            raise TransportError(f"404 {url}", url=url)
        data = self.files[url]
        if isinstance(data, (dict, list)):
            data = json.dumps(data)
        return data.encode("utf-8") if isinstance(data, str) else data

    def count(self, url):
        return sum(1 for _, u in self.calls if u == url)


class FakePatchTool:
    """
    Stands in for the patch binary: keeps the set of (path, checksum) pairs
    currently applied and records every call as (action, checksum, dry_run).
    """

    def __init__(self):
        self.applied = set()
        self.broken = set()
        self.calls = []

    def apply(self, patch, path, dry_run=False):
        self.calls.append(("apply", patch.checksum, dry_run))
        key = (path, patch.checksum)
        if key in self.applied or patch.checksum in self.broken:
            raise PatchCommandError(f"could not apply patch {patch.checksum}", output="Hunk #1 FAILED", returncode=1)
        if not dry_run:
            self.applied.add(key)

    def revert(self, patch, path, dry_run=False):
        self.calls.append(("revert", patch.checksum, dry_run))
        key = (path, patch.checksum)
        if key not in self.applied:
            raise PatchCommandError(f"could not revert patch {patch.checksum}", output="Hunk #1 FAILED", returncode=1)
        if not dry_run:
            self.applied.discard(key)

    def real_calls(self, action=None):
        return [c for (a, c, dry) in self.calls if not dry and (action is None or a == action)]


@pytest.fixture(autouse=True)
def default_config():
    config.set_config(config.from_dict({}))
    yield config.get_config()
    config.set_config(None)
    # the CLI installs stream handlers bound to captured streams
    root = logging.getLogger("pkgpatches")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def cache(transport):
    return RemoteContentCache(transport)


@pytest.fixture
def patch_tool(monkeypatch):
    tool = FakePatchTool()
    monkeypatch.setattr(Patch, "apply", lambda self, path, dry_run=False: tool.apply(self, path, dry_run))
    monkeypatch.setattr(Patch, "revert", lambda self, path, dry_run=False: tool.revert(self, path, dry_run))
    return tool


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def patch_io(output):
    return PatchIO(Verbosity.NORMAL, Console(file=output, width=200, color_system=None, highlight=False))


@pytest.fixture
def manager(tmp_path):
    return InstallationManager(str(tmp_path / "vendor"))


def make_repo(*packages):
    return InstalledRepository(list(packages))


def pkg(name, version="1.0.0", patches=None, **kwargs):
    extra = {"patches": patches} if patches is not None else {}
    return Package(name=name, version=version, extra=extra, **kwargs)


@pytest.fixture
def installed_json(tmp_path):
    """Write an installed.json in the composer layout and return its path."""
    def _write(entries, layout="packages"):
        target = tmp_path / "vendor" / "composer" / "installed.json"
        target.parent.mkdir(parents=True, exist_ok=True)
        data = {"packages": entries} if layout == "packages" else entries
        target.write_text(json.dumps(data), encoding="utf-8")
        return str(target)
    return _write

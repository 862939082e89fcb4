import os

import pytest

from pkgpatches.errors import ConfigError
from pkgpatches.host import InstallationManager, InstalledRepository, Package


def test_package_from_installed_entry():
    p = Package.from_dict({
        "name": "acme/foo",
        "version": "v1.2.0",
        "version_normalized": "1.2.0.0",
        "type": "library",
        "extra": {"patches": {"acme/bar": ["https://x/p.patch"]}},
        "install-path": "../acme/foo",
    })
    assert p.version == "1.2.0.0"
    assert p.pretty_version == "v1.2.0"
    assert p.patches == {"acme/bar": ["https://x/p.patch"]}
    assert p.install_path == "../acme/foo"


def test_package_without_patches():
    assert Package("a", "1.0").patches is None
    assert Package("a", "1.0", extra={"patches": {}}).patches is None
    with pytest.raises(ConfigError):
        Package.from_dict({"version": "1.0"})


@pytest.mark.parametrize("layout", ["packages", "list"])
def test_repository_from_file(installed_json, layout):
    path = installed_json([
        {"name": "acme/foo", "version": "1.0.0"},
        {"name": "acme/bar", "version": "2.0.0"},
        {"name": "acme/foo", "version": "1.0.0"},
    ], layout=layout)
    repo = InstalledRepository.from_file(path)
    assert [p.name for p in repo.get_packages()] == ["acme/foo", "acme/bar", "acme/foo"]
    assert [p.name for p in repo.get_canonical_packages()] == ["acme/foo", "acme/bar"]
    assert repo.find_package("acme/bar").version == "2.0.0"
    assert repo.find_package("nope") is None


def test_repository_errors(tmp_path):
    with pytest.raises(ConfigError):
        InstalledRepository.from_file(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{")
    with pytest.raises(ConfigError):
        InstalledRepository.from_file(str(bad))
    wrong = tmp_path / "wrong.json"
    wrong.write_text('{"packages": "x"}')
    with pytest.raises(ConfigError):
        InstalledRepository.from_file(str(wrong))


def test_install_paths(tmp_path):
    vendor = tmp_path / "vendor"
    manager = InstallationManager(str(vendor), base_dir=str(vendor / "composer"))
    assert manager.get_install_path(Package("acme/foo", "1.0")) == os.path.join(str(vendor), "acme", "foo")
    relative = Package("acme/bar", "1.0", install_path="../acme/bar")
    assert manager.get_install_path(relative) == os.path.join(str(vendor), "acme", "bar")
    absolute = Package("acme/baz", "1.0", install_path="/opt/baz")
    assert manager.get_install_path(absolute) == "/opt/baz"


def test_installer_registry():
    class Only:
        def __init__(self, kind):
            self.kind = kind

        def supports(self, package_type):
            return package_type == self.kind

    manager = InstallationManager("vendor")
    first, second = Only("patches"), Only("patches")
    manager.add_installer(first)
    manager.add_installer(second)
    assert manager.get_installer("patches") is second
    assert manager.get_installer("library") is None

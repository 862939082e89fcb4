import json

import pytest
import yaml

from pkgpatches import config
from pkgpatches.cli import main
from tests.conftest import FakeTransport


@pytest.fixture
def project(tmp_path, monkeypatch, installed_json):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(config.ENV_VAR, raising=False)
    path = installed_json([
        {"name": "acme/foo", "version": "1.2.0", "install-path": "../acme/foo"},
        {"name": "acme/bar", "version": "1.0.0", "install-path": "../acme/bar",
         "extra": {"patches": {"acme/foo": [
             {"url": "https://x/p1.patch", "title": "First fix"},
             {"url": "https://x/p2.patch", "constraint": "^2.0"},
         ]}}},
    ])
    transport = FakeTransport({"https://x/p1.patch": "p1", "https://x/p2.patch": "p2"})
    return path, transport


def test_list_as_json(project, capsys):
    path, transport = project
    assert main(["--installed", path, "list", "acme/foo", "--json"], transport=transport) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [(r["package"], r["title"], r["url"]) for r in rows] == [("acme/foo", "First fix", "https://x/p1.patch")]


def test_list_table(project, capsys):
    path, transport = project
    assert main(["--installed", path, "list", "acme/foo"], transport=transport) == 0
    out = capsys.readouterr().out
    assert "First fix" in out
    assert "acme/foo" in out


def test_apply_and_restore(project, patch_tool, capsys):
    path, transport = project
    assert main(["--installed", path, "apply"], transport=transport) == 0
    captured = capsys.readouterr()
    assert "Maintaining patches" in captured.out
    assert "Applying patch to acme/foo: First fix" in captured.out
    assert "apply: 1 done, 0 skipped, 0 failed" in captured.err
    assert len(patch_tool.real_calls("apply")) == 1

    # a fresh history per invocation; applied state comes from dry runs
    assert main(["--installed", path, "restore", "acme/foo"], transport=transport) == 0
    assert "restore: 1 done" in capsys.readouterr().err
    assert patch_tool.applied == set()


def test_restore_unknown_package(project, capsys):
    path, transport = project
    assert main(["--installed", path, "restore", "acme/nope"], transport=transport) == 1
    assert "not installed" in capsys.readouterr().err


def test_missing_installed_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(config.ENV_VAR, raising=False)
    assert main(["--installed", str(tmp_path / "none.json"), "apply"]) == 1
    assert "Command failed" in capsys.readouterr().err


def test_config_print_and_validate(project, capsys):
    assert main(["config", "--print"]) == 0
    printed = yaml.safe_load(capsys.readouterr().out)
    assert printed["patches"]["binary"] == "patch"
    assert main(["config", "--validate"]) == 0


def test_config_validate_failure(project, capsys):
    path, _ = project
    with open("pkgpatches.yaml", "w") as f:
        f.write("fetcher:\n  retries: 0\n")
    assert main(["config", "--validate"]) == 1
    assert "fetcher.retries" in capsys.readouterr().err

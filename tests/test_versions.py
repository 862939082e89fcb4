import pytest

from pkgpatches.versions import is_constraint, parse_version, satisfies


@pytest.mark.parametrize("version,constraint,expected", [
    ("1.2.0", None, True),
    ("1.2.0", "", True),
    ("1.2.0", "*", True),
    ("1.2.0", ">=1.0", True),
    ("0.9.0", ">=1.0", False),
    ("1.2.0", ">=1.0,<2.0", True),
    ("2.0.0", ">=1.0 <2.0", False),
    ("1.2.0", "> 1.1", True),
    ("1.4.1", "!=1.4.1", False),
    ("1.2.3", "1.2.3", True),
    ("1.2.3", "==1.2.3", True),
    ("1.2.3.0", "1.2.3", True),
    ("v1.2.3", "=1.2.3", True),
    ("1.2.7", "1.2.*", True),
    ("1.3.0", "1.2.*", False),
    ("1.2.7", "1.2.x", True),
    ("1.9.0", "^1.2.3", True),
    ("2.0.0", "^1.2.3", False),
    ("0.3.5", "^0.3", True),
    ("0.4.0", "^0.3", False),
    ("1.9", "~1.2", True),
    ("2.0", "~1.2", False),
    ("1.2.9", "~1.2.3", True),
    ("1.3.0", "~1.2.3", False),
    ("2.0.5", "1.0 - 2.0", True),
    ("2.1.0", "1.0 - 2.0", False),
    ("2.0.0", "1.0.0 - 2.0.0", True),
    ("2.0.1", "1.0.0 - 2.0.0", False),
    ("2.5.0", "^1.0 || ^2.0", True),
    ("3.0.0", "^1.0 || ^2.0", False),
    ("1.2.9999999.9999999-dev", ">=1.0", True),
    ("1.2.9999999.9999999-dev", "1.2.*", True),
    ("1.2.9999999.9999999-dev", "^2.0", False),
    ("2.0.0-beta1", "^1.2.3", False),
    ("1.3.0-RC1", "~1.2.3", False),
    ("1.3.0-alpha", "1.2.*", False),
    ("2.0.0", "^1.2.3 || ^2.0", True),
])
def test_satisfies(version, constraint, expected):
    assert satisfies(version, constraint) is expected


def test_branch_versions_only_match_literally():
    assert satisfies("dev-master", "dev-master")
    assert satisfies("dev-master", "*")
    assert not satisfies("dev-master", ">=1.0")


def test_parse_version():
    assert str(parse_version("v2.1")) == "2.1"
    assert parse_version("dev-main") is None
    assert parse_version("1.2.9999999.9999999-dev") == parse_version("1.2.9999999.9999999.dev0")
    assert parse_version("1.2.9999999.9999999-dev").is_devrelease
    assert parse_version("1.2.x-dev") is None
    assert parse_version("not a version") is None


def test_garbage_constraint_does_not_match():
    assert not satisfies("1.0.0", ">=banana")


@pytest.mark.parametrize("constraint,expected", [
    ("^1.0 || ^2.0", True),
    (">=1.0, <2.0", True),
    ("1.0 - 2.0", True),
    ("1.2.*", True),
    ("dev-master", True),
    ("*", True),
    ("uri", False),
    (">=banana", False),
    ("", False),
])
def test_is_constraint(constraint, expected):
    assert is_constraint(constraint) is expected

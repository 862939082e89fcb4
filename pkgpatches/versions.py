# pkgpatches/versions.py
"""
versions.py - version constraint evaluation for patch descriptors

Constraint syntax follows the package manager's semantic-version ranges:
- exact: "1.2.3", "=1.2.3", "==1.2.3"
- comparisons: ">=1.2", "<2.0", "!=1.4.1"
- AND: ">=1.2,<2.0" or ">=1.2 <2.0"
- OR: "^1.0 || ^2.0"
- wildcards: "1.2.*", "1.2.x", "*"
- caret: "^1.2.3" (>=1.2.3,<2.0.0), "^0.3" (>=0.3,<0.4)
- tilde: "~1.2" (>=1.2,<2.0), "~1.2.3" (>=1.2.3,<1.3.0)
- hyphen: "1.0 - 2.0" (>=1.0,<2.1)
Upper bounds of ranges exclude pre-releases of the bound ("^1.2.3" rejects "2.0.0-beta1").
Branch versions ("dev-master") only match "*" or themselves.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from pkgpatches.logging import get_logger

logger = get_logger("versions")

_OPERATOR_SPACE = re.compile(r"(>=|<=|!=|==|>|<|=|\^|~)\s+")
_HYPHEN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATORS = (">=", "<=", "!=", "==", ">", "<", "=")


def parse_version(version: str) -> Optional[Version]:
    """
    Parse a package version, tolerating a leading 'v'.

    Numbered branch aliases ("1.2.9999999.9999999-dev") parse as dev releases.
    Returns None for named branches ("dev-master") or garbage.
    """
    if version is None:
        return None
    s = str(version).strip()
    if not s or s.startswith("dev-"):
        return None
    if s[:1] in ("v", "V"):
        s = s[1:]
    if s.endswith("-dev"):
        s = s[: -len("-dev")] + ".dev0"
    try:
        return Version(s)
    except InvalidVersion:
        return None


def _release_parts(text: str) -> List[str]:
    return [p for p in text.strip().lstrip("vV").split(".") if p != ""]


def _bump(parts: List[int], index: int) -> Version:
    """Lowest version (its first dev release) above everything sharing parts[:index + 1]."""
    head = list(parts[: index + 1])
    head[-1] += 1
    return Version(".".join(str(p) for p in head) + ".dev0")


def _numeric(parts: List[str]) -> Optional[List[int]]:
    try:
        return [int(p) for p in parts]
    except ValueError:
        return None


def _range_for_wildcard(token: str) -> Optional[Tuple[Version, Optional[Version]]]:
    parts = _release_parts(token)
    fixed = []
    for p in parts:
        if p in ("*", "x", "X"):
            break
        fixed.append(p)
    nums = _numeric(fixed)
    if nums is None:
        return None
    if not nums:
        return Version("0"), None
    return Version(".".join(str(n) for n in nums)), _bump(nums, len(nums) - 1)


def _range_for_caret(token: str) -> Optional[Tuple[Version, Optional[Version]]]:
    nums = _numeric(_release_parts(token))
    if not nums:
        return None
    lower = Version(".".join(str(n) for n in nums))
    # the first non-zero component is the one allowed to stay fixed
    for i, n in enumerate(nums):
        if n != 0:
            return lower, _bump(nums, i)
    return lower, _bump(nums, len(nums) - 1)


def _range_for_tilde(token: str) -> Optional[Tuple[Version, Optional[Version]]]:
    nums = _numeric(_release_parts(token))
    if not nums:
        return None
    lower = Version(".".join(str(n) for n in nums))
    if len(nums) == 1:
        return lower, _bump(nums, 0)
    return lower, _bump(nums, len(nums) - 2)


def _range_for_hyphen(low: str, high: str) -> Optional[Tuple[Version, Optional[Version], bool]]:
    lower = parse_version(low)
    nums = _numeric(_release_parts(high))
    if lower is None or not nums:
        return None
    if len(nums) < 3:
        # partial upper bound includes every version of that line
        return lower, _bump(nums, len(nums) - 1), False
    return lower, Version(".".join(str(n) for n in nums)), True


def _within(v: Version, lower: Version, upper: Optional[Version], upper_inclusive: bool = False) -> bool:
    if v < lower:
        return False
    if upper is None:
        return True
    return v <= upper if upper_inclusive else v < upper


def _check_token(raw_version: str, v: Optional[Version], token: str) -> bool:
    if token in ("*", "x", "X"):
        return True
    if v is None:
        # branch versions can only be matched literally
        return token.lstrip("=") == str(raw_version).strip()
    if token.startswith("^"):
        rng = _range_for_caret(token[1:])
        return rng is not None and _within(v, *rng)
    if token.startswith("~"):
        rng = _range_for_tilde(token[1:])
        return rng is not None and _within(v, *rng)
    if "*" in token or token.endswith((".x", ".X")):
        rng = _range_for_wildcard(token.lstrip("="))
        return rng is not None and _within(v, *rng)
    for op in _OPERATORS:
        if token.startswith(op):
            want = parse_version(token[len(op):])
            if want is None:
                logger.debug("versions: unparsable bound in %r", token)
                return False
            if op == ">=":
                return v >= want
            if op == "<=":
                return v <= want
            if op == ">":
                return v > want
            if op == "<":
                return v < want
            if op == "!=":
                return v != want
            return v == want
    want = parse_version(token)
    if want is None:
        logger.debug("versions: unsupported constraint token %r", token)
        return False
    return v == want


def _satisfies_all(version: str, v: Optional[Version], constraint: str) -> bool:
    m = _HYPHEN.match(constraint)
    if m:
        if v is None:
            return False
        rng = _range_for_hyphen(m.group(1), m.group(2))
        return rng is not None and _within(v, *rng)
    normalized = _OPERATOR_SPACE.sub(r"\1", constraint)
    tokens = [t for t in re.split(r"[,\s]+", normalized) if t]
    if not tokens:
        return True
    return all(_check_token(version, v, t) for t in tokens)


def satisfies(version: str, constraint: Optional[str]) -> bool:
    """True when `version` falls inside `constraint`; an empty constraint matches everything."""
    if constraint is None or str(constraint).strip() == "":
        return True
    v = parse_version(version)
    for alternative in str(constraint).split("||"):
        if _satisfies_all(version, v, alternative.strip()):
            return True
    return False


def _is_valid_token(token: str) -> bool:
    if token in ("*", "x", "X") or token.lstrip("=").startswith("dev-"):
        return True
    if token.startswith("^"):
        return _range_for_caret(token[1:]) is not None
    if token.startswith("~"):
        return _range_for_tilde(token[1:]) is not None
    if "*" in token or token.endswith((".x", ".X")):
        return _range_for_wildcard(token.lstrip("=")) is not None
    for op in _OPERATORS:
        if token.startswith(op):
            return parse_version(token[len(op):]) is not None
    return parse_version(token) is not None


def is_constraint(constraint: str) -> bool:
    """True when every part of `constraint` is understood by satisfies()."""
    if not isinstance(constraint, str) or not constraint.strip():
        return False
    for alternative in constraint.split("||"):
        alternative = alternative.strip()
        m = _HYPHEN.match(alternative)
        if m:
            if _range_for_hyphen(m.group(1), m.group(2)) is None:
                return False
            continue
        tokens = [t for t in re.split(r"[,\s]+", _OPERATOR_SPACE.sub(r"\1", alternative)) if t]
        if not tokens or not all(_is_valid_token(t) for t in tokens):
            return False
    return True

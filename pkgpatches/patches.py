# pkgpatches/patches.py
"""
patches.py - patch definitions and patch entities

Responsibilities:
- PatchSet: turn one package's declared `extra.patches` configuration into
  concrete Patch objects for a target (package, version), in declaration order.
  Configuration may be inline, or a URL of a JSON document with the same shape;
  descriptors pointing at *.json documents are expanded recursively.
- Patch: fetched patch content plus apply/revert against an install path,
  delegated to `patch` (or `git apply` inside git work trees), with dry-run probing.
"""

from __future__ import annotations

import os
import fnmatch
import hashlib
import subprocess
from urllib.parse import urljoin, urlparse
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pkgpatches.config import get_patches_config
from pkgpatches.errors import PatchCommandError, PatchSetError
from pkgpatches.fetcher import RemoteContentCache, is_remote
from pkgpatches.logging import get_logger
from pkgpatches.versions import is_constraint, satisfies

logger = get_logger("patches")

_CHECKSUM_KEYS = ("sha256", "sha512", "sha1")

# ---------------------------------------------------------------------
# utilities
# ---------------------------------------------------------------------
def content_checksum(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()

# canonicalize checksum field: accepts "sha256:hex" or per-algorithm keys
def _expected_checksums(descriptor: Mapping[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for alg in _CHECKSUM_KEYS:
        if descriptor.get(alg):
            out[alg] = str(descriptor[alg]).strip().lower()
    raw = descriptor.get("checksum")
    if raw:
        s = str(raw).strip()
        if ":" in s:
            alg, val = s.split(":", 1)
            out[alg.strip().lower()] = val.strip().lower()
        else:
            out["sha256"] = s.lower()
    return out

def _verify_checksums(content: bytes, expected: Dict[str, str], url: str):
    for alg, val in expected.items():
        if alg not in hashlib.algorithms_available:
            raise PatchSetError(f"unsupported checksum algorithm {alg!r} for {url}")
        got = hashlib.new(alg, content).hexdigest()
        if got != val:
            raise PatchSetError(f"checksum mismatch for {url}: {alg} expected {val} got {got}")

def _expand_tokens(url: str, package_name: str, version: str) -> str:
    return url.replace("{package}", package_name).replace("{version}", str(version))

def _join_url(base: Optional[str], url: str) -> str:
    """Resolve `url` relative to the document it was declared in."""
    if not base or urlparse(url).scheme or os.path.isabs(url):
        return url
    if is_remote(base) or base.startswith("file://"):
        return urljoin(base, url)
    return os.path.join(os.path.dirname(base), url)

def _is_document(url: str) -> bool:
    return urlparse(url).path.lower().endswith(".json")

# ---------------------------------------------------------------------
# Patch
# ---------------------------------------------------------------------
class Patch:
    """One resolved patch: content, checksum and optional title."""

    def __init__(self, content: bytes, url: str, title: Optional[str] = None,
                 options: Optional[Dict[str, Any]] = None):
        self.content = content
        self.url = url
        self.title = title or None
        self.checksum = content_checksum(content)
        self._options = options if options is not None else get_patches_config()

    def __repr__(self) -> str:
        return f"Patch({self.checksum[:12]}, url={self.url!r}, title={self.title!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Patch):
            return NotImplemented
        return (self.checksum, self.url, self.title) == (other.checksum, other.url, other.title)

    def __hash__(self) -> int:
        return hash((self.checksum, self.url, self.title))

    def apply(self, path: str, dry_run: bool = False):
        """Apply to `path`; raises PatchCommandError if the patch does not apply cleanly."""
        self._run(path, dry_run=dry_run, reverse=False)

    def revert(self, path: str, dry_run: bool = False):
        """Reverse-apply from `path`; raises PatchCommandError if it is not currently applied."""
        self._run(path, dry_run=dry_run, reverse=True)

    def _command(self, path: str, dry_run: bool, reverse: bool) -> Tuple[List[str], Optional[str]]:
        strip = int(self._options.get("strip", 1))
        extra = list(self._options.get("extra_args") or [])
        if self._options.get("use_git", True) and os.path.isdir(os.path.join(path, ".git")):
            # git apply (supports --check for dry-run)
            cmd = ["git", "-C", path, "apply", f"-p{strip}"]
            if dry_run:
                cmd.append("--check")
            if reverse:
                cmd.append("-R")
            return cmd + extra + ["-"], None
        cmd = [self._options.get("binary", "patch"), f"-p{strip}", "-f", "-s", "--no-backup-if-mismatch", "-r", "-"]
        if dry_run:
            cmd.append("--dry-run")
        if reverse:
            cmd.append("-R")
        return cmd + extra, path

    def _run(self, path: str, dry_run: bool, reverse: bool):
        action = "revert" if reverse else "apply"
        if not os.path.isdir(path):
            raise PatchCommandError(f"cannot {action} patch {self.checksum}: {path} is not a directory")
        cmd, cwd = self._command(path, dry_run, reverse)
        logger.debug("running %s (cwd=%s dry_run=%s)", " ".join(cmd), cwd, dry_run)
        try:
            proc = subprocess.run(cmd, cwd=cwd, input=self.content, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            raise PatchCommandError(f"patch tool not found: {e}") from e
        out = (proc.stdout + proc.stderr).decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise PatchCommandError(
                f"could not {action} patch {self.checksum} on {path}" + (" (dry-run)" if dry_run else ""),
                output=out,
                returncode=proc.returncode,
            )
        return out

# ---------------------------------------------------------------------
# PatchSet
# ---------------------------------------------------------------------
class PatchSet:
    """
    Resolver for one declaring package's patch configuration.

    The configuration maps package names (or shell-style globs) to either an
    ordered list of descriptors, or a mapping of version constraint to such a
    list. A descriptor is a URL string or {"url", "title"?, "constraint"?,
    "sha256"?/"checksum"?}; URLs ending in .json name documents of the same
    shape that are expanded in place.
    """

    def __init__(self, patches: Union[str, Mapping[str, Any]], cache: RemoteContentCache,
                 options: Optional[Dict[str, Any]] = None):
        if not isinstance(patches, (str, Mapping)):
            raise PatchSetError(f"patch configuration must be a mapping or a URL, got {type(patches).__name__}")
        self._raw = patches
        self._definitions: Optional[Mapping[str, Any]] = None
        self.cache = cache
        self.options = options if options is not None else get_patches_config()

    @property
    def source_url(self) -> Optional[str]:
        return self._raw if isinstance(self._raw, str) else None

    def definitions(self) -> Mapping[str, Any]:
        if self._definitions is None:
            if isinstance(self._raw, str):
                data = self.cache.get_json(self._raw)
                if not isinstance(data, Mapping):
                    raise PatchSetError(f"patch document {self._raw} must contain a mapping of package names")
                self._definitions = data
            else:
                self._definitions = self._raw
        return self._definitions

    def resolve(self, package_name: str, version: str) -> List[Patch]:
        out: List[Patch] = []
        entries = self._entries_for(self.definitions(), package_name)
        if entries is None:
            return out
        visited = {self.source_url} if self.source_url else set()
        self._expand(entries, package_name, version, self.source_url, visited, out)
        return out

    get_patches = resolve

    # -------------------------
    # helpers
    # -------------------------
    @staticmethod
    def _entries_for(definitions: Mapping[str, Any], package_name: str) -> Optional[Any]:
        if package_name in definitions:
            return definitions[package_name]
        for key, entries in definitions.items():
            if any(c in key for c in "*?[") and fnmatch.fnmatchcase(package_name, key):
                return entries
        return None

    def _expand(self, entries: Any, package_name: str, version: str, base_url: Optional[str],
                visited: set, out: List[Patch]):
        if isinstance(entries, Mapping) and "url" not in entries:
            # version-keyed: {"constraint": [descriptors]}
            for constraint, group in entries.items():
                if not is_constraint(constraint):
                    raise PatchSetError(f"invalid patch descriptor or version constraint {constraint!r} for {package_name}")
                if satisfies(version, constraint):
                    self._expand(group, package_name, version, base_url, visited, out)
            return
        if isinstance(entries, (str, Mapping)):
            entries = [entries]
        if not isinstance(entries, list):
            raise PatchSetError(f"patch entries for {package_name} must be a list, got {type(entries).__name__}")
        for entry in entries:
            if isinstance(entry, list):
                self._expand(entry, package_name, version, base_url, visited, out)
                continue
            descriptor = {"url": entry} if isinstance(entry, str) else entry
            if not isinstance(descriptor, Mapping) or not descriptor.get("url"):
                raise PatchSetError(f"invalid patch descriptor for {package_name}: {entry!r}")
            constraint = descriptor.get("constraint")
            if constraint and not satisfies(version, constraint):
                logger.debug("skipping %s for %s %s (constraint %s)", descriptor["url"], package_name, version, constraint)
                continue
            url = _join_url(base_url, _expand_tokens(str(descriptor["url"]), package_name, version))
            if _is_document(url):
                self._expand_document(url, package_name, version, visited, out)
                continue
            content = self.cache.get_bytes(url)
            expected = _expected_checksums(descriptor)
            if expected:
                _verify_checksums(content, expected, url)
            out.append(Patch(content, url, descriptor.get("title"), options=self.options))

    def _expand_document(self, url: str, package_name: str, version: str, visited: set, out: List[Patch]):
        if url in visited:
            logger.warning("patch document %s includes itself; skipping", url)
            return
        doc = self.cache.get_json(url)
        if isinstance(doc, Mapping) and "url" not in doc:
            doc = self._entries_for(doc, package_name)
            if doc is None:
                return
        visited.add(url)
        try:
            self._expand(doc, package_name, version, url, visited, out)
        finally:
            visited.discard(url)

# pkgpatches/config.py
# -*- coding: utf-8 -*-
"""
pkgpatches central configuration loader

Features:
- Read YAML/JSON config from multiple locations (explicit path, env override, cwd, user)
- Merge with authoritative DEFAULTS, normalize paths and coerce numbers
- Validate structure with pydantic models, warn or error (fatal optional)
- Provide access via Config dataclass (get_config(), dot-path getter, section helpers)
- Thread-safe load/reload with watcher callbacks (logging re-applies itself on reload)
"""

from __future__ import annotations
import os
import json
import logging
import threading
from pathlib import Path
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List, Tuple, Callable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pkgpatches.errors import ConfigError

logger = logging.getLogger("pkgpatches.config")

ENV_VAR = "PKGPATCHES_CONFIG"

# ----------------------------
# DEFAULT configuration (authoritative base)
# ----------------------------
DEFAULTS: Dict[str, Any] = {
    "logging": {
        "level": "WARNING",
        "file": None,
        "file_level": "DEBUG",
        "color": True,
        "format": None,
        "datefmt": "%H:%M:%S",
        "max_size": "10M",  # human readable
        "backups": 3,
    },
    "fetcher": {
        "http_timeout": 30,
        "retries": 3,
        "retry_backoff": 0.5,
        "user_agent": "pkgpatches",
    },
    "patches": {
        "binary": "patch",
        "strip": 1,
        "extra_args": [],
        "use_git": True,
    },
    "host": {
        "installed": "vendor/composer/installed.json",
        "vendor_dir": "vendor",
        "package_type": "patches",
    },
}

# ----------------------------
# Validation models
# ----------------------------
class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class LoggingSection(_Section):
    level: str = "WARNING"
    file: Optional[str] = None
    file_level: str = "DEBUG"
    color: bool = True
    format: Optional[str] = None
    datefmt: str = "%H:%M:%S"
    max_size: Any = "10M"
    max_size_bytes: Optional[int] = None
    backups: int = Field(default=3, ge=0)


class FetcherSection(_Section):
    http_timeout: float = Field(default=30, gt=0)
    retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=0.5, ge=0)
    user_agent: str = "pkgpatches"


class PatchesSection(_Section):
    binary: str = "patch"
    strip: int = Field(default=1, ge=0)
    extra_args: List[str] = Field(default_factory=list)
    use_git: bool = True


class HostSection(_Section):
    installed: str = "vendor/composer/installed.json"
    vendor_dir: str = "vendor"
    package_type: str = "patches"


class ConfigModel(_Section):
    logging: LoggingSection = Field(default_factory=LoggingSection)
    fetcher: FetcherSection = Field(default_factory=FetcherSection)
    patches: PatchesSection = Field(default_factory=PatchesSection)
    host: HostSection = Field(default_factory=HostSection)

# ----------------------------
# Dataclass to hold config
# ----------------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=dict)     # values loaded from file (if any)
    merged: Dict[str, Any] = field(default_factory=dict)  # merged with DEFAULTS
    path: Optional[Path] = None

    def get(self, path: str, default: Any = None) -> Any:
        """Dot-separated getter for merged config."""
        parts = path.split(".") if path else []
        cur: Any = self.merged
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur

    def section(self, name: str) -> Dict[str, Any]:
        val = self.merged.get(name)
        return deepcopy(val) if isinstance(val, dict) else {}

    def as_dict(self) -> Dict[str, Any]:
        return deepcopy(self.merged)

# ----------------------------
# Module state
# ----------------------------
_CONFIG: Optional[Config] = None
_CONFIG_LOCK = threading.RLock()
_WATCH_CALLBACKS: List[Callable[[Config], None]] = []

# ----------------------------
# Utilities
# ----------------------------
def _human_size_to_bytes(val: Any) -> Optional[int]:
    if val is None:
        return None
    if isinstance(val, int):
        return val
    s = str(val).strip().upper()
    units = {"KB": 1024, "K": 1024, "MB": 1024**2, "M": 1024**2, "GB": 1024**3, "G": 1024**3}
    try:
        for suffix, mul in units.items():
            if s.endswith(suffix):
                num = float(s[: -len(suffix)].strip())
                return int(num * mul)
        return int(float(s))
    except ValueError:
        logger.warning("config: cannot parse human size '%s'", val)
        return None

def _expand_path(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    return os.path.abspath(os.path.expanduser(os.path.expandvars(val)))

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    res = deepcopy(a)
    for k, v in b.items():
        if k in res and isinstance(res[k], dict) and isinstance(v, dict):
            res[k] = _deep_merge(res[k], v)
        else:
            res[k] = deepcopy(v)
    return res

def _find_candidates(explicit: Optional[str] = None) -> List[Path]:
    candidates: List[Path] = []
    env = os.environ.get(ENV_VAR)
    if explicit:
        candidates.append(Path(explicit))
    if env:
        candidates.append(Path(env))
    candidates.extend([
        Path.cwd() / "pkgpatches.yaml",
        Path.cwd() / "pkgpatches.yml",
        Path.cwd() / "pkgpatches.json",
        Path.home() / ".config" / "pkgpatches" / "config.yaml",
    ])
    return candidates

def _load_file(path: Path) -> Dict[str, Any]:
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(txt)
        else:
            # YAML is a superset of JSON, so anything else goes through PyYAML
            data = yaml.safe_load(txt)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping, got {type(data).__name__}")
    return data

def _normalize_and_coerce(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize path fields, convert human sizes and coerce basic types."""
    out = deepcopy(cfg)
    log_cfg = out.get("logging")
    if isinstance(log_cfg, dict):
        if log_cfg.get("file"):
            log_cfg["file"] = _expand_path(str(log_cfg["file"]))
        if "max_size" in log_cfg:
            ms = _human_size_to_bytes(log_cfg["max_size"])
            if ms is not None:
                log_cfg["max_size_bytes"] = ms

    fetch_cfg = out.get("fetcher")
    if isinstance(fetch_cfg, dict):
        try:
            fetch_cfg["retries"] = int(fetch_cfg.get("retries", 1))
            fetch_cfg["http_timeout"] = float(fetch_cfg.get("http_timeout", 30))
        except (TypeError, ValueError):
            logger.debug("config: failed to coerce fetcher fields", exc_info=True)

    patch_cfg = out.get("patches")
    if isinstance(patch_cfg, dict) and isinstance(patch_cfg.get("extra_args"), str):
        patch_cfg["extra_args"] = patch_cfg["extra_args"].split()
    return out

def _validate_structure(cfg: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Return (ok, issues_list)."""
    try:
        ConfigModel.model_validate(cfg)
    except ValidationError as e:
        issues = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            issues.append(f"{loc}: {err.get('msg')}")
        return False, issues
    return True, []

# ----------------------------
# Loading / reloading
# ----------------------------
def _find_path(explicit: Optional[str] = None) -> Optional[Path]:
    if explicit and not Path(explicit).exists():
        raise ConfigError(f"config file not found: {explicit}")
    for p in _find_candidates(explicit):
        if p.exists():
            return p
    return None

def load(explicit_path: Optional[str] = None, fatal: bool = False) -> Config:
    """
    Load and merge config. If fatal=True then validation failures raise ConfigError.
    Returns Config object and installs it as the process-wide config.
    """
    global _CONFIG
    with _CONFIG_LOCK:
        cfg_path = _find_path(explicit_path)
        raw: Dict[str, Any] = _load_file(cfg_path) if cfg_path else {}
        merged = _deep_merge(DEFAULTS, raw)
        normalized = _normalize_and_coerce(merged)
        ok, issues = _validate_structure(normalized)
        if not ok:
            msg = f"config: validation issues: {issues}"
            if fatal:
                raise ConfigError(msg)
            logger.warning(msg)
        _CONFIG = Config(raw=raw, merged=normalized, path=cfg_path)
        logger.debug("config: loaded merged config (from=%s)", str(cfg_path) if cfg_path else "<defaults>")
        return _CONFIG

def get_config() -> Config:
    global _CONFIG
    with _CONFIG_LOCK:
        if _CONFIG is None:
            _CONFIG = load()
        return _CONFIG

def set_config(cfg: Optional[Config]) -> None:
    """Install a prebuilt Config (or reset to lazy loading with None)."""
    global _CONFIG
    with _CONFIG_LOCK:
        _CONFIG = cfg

def from_dict(data: Dict[str, Any]) -> Config:
    """Build a Config from an in-memory override mapping without touching the filesystem."""
    merged = _normalize_and_coerce(_deep_merge(DEFAULTS, data))
    ok, issues = _validate_structure(merged)
    if not ok:
        raise ConfigError(f"config: validation issues: {issues}")
    return Config(raw=deepcopy(data), merged=merged)

def reload(explicit_path: Optional[str] = None) -> Config:
    cfg = load(explicit_path)
    _notify_watchers(cfg)
    return cfg

# ----------------------------
# Watcher API
# ----------------------------
def register_watch_callback(cb: Callable[[Config], None]) -> None:
    with _CONFIG_LOCK:
        if cb not in _WATCH_CALLBACKS:
            _WATCH_CALLBACKS.append(cb)

def unregister_watch_callback(cb: Callable[[Config], None]) -> None:
    with _CONFIG_LOCK:
        if cb in _WATCH_CALLBACKS:
            _WATCH_CALLBACKS.remove(cb)

def _notify_watchers(cfg: Config) -> None:
    with _CONFIG_LOCK:
        cbs = list(_WATCH_CALLBACKS)
    for cb in cbs:
        cb(cfg)

# ----------------------------
# Convenience helpers for modules
# ----------------------------
def get_fetcher_config() -> Dict[str, Any]:
    return get_config().section("fetcher")

def get_patches_config() -> Dict[str, Any]:
    return get_config().section("patches")

def get_host_config() -> Dict[str, Any]:
    return get_config().section("host")

def validate_config() -> Tuple[bool, List[str]]:
    cfg = get_config()
    ok, issues = _validate_structure(cfg.merged)
    log_file = cfg.get("logging.file")
    if log_file:
        parent = Path(log_file).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            issues.append(f"logging.file parent {parent} not writable")
    return (len(issues) == 0, issues)

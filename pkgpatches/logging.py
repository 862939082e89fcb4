# pkgpatches/logging.py
# -*- coding: utf-8 -*-
"""
pkgpatches logging

Features:
 - Integration with pkgpatches.config (re-applied on config reload)
 - Console color formatter
 - Rotating file handler
 - Per-module loggers via LoggerAdapter ('pkgpatches_module' on every record)
 - Thread-safe reconfiguration and level metrics

User-facing patch notices do not go through here; see pkgpatches.console.
"""

from __future__ import annotations
import sys
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Dict, Any, Optional, List

from pkgpatches.config import Config, get_config, register_watch_callback

ROOT_LOGGER_NAME = "pkgpatches"
DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(pkgpatches_module)s] %(message)s"

_logger = logging.getLogger("pkgpatches.logging")

# ----------------------
# Color formatter
# ----------------------
class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[37m",    # light gray
        logging.INFO: "\033[36m",     # cyan
        logging.WARNING: "\033[33m",  # yellow
        logging.ERROR: "\033[31m",    # red
        logging.CRITICAL: "\033[41;37m", # white on red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = color

    def format(self, record):
        msg = super().format(record)
        if self.color:
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{msg}{self.RESET}"
        return msg

# ----------------------
# Records logged through plain getLogger() lack the module field
# ----------------------
class ModuleNameFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "pkgpatches_module"):
            name = record.name
            prefix = ROOT_LOGGER_NAME + "."
            record.pkgpatches_module = name[len(prefix):] if name.startswith(prefix) else name
        return True

# ----------------------
# PkgPatchesLogger (singleton)
# ----------------------
class PkgPatchesLogger:
    _instance = None
    _singleton_lock = threading.Lock()

    def __new__(cls):
        with cls._singleton_lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._inited = False
        return cls._instance

    def __init__(self):
        if self._inited:
            return
        self._lock = threading.RLock()
        self._root = logging.getLogger(ROOT_LOGGER_NAME)
        self._handlers: List[logging.Handler] = []
        self._metrics: Dict[str, int] = {lvl: 0 for lvl in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")}
        self._configured = False
        register_watch_callback(self._on_config_reload)
        self._inited = True

    # ----------------------
    # Internal helpers
    # ----------------------
    def _count_levels_filter(self, record):
        name = record.levelname
        if name in self._metrics:
            self._metrics[name] += 1
        return True

    def _on_config_reload(self, cfg: Config):
        self.apply_config(cfg.section("logging"))

    # ----------------------
    # Configuration (apply/reload)
    # ----------------------
    def apply_config(self, cfg: Dict[str, Any], level_override: Optional[int] = None):
        with self._lock:
            for h in list(self._handlers):
                self._root.removeHandler(h)
                h.close()
            self._handlers.clear()

            fmt = cfg.get("format") or DEFAULT_FORMAT
            datefmt = cfg.get("datefmt", "%H:%M:%S")
            level = level_override if level_override is not None else getattr(logging, str(cfg.get("level", "WARNING")).upper(), logging.WARNING)

            ch = logging.StreamHandler(sys.stderr)
            ch.setLevel(level)
            ch.addFilter(ModuleNameFilter())
            ch.addFilter(self._count_levels_filter)
            ch.setFormatter(ColorFormatter(fmt, datefmt=datefmt, color=bool(cfg.get("color", True)) and sys.stderr.isatty()))
            self._root.addHandler(ch)
            self._handlers.append(ch)

            root_level = level
            if cfg.get("file"):
                try:
                    file_path = Path(cfg["file"]).expanduser()
                    file_path.parent.mkdir(parents=True, exist_ok=True)
                    max_bytes = cfg.get("max_size_bytes") or 10 * 1024 * 1024
                    fh = logging.handlers.RotatingFileHandler(str(file_path), maxBytes=int(max_bytes), backupCount=int(cfg.get("backups", 3)), encoding="utf-8")
                    file_level = getattr(logging, str(cfg.get("file_level", "DEBUG")).upper(), logging.DEBUG)
                    fh.setLevel(file_level)
                    fh.addFilter(ModuleNameFilter())
                    fh.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
                    self._root.addHandler(fh)
                    self._handlers.append(fh)
                    root_level = min(root_level, file_level)
                except OSError:
                    _logger.exception("logging: failed to configure file handler")

            self._root.setLevel(root_level)
            self._root.propagate = False
            self._configured = True
            _logger.debug("logging: configuration applied")

    def ensure_configured(self):
        if not self._configured:
            self.apply_config(get_config().section("logging"))

    def set_console_level(self, level: int):
        """Lower or raise the console threshold, e.g. from CLI verbosity flags."""
        with self._lock:
            self.ensure_configured()
            for h in self._handlers:
                if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
                    h.setLevel(level)
            if level < self._root.level:
                self._root.setLevel(level)

    # ----------------------
    # Public API
    # ----------------------
    def get_logger(self, module_name: str) -> logging.LoggerAdapter:
        """Return a LoggerAdapter that injects 'pkgpatches_module' into records."""
        base = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")
        return logging.LoggerAdapter(base, {"pkgpatches_module": module_name})

    def get_metrics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._metrics)

# ----------------------
# Public factory
# ----------------------
_GLOBAL_LOGGER = PkgPatchesLogger()

def get_logger(module: str) -> logging.LoggerAdapter:
    return _GLOBAL_LOGGER.get_logger(module)

def set_console_level(level: int):
    return _GLOBAL_LOGGER.set_console_level(level)

def apply_config(cfg: Dict[str, Any], level_override: Optional[int] = None):
    return _GLOBAL_LOGGER.apply_config(cfg, level_override)

def get_metrics():
    return _GLOBAL_LOGGER.get_metrics()

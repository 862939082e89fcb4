# pkgpatches/errors.py
"""Exception hierarchy shared by the pkgpatches modules."""

from __future__ import annotations

from typing import Optional


class PatchesError(Exception):
    """Base class for every error raised by pkgpatches."""


class ConfigError(PatchesError):
    pass


class UnexpectedOperationError(PatchesError):
    """The host fired an event whose operation is neither an update nor an uninstall."""


class TransportError(PatchesError):
    """Fetching a URL failed (network, missing file, undecodable document)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class PatchSetError(PatchesError):
    """The declared patch configuration is malformed or fails verification."""


class PatchCommandError(PatchesError):
    """The patch command did not apply/revert cleanly."""

    def __init__(self, message: str, output: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode

    def __str__(self) -> str:
        base = super().__str__()
        if self.output:
            return f"{base}\n{self.output}"
        return base

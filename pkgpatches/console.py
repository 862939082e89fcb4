# pkgpatches/console.py
"""
console.py - user-facing output with verbosity levels

The host prints patch notices with lightweight tags (<info>, <comment>,
<warning>, <error>); PatchIO renders them through a rich Console.
"""

from __future__ import annotations

import re
import sys
from enum import IntEnum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

ACTION_ADVERBS = {"test": "on", "apply": "to", "revert": "from"}

_TAG_STYLES = {
    "info": "green",
    "comment": "yellow",
    "warning": "bold yellow",
    "error": "bold red",
}
_TAG_RE = re.compile(r"<(/?)(info|comment|warning|error)>")


class Verbosity(IntEnum):
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    VERY_VERBOSE = 3
    DEBUG = 4


def render_tags(message: str) -> str:
    """Escape rich markup in `message`, then turn host tags into rich styles."""
    out = []
    pos = 0
    for m in _TAG_RE.finditer(message):
        out.append(escape(message[pos:m.start()]))
        closing, tag = m.group(1), m.group(2)
        style = _TAG_STYLES[tag]
        out.append(f"[/{style}]" if closing else f"[{style}]")
        pos = m.end()
    out.append(escape(message[pos:]))
    return "".join(out)


class PatchIO:
    """Console sink handed to the resolution engine."""

    def __init__(self, verbosity: Verbosity = Verbosity.NORMAL, console: Optional[Console] = None):
        self.verbosity = Verbosity(verbosity)
        self.console = console or Console(file=sys.stdout, highlight=False, soft_wrap=True)

    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    def is_very_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERY_VERBOSE

    def write(self, message: str, verbosity: Verbosity = Verbosity.NORMAL):
        if self.verbosity < verbosity or self.verbosity == Verbosity.QUIET:
            return
        self.console.print(render_tags(message), highlight=False)

    def write_patch_notice(self, action: str, patch: Any, package: Any, error: Optional[BaseException] = None):
        """
        One line per patch and phase, plus a warning line when `error` is set:

          Applying patch <checksum> to <name> (<pretty version>): <title>
          Could not apply patch
        """
        if action == "test" and not self.is_very_verbose():
            return
        title = getattr(patch, "title", None)
        msg = "  " + action.capitalize() + "ing patch"
        if self.is_verbose() or not title:
            msg += f" <info>{patch.checksum}</info>"
        msg += " " + ACTION_ADVERBS[action]
        msg += f" <info>{package.name}</info>"
        if self.is_verbose():
            msg += f" (<comment>{package.pretty_version}</comment>)"
        if title:
            msg += f": <comment>{title}</comment>"
        self.write(msg)
        if error is not None:
            self.write_patch_failure(action, error)

    def write_patch_failure(self, action: str, error: BaseException):
        line = f"  <warning>Could not {action} patch</warning>"
        if action == "revert":
            line += " (was probably not applied)"
        self.write(line)
        if self.is_verbose():
            self.write(f"<warning>{error}</warning>")

"""Opening source links from rendered reports.

Hosts that display ``SymbolicationReport.render_html()`` call
``LinkDispatcher.handle_href()`` (or ``handle()`` with an already normalized
payload) when the user clicks a link. How the host learns about the click is
the host's business; this module only needs ``{path, line, column}``.
"""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

LOG = logging.getLogger(__name__)

Opener = Callable[[str, int, int], bool]


@dataclass(frozen=True)
class LinkPayload:
    path: str
    line: int = 0
    column: int = 0


def _to_int(value: Optional[str]) -> int:
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def parse_link_href(href: str) -> Optional[LinkPayload]:
    """Payload for an ``href`` produced by ``SourceLink.href`` (``path#line``)."""
    if not href:
        return None
    if "#" not in href:
        return LinkPayload(href)
    # Paths may contain "#" themselves; the line follows the last one
    path, _, fragment = href.rpartition("#")
    line, _, column = fragment.partition(":")
    return LinkPayload(path, _to_int(line or None), _to_int(column or None))


def payload_from_mapping(infos: Mapping[str, str]) -> Optional[LinkPayload]:
    """Payload from the ``href``/``line``/``column`` attributes of a link."""
    if not infos or "href" not in infos:
        return None
    return LinkPayload(infos["href"], _to_int(infos.get("line")), _to_int(infos.get("column")))


class EditorOpener:
    """Launches an external editor from a command template.

    The template is split like a shell command line and may use ``{path}``,
    ``{line}`` and ``{column}``, e.g. ``code -g {path}:{line}:{column}``.
    """

    def __init__(self, template: str):
        self.template = template

    def __call__(self, path: str, line: int, column: int) -> bool:
        if not self.template:
            LOG.warning("No editor command configured, cannot open %s", path)
            return False
        args = [part.format(path=path, line=line, column=column)
                for part in shlex.split(self.template)]
        try:
            subprocess.Popen(args, stdin=subprocess.DEVNULL,
                             stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            LOG.error("Failed to launch editor %s: %s", args[0], e)
            return False
        return True


class LinkDispatcher:
    """Routes clicked source links to an opener callback."""

    def __init__(self, opener: Opener):
        self.opener = opener

    def handle(self, payload: Optional[LinkPayload]) -> bool:
        """Open ``payload`` if it points at an existing file."""
        if payload is None or not os.path.isfile(payload.path):
            return False
        return bool(self.opener(payload.path, payload.line, payload.column))

    def handle_href(self, href: str) -> bool:
        return self.handle(parse_link_href(href))

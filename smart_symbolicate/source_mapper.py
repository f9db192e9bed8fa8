"""Best-effort mapping of IL2CPP symbols back to C# sources.

IL2CPP names generated functions ``<Class>_<Method>_m<hash>``. Given such a
name we look for ``<Class>.cs`` in the project and for a declaration-looking
line mentioning ``<Method>``. The result is a guess and is labelled as one.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from .core import SourceLink

LOG = logging.getLogger(__name__)

# Files Unity imports as text assets (scripts included)
TEXT_ASSET_SUFFIXES = (".cs", ".txt", ".json", ".xml", ".yaml", ".csv", ".html", ".htm")

IGNORED_DIRS = {".git", "Library", "Temp", "Logs", "obj", "Build", "Builds", "node_modules"}


class SourceHeuristicMapper:
    """Appends a guessed source location to libil2cpp frames."""

    def __init__(self, source_root: str, suffixes: Iterable[str] = TEXT_ASSET_SUFFIXES):
        self.source_root = source_root
        self.suffixes = tuple(suffixes)
        self._index: Optional[Dict[str, List[str]]] = None

    def clear_index(self) -> None:
        """Forget the file index so the next lookup walks the source root again."""
        self._index = None

    def _build_index(self) -> Dict[str, List[str]]:
        index: Dict[str, List[str]] = {}
        if not self.source_root or not os.path.isdir(self.source_root):
            return index

        for root, dirs, files in os.walk(self.source_root):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
            for name in sorted(files):
                stem, suffix = os.path.splitext(name)
                if suffix in self.suffixes:
                    index.setdefault(stem, []).append(os.path.join(root, name))
        LOG.debug("Indexed %d source names under %s", len(index), self.source_root)
        return index

    def find_class_files(self, class_name: str) -> List[str]:
        """Source files whose name (without suffix) is exactly ``class_name``."""
        if self._index is None:
            self._index = self._build_index()
        return list(self._index.get(class_name, []))

    @staticmethod
    def is_declaration_candidate(line: str, method_name: str) -> bool:
        if method_name not in line:
            return False
        # Assignments are not declarations
        if "=" in line:
            return False
        # Member access means a call site
        if "." in line:
            return False
        return True

    def find_source_link(self, symbol: str) -> Optional[SourceLink]:
        """Guess where ``symbol`` is declared, or None."""
        components = [part for part in symbol.strip().split("_") if part]
        if len(components) < 2:
            return None

        class_name, method_name = components[0], components[1]
        candidates = self.find_class_files(class_name)
        if not candidates:
            return None

        hits = 0
        hit_path = None
        hit_line = -1
        for path in candidates:
            with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                for number, line in enumerate(f, 1):
                    if self.is_declaration_candidate(line, method_name):
                        hits += 1
                        hit_path = path
                        hit_line = number

        if hits == 0:
            return None
        if hits == 1:
            return SourceLink(hit_path, hit_line)
        return SourceLink(hit_path)

    def annotate(self, text: str) -> Tuple[str, Optional[SourceLink]]:
        """
        Attach a source guess to addr2line output.

        Never raises: any failure leaves ``text`` untouched.

        Returns:
            (text, link). When a link was found the text is collapsed to a
            single line so the reference can follow it.
        """
        if not text:
            return text, None
        try:
            link = self.find_source_link(text)
        except Exception:
            LOG.exception("Source lookup failed for %r", text)
            return text, None

        if link is None:
            return text, None
        return text.replace("\n", ""), link

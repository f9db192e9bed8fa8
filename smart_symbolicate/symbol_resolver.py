"""Symbol file resolution for Smart Symbolicate.

Maps a logical library name (``libunity``, ``libil2cpp``...) and the selected
build configuration to the symbol file addr2line should read.

- libunity symbols ship with the editor, under the Android player
  ``Variations`` folder of the selected version.
- libil2cpp symbols are produced by the project build and are searched for
  under the project symbols folder, preferring full debug info over
  stripped symbols.
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple

from .core import (
    BuildConfig,
    DEBUG_EXTENSION,
    DEFAULT_EXTENSION,
    LibraryCatalog,
    PathRule,
    SYM_EXTENSION,
    UnknownLibraryRegistry,
)

LOG = logging.getLogger(__name__)

SYMBOLS_FOLDER = "Symbols"


class SymbolTier(IntEnum):
    """Priority of a symbol file; higher wins."""
    DEFAULT = 1   # libil2cpp.so
    SYM = 2       # libil2cpp.sym.so
    DEBUG = 3     # libil2cpp.dbg.so


TIER_SUFFIXES: Tuple[Tuple[str, SymbolTier], ...] = (
    (DEBUG_EXTENSION, SymbolTier.DEBUG),
    (SYM_EXTENSION, SymbolTier.SYM),
    (DEFAULT_EXTENSION, SymbolTier.DEFAULT),
)


@dataclass(frozen=True)
class SymbolFileCandidate:
    path: str
    tier: SymbolTier


def android_player_parts(platform: Optional[str] = None) -> List[str]:
    """Path of the Android player module relative to an editor version folder."""
    platform = platform or sys.platform
    if platform == "darwin":
        return ["PlaybackEngines", "AndroidPlayer"]
    return ["Editor", "Data", "PlaybackEngines", "AndroidPlayer"]


def classify_symbol_file(filename: str) -> Optional[SymbolTier]:
    """Tier of ``filename`` judged by its suffix, or None if not a symbol file."""
    lowered = filename.lower()
    for suffix, tier in TIER_SUFFIXES:
        if lowered.endswith(suffix):
            return tier
    return None


class SymbolPathResolver:
    """Resolves library names to symbol file paths for one configuration."""

    def __init__(self, settings, catalog: Optional[LibraryCatalog] = None,
                 unknown_libraries: Optional[UnknownLibraryRegistry] = None,
                 host_platform: Optional[str] = None):
        """
        Initialize the resolver.

        Args:
            settings: SymbolicateSettings with the Unity and project roots.
            catalog: Known libraries and how each is located.
            unknown_libraries: Registry receiving names that fail to resolve.
            host_platform: ``sys.platform`` value the editor layout follows.
        """
        self.settings = settings
        self.catalog = catalog or LibraryCatalog()
        self.unknown_libraries = unknown_libraries if unknown_libraries is not None else UnknownLibraryRegistry()
        self.host_platform = host_platform or sys.platform

    def engine_symbols_path(self, library: str, config: BuildConfig) -> str:
        """Path of an engine library's stripped symbols inside the editor install."""
        return os.path.join(
            self.settings.unity_install_root,
            config.unity_version or "",
            *android_player_parts(self.host_platform),
            "Variations",
            config.scripting_backend.value,
            config.release_type.value,
            SYMBOLS_FOLDER,
            config.cpu.value,
            f"{library}.{SYM_EXTENSION}",
        )

    def project_symbols_dir(self, config: BuildConfig) -> str:
        return os.path.join(self.settings.project_symbols_root, config.cpu.value)

    def find_candidates(self, library: str, config: BuildConfig) -> List[SymbolFileCandidate]:
        """
        Every symbol file for ``library`` under the project symbols folder.

        The walk is sorted so that the order (and hence the tie-break between
        files of the same tier) is stable.
        """
        candidates: List[SymbolFileCandidate] = []
        if not self.settings.project_symbols_root:
            LOG.debug("No project symbols folder configured")
            return candidates

        search_dir = self.project_symbols_dir(config)
        if not os.path.isdir(search_dir):
            LOG.debug("Project symbols folder does not exist: %s", search_dir)
            return candidates

        for root, dirs, files in os.walk(search_dir):
            dirs.sort()
            for name in sorted(files):
                if not name.startswith(library):
                    continue
                tier = classify_symbol_file(name)
                if tier is not None:
                    candidates.append(SymbolFileCandidate(os.path.join(root, name), tier))
        return candidates

    def best_candidate(self, library: str, config: BuildConfig) -> Optional[SymbolFileCandidate]:
        best: Optional[SymbolFileCandidate] = None
        for candidate in self.find_candidates(library, config):
            if best is None or candidate.tier > best.tier:
                best = candidate
        return best

    def resolve(self, library: str, config: BuildConfig) -> Optional[str]:
        """
        Resolve ``library`` to a symbol file path.

        Engine libraries get their constructed path whether or not the file
        exists; the caller reports missing files. Everything else is searched
        for in the project symbols folder.

        Returns:
            The path, or None when the library is unknown (the name is then
            recorded in the unknown-library registry).
        """
        info = self.catalog.get(library)
        if info is not None and info.rule is PathRule.ENGINE:
            return self.engine_symbols_path(library, config)

        best = self.best_candidate(library, config)
        if best is not None:
            LOG.debug("Resolved %s to %s (%s)", library, best.path, best.tier.name)
            return best.path

        LOG.info("Unknown library %s", library)
        self.unknown_libraries.add(library)
        return None

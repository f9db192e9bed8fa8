"""Crash report parsing.

Turns the raw text of a crash report into an ordered list of address
records (one per line holding a hex address) and context lines that are
carried through to the output unchanged.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .core import (
    AddressRecord,
    ContextLine,
    ExtractionMode,
    LibraryCatalog,
    LIB_IL2CPP_NAME,
    LIB_UNITY_NAME,
)

LOG = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"0[xX][0-9a-fA-F]+")

# "at libil2cpp.0x0034e9f4(Native Method)" -> "libil2cpp"
CONTEXT_PATTERN = re.compile(r"(?<=at )(.*)(?=\.)")

# Older reports always wrote the address right after the dot:
# "at libunity.0x00a1b2c3". Only kept for reports in that format.
LEGACY_CONTEXT_PATTERN = re.compile(r"(?<=at )(.*?)(?=\.0[xX])")

_WHITESPACE = re.compile(r"\s+")

MIN_CONTEXT_LENGTH = 3


@dataclass
class ParsedReport:
    """Result of parsing one report."""
    items: List[Union[AddressRecord, ContextLine]] = field(default_factory=list)

    @property
    def records(self) -> List[AddressRecord]:
        return [item for item in self.items if isinstance(item, AddressRecord)]


def find_address(line: str) -> Optional[str]:
    """Return the first hex literal in ``line`` (only one per line is used)."""
    match = ADDRESS_PATTERN.search(line)
    return match.group(0) if match else None


def contextual_library(line: str, legacy: bool = False) -> Optional[str]:
    """Library named between ``"at "`` and the following dot, if any."""
    pattern = LEGACY_CONTEXT_PATTERN if legacy else CONTEXT_PATTERN
    match = pattern.search(line)
    if not match or not match.group(0):
        return None
    return match.group(0)


def libraries_for_line(line: str, mode: ExtractionMode, catalog: LibraryCatalog,
                       legacy: bool = False) -> Tuple[str, ...]:
    """Libraries an address on ``line`` should be symbolized against.

    An empty tuple means the line has no usable library context and is
    skipped.
    """
    if mode is ExtractionMode.AUTO:
        library = contextual_library(line, legacy=legacy)
        return (library,) if library else ()
    if mode is ExtractionMode.ENGINE:
        return (LIB_UNITY_NAME,)
    if mode is ExtractionMode.USER_CODE:
        return (LIB_IL2CPP_NAME,)
    return catalog.names()


def is_context_line(line: str) -> bool:
    return len(_WHITESPACE.sub("", line)) >= MIN_CONTEXT_LENGTH


def parse_report(text: str, mode: ExtractionMode = ExtractionMode.AUTO,
                 catalog: Optional[LibraryCatalog] = None,
                 legacy: bool = False) -> ParsedReport:
    """
    Parse raw crash report text.

    Args:
        text: The report as pasted by the user.
        mode: How to pick the library for every address.
        catalog: Known libraries, used by ``ExtractionMode.ALL``.
        legacy: Use the older ``at lib.0xADDR`` context pattern.

    Returns:
        ParsedReport whose items keep the order of the input lines.
    """
    catalog = catalog or LibraryCatalog()
    parsed = ParsedReport()
    if not text:
        return parsed

    for number, line in enumerate(text.split("\n"), 1):
        line = line.rstrip("\r")
        address = find_address(line)
        if address is None:
            if is_context_line(line):
                parsed.items.append(ContextLine(line, number))
            continue

        libraries = libraries_for_line(line, mode, catalog, legacy=legacy)
        if not libraries:
            LOG.debug("Line %d has no library context, skipping: %s", number, line.strip())
            continue

        parsed.items.append(AddressRecord(address, libraries, number, line))

    LOG.debug("Parsed %d address records", len(parsed.records))
    return parsed

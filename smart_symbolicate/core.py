"""Core symbolication pipeline for Smart Symbolicate.

This module holds the data model shared by every stage (address records,
build configuration, resolved frames), the library catalog, the error
hierarchy and the ``Symbolicator`` orchestrator that drives a crash report
through parsing, symbol path resolution, addr2line invocation and source
mapping.
"""
from __future__ import annotations

import html
import logging
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

LOG = logging.getLogger(__name__)

LIB_UNITY_NAME = "libunity"
LIB_IL2CPP_NAME = "libil2cpp"

DEBUG_EXTENSION = "dbg.so"
SYM_EXTENSION = "sym.so"
DEFAULT_EXTENSION = "so"

# addr2line prints this when it has no file/line information
UNKNOWN_LOCATION_TOKEN = "??:?"


def safe_print(msg: str):
    """Print message safely, handling unicode encoding issues on Windows."""
    try:
        print(msg)
    except UnicodeEncodeError:
        encoding = sys.stdout.encoding or 'utf-8'
        print(msg.encode(encoding, errors='replace').decode(encoding, errors='replace'))


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SymbolicateError(Exception):
    """Base class for pipeline-level failures that abort a whole run."""


class ConfigurationError(SymbolicateError):
    """A required root folder is not configured."""


class ToolNotFoundError(SymbolicateError):
    """The addr2line executable could not be located."""


class NoAddressesFoundError(SymbolicateError):
    """The report contained no line with a usable memory address."""


# ---------------------------------------------------------------------------
# Build configuration
# ---------------------------------------------------------------------------

class ReleaseType(Enum):
    RELEASE = "Release"
    DEVELOPMENT = "Development"


class ScriptingBackend(Enum):
    IL2CPP = "il2cpp"
    MONO = "mono"


class CpuType(Enum):
    ARM64_V8A = "arm64-v8a"
    ARMEABI_V7A = "armeabi-v7a"

    @property
    def is_64bit(self) -> bool:
        return self is CpuType.ARM64_V8A


class ExtractionMode(Enum):
    """How the report parser decides which libraries an address belongs to."""
    AUTO = "auto"
    ENGINE = "libunity"
    USER_CODE = "libil2cpp"
    ALL = "all"


def enum_by_value(enum_cls, value: str):
    """Return the member of ``enum_cls`` whose value is ``value`` or None."""
    for member in enum_cls:
        if member.value == value:
            return member
    return None


@dataclass(frozen=True)
class BuildConfig:
    """Build settings the crash was produced with.

    ``unity_version`` is the name of an installed editor folder, or None
    while no installation has been discovered.
    """
    unity_version: Optional[str] = None
    cpu: CpuType = CpuType.ARM64_V8A
    scripting_backend: ScriptingBackend = ScriptingBackend.IL2CPP
    release_type: ReleaseType = ReleaseType.RELEASE


# ---------------------------------------------------------------------------
# Library catalog
# ---------------------------------------------------------------------------

class PathRule(Enum):
    ENGINE = "engine"    # path constructed inside the editor installation
    PROJECT = "project"  # searched for under the project symbols folder


class Severity(Enum):
    OK = "green"
    ENGINE = "yellow"
    ERROR = "red"


@dataclass(frozen=True)
class LibraryInfo:
    name: str
    rule: PathRule
    description: str = ""


class LibraryCatalog:
    """Ordered set of the libraries the pipeline knows how to locate."""

    DEFAULT_LIBRARIES = (
        LibraryInfo(LIB_UNITY_NAME, PathRule.ENGINE, "Unity engine runtime"),
        LibraryInfo(LIB_IL2CPP_NAME, PathRule.PROJECT, "IL2CPP compiled user code"),
    )

    def __init__(self, libraries: Optional[List[LibraryInfo]] = None):
        self._libraries: Dict[str, LibraryInfo] = {}
        for lib in libraries if libraries is not None else self.DEFAULT_LIBRARIES:
            self.register(lib)

    def register(self, library: LibraryInfo) -> None:
        self._libraries[library.name] = library

    def get(self, name: str) -> Optional[LibraryInfo]:
        return self._libraries.get(name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._libraries)

    def __contains__(self, name: object) -> bool:
        return name in self._libraries

    def __iter__(self) -> Iterator[LibraryInfo]:
        return iter(self._libraries.values())

    def __len__(self) -> int:
        return len(self._libraries)


class UnknownLibraryRegistry:
    """Library names that could not be resolved during the current run."""

    def __init__(self):
        self._names: Dict[str, None] = {}

    def clear(self) -> None:
        self._names.clear()

    def add(self, name: str) -> None:
        self._names.setdefault(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def names(self) -> List[str]:
        return list(self._names)


# ---------------------------------------------------------------------------
# Records and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AddressRecord:
    """One report line holding a memory address."""
    address: str
    libraries: Tuple[str, ...]
    line_number: int = 0
    source_line: str = ""


@dataclass(frozen=True)
class ContextLine:
    """Report line without an address, kept verbatim in the output."""
    text: str
    line_number: int = 0


@dataclass(frozen=True)
class CommandLine:
    """Echo of an addr2line command line (only when requested)."""
    command: str


@dataclass(frozen=True)
class SourceLink:
    """Navigable guess at where a symbol is declared.

    A ``line`` of None means only the file could be identified.
    """
    path: str
    line: Optional[int] = None

    @property
    def href(self) -> str:
        return f"{self.path}#{self.line or 0}"


class FrameStatus(Enum):
    RESOLVED = "resolved"
    UNKNOWN_LIBRARY = "unknown_library"
    MISSING_FILE = "missing_file"


@dataclass
class ResolvedFrame:
    """Result of symbolizing one address against one library."""
    record: AddressRecord
    library: str
    library_index: int = 0
    status: FrameStatus = FrameStatus.RESOLVED
    resolved_text: str = ""
    symbol_path: Optional[str] = None
    error: str = ""
    source_link: Optional[SourceLink] = None

    @property
    def address(self) -> str:
        return self.record.address

    @property
    def ok(self) -> bool:
        return self.status is FrameStatus.RESOLVED


ReportItem = Union[ContextLine, CommandLine, ResolvedFrame]


_BLANK_LINES = re.compile(r"^\s+$[\r\n]*", re.MULTILINE)


@dataclass
class SymbolicationReport:
    """Ordered output of one symbolication run."""
    items: List[ReportItem] = field(default_factory=list)
    unknown_libraries: List[str] = field(default_factory=list)
    config: Optional[BuildConfig] = None
    cancelled: bool = False

    @property
    def frames(self) -> List[ResolvedFrame]:
        return [item for item in self.items if isinstance(item, ResolvedFrame)]

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    def library_severity(self, library: str) -> Severity:
        if library in self.unknown_libraries:
            return Severity.ERROR
        if library == LIB_UNITY_NAME:
            return Severity.ENGINE
        return Severity.OK

    def render_text(self) -> str:
        """Plain text rendering, one or more lines per item."""
        lines: List[str] = []
        for item in self.items:
            if isinstance(item, ContextLine):
                lines.append(item.text)
            elif isinstance(item, CommandLine):
                lines.append(f"Executing Command: {item.command}")
            elif item.status is FrameStatus.UNKNOWN_LIBRARY:
                lines.append(f"[Unknown lib] {item.library} :: {item.address}")
            elif item.status is FrameStatus.MISSING_FILE:
                lines.append(f"[Missing lib] {item.library} at Path: {item.symbol_path}")
            else:
                text = _single_line(item.resolved_text)
                if item.source_link is not None:
                    text = f"{text} (at {_link_label(item.source_link)}, this is a guess)"
                lines.append(f" at {item.library}.{item.address} => {text}")
                if item.error:
                    lines.append(f"[Error] {item.address} => {item.error.strip()}")
        return _strip_blank_lines("\n".join(lines))

    def render_html(self) -> str:
        """Rich text rendering for a Qt text widget."""
        lines: List[str] = []
        for item in self.items:
            if isinstance(item, ContextLine):
                lines.append(html.escape(item.text))
            elif isinstance(item, CommandLine):
                lines.append(f"<b>Executing Command:</b> {html.escape(item.command)}")
            elif item.status is FrameStatus.UNKNOWN_LIBRARY:
                lines.append(_color(Severity.ERROR,
                                    f"Unknown lib named {html.escape(item.library)} :: {item.address}"))
            elif item.status is FrameStatus.MISSING_FILE:
                lines.append(_color(Severity.ERROR,
                                    f"Failed to find lib {html.escape(item.library)} at Path: "
                                    f"{html.escape(item.symbol_path or '')}"))
            else:
                label = _color(self.library_severity(item.library), html.escape(item.library))
                text = html.escape(_single_line(item.resolved_text))
                if item.source_link is not None:
                    link = item.source_link
                    text = (f'{text} (at <a href="{html.escape(link.href)}">'
                            f'{html.escape(_link_label(link))}</a> <i>This is a guess</i>)')
                lines.append(f" at <b>{label}.{item.address}</b> => {text}")
                if item.error:
                    lines.append(f"{_color(Severity.ERROR, '[Error]')} {item.address} => "
                                 f"{html.escape(item.error.strip())}")
        return _strip_blank_lines("<br>\n".join(lines))


def _single_line(text: str) -> str:
    return " ".join(part.strip() for part in text.splitlines() if part.strip())


def _link_label(link: SourceLink) -> str:
    return f"{link.path}:{link.line}" if link.line is not None else link.path


def _color(severity: Severity, text: str) -> str:
    return f'<span style="color:{severity.value}">{text}</span>'


def _strip_blank_lines(text: str) -> str:
    return _BLANK_LINES.sub("", text)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

ProgressCallback = Callable[[str, float, str], None]


class Symbolicator:
    """Drives a crash report through the whole symbolication pipeline.

    The run is synchronous: every addr2line process finishes before the next
    address is looked at, so results always follow the report order.
    """

    def __init__(self, settings, catalog: Optional[LibraryCatalog] = None,
                 runner=None, mapper=None, host_platform: Optional[str] = None):
        """
        Initialize the symbolicator.

        Args:
            settings: SymbolicateSettings holding the configured roots.
            catalog: Known libraries. Defaults to libunity + libil2cpp.
            runner: Addr2LineWrapper to use instead of locating one in the
                Unity installation (mainly for tests).
            mapper: SourceHeuristicMapper for libil2cpp frames. Built from
                ``settings.project_source_root`` when omitted.
            host_platform: ``sys.platform`` style name used for the
                installation layout. Defaults to the running platform.
        """
        from .source_mapper import SourceHeuristicMapper
        from .symbol_resolver import SymbolPathResolver

        self.settings = settings
        self.catalog = catalog or LibraryCatalog()
        self.host_platform = host_platform or sys.platform
        self.unknown_libraries = UnknownLibraryRegistry()
        self.resolver = SymbolPathResolver(settings, self.catalog, self.unknown_libraries,
                                           host_platform=self.host_platform)
        self.runner = runner
        self.mapper = mapper or SourceHeuristicMapper(settings.source_root)
        self.print_commands = False
        self._progress_callback: Optional[ProgressCallback] = None
        self._abort_check: Optional[Callable[[], bool]] = None

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        self._progress_callback = callback

    def set_abort_check(self, check: Optional[Callable[[], bool]]) -> None:
        self._abort_check = check

    def _report_progress(self, stage: str, progress: float, message: str) -> None:
        if self._progress_callback:
            try:
                self._progress_callback(stage, progress, message)
            except Exception:
                LOG.exception("Progress callback failed")

    def _get_runner(self, config: BuildConfig):
        if self.runner is not None:
            if not self.runner.available:
                raise ToolNotFoundError(f"Failed to find addr2line at path {self.runner.tool_path}")
            return self.runner

        from .addr2line_wrapper import Addr2LineWrapper, locate_addr2line
        tool_path = locate_addr2line(self.settings.unity_install_root, config.unity_version,
                                     config.cpu, self.host_platform)
        runner = Addr2LineWrapper(tool_path)
        if not runner.available:
            raise ToolNotFoundError(f"Failed to find addr2line at path {tool_path}")
        return runner

    def run(self, text: str, config: BuildConfig,
            mode: ExtractionMode = ExtractionMode.AUTO,
            legacy: bool = False) -> SymbolicationReport:
        """
        Symbolicate every address found in ``text``.

        Args:
            text: Raw crash report.
            config: Build configuration to resolve symbols against.
            mode: Library extraction mode for the report parser.
            legacy: Read the library name up to ".0x" instead of up to the
                last dot on the line (older report format).

        Returns:
            SymbolicationReport with one entry per (address, library) pair,
            interleaved with the context lines of the report.

        Raises:
            ConfigurationError: A required root folder is not set.
            ToolNotFoundError: addr2line is missing from the installation.
            NoAddressesFoundError: Nothing in ``text`` looks like an address.
        """
        from .report_parser import parse_report

        self.settings.validate()
        self.unknown_libraries.clear()
        self.mapper.clear_index()

        runner = self._get_runner(config)

        parsed = parse_report(text, mode, self.catalog, legacy=legacy)
        if not parsed.records:
            raise NoAddressesFoundError("No memory addresses found in the crash input")

        report = SymbolicationReport(config=config)
        total = len(parsed.records)
        done = 0
        LOG.info("Symbolicating %d addresses (%s mode, %s)", total, mode.value, config.cpu.value)

        for item in parsed.items:
            if not isinstance(item, AddressRecord):
                report.items.append(item)
                continue

            if self._abort_check and self._abort_check():
                LOG.info("Run cancelled after %d/%d addresses", done, total)
                report.cancelled = True
                break

            for index, library in enumerate(item.libraries):
                self._report_progress("symbolicate", done / total,
                                      f"Processing {item.address} against {library}")
                report.items.extend(self._symbolicate(runner, item, library, index, config))

            done += 1
            self._report_progress("symbolicate", done / total, f"Processed {done}/{total}")

        report.unknown_libraries = self.unknown_libraries.names()
        return report

    def _symbolicate(self, runner, record: AddressRecord, library: str, index: int,
                     config: BuildConfig) -> List[ReportItem]:
        symbol_path = self.resolver.resolve(library, config)
        if symbol_path is None:
            return [ResolvedFrame(record, library, index, FrameStatus.UNKNOWN_LIBRARY)]

        if not runner.symbol_file_exists(symbol_path):
            LOG.warning("Symbol file for %s not found: %s", library, symbol_path)
            return [ResolvedFrame(record, library, index, FrameStatus.MISSING_FILE,
                                  symbol_path=symbol_path)]

        items: List[ReportItem] = []
        result = runner.invoke(symbol_path, record.address)
        if self.print_commands:
            items.append(CommandLine(result.command_line))

        frame = ResolvedFrame(record, library, index, FrameStatus.RESOLVED,
                              resolved_text=result.stdout, symbol_path=symbol_path,
                              error=result.stderr)
        if LIB_IL2CPP_NAME in library:
            frame.resolved_text, frame.source_link = self.mapper.annotate(frame.resolved_text)
        items.append(frame)
        return items

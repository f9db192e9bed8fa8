"""Smart Symbolicate package.

This package symbolicates Android crash reports from Unity players, including:
- Address and library extraction from pasted crash reports
- Build metadata detection (Unity version, CPU, scripting backend, build type)
- libunity / libil2cpp symbol file lookup with debug > sym > stripped priority
- addr2line invocation through the NDK bundled with the Unity editor
- Guessed C# source locations for IL2CPP frames
"""
from .core import (
    AddressRecord,
    BuildConfig,
    ConfigurationError,
    ContextLine,
    CpuType,
    ExtractionMode,
    FrameStatus,
    LibraryCatalog,
    LibraryInfo,
    NoAddressesFoundError,
    PathRule,
    ReleaseType,
    ResolvedFrame,
    ScriptingBackend,
    SourceLink,
    SymbolicateError,
    SymbolicationReport,
    Symbolicator,
    ToolNotFoundError,
    UnknownLibraryRegistry,
)
from .metadata_extractor import MetadataResult, discover_unity_versions, extract_build_metadata
from .report_parser import ParsedReport, parse_report
from .settings import SymbolicateSettings
from .source_mapper import SourceHeuristicMapper
from .symbol_resolver import SymbolFileCandidate, SymbolPathResolver, SymbolTier
from .addr2line_wrapper import Addr2LineResult, Addr2LineWrapper, locate_addr2line

__all__ = [
    # Core pipeline
    "Symbolicator",
    "SymbolicationReport",
    "ResolvedFrame",
    "FrameStatus",
    "SourceLink",
    "AddressRecord",
    "ContextLine",
    # Configuration
    "BuildConfig",
    "CpuType",
    "ReleaseType",
    "ScriptingBackend",
    "ExtractionMode",
    "SymbolicateSettings",
    # Libraries
    "LibraryCatalog",
    "LibraryInfo",
    "PathRule",
    "UnknownLibraryRegistry",
    # Errors
    "SymbolicateError",
    "ConfigurationError",
    "ToolNotFoundError",
    "NoAddressesFoundError",
    # Stages
    "parse_report",
    "ParsedReport",
    "extract_build_metadata",
    "discover_unity_versions",
    "MetadataResult",
    "SymbolPathResolver",
    "SymbolFileCandidate",
    "SymbolTier",
    "Addr2LineWrapper",
    "Addr2LineResult",
    "locate_addr2line",
    "SourceHeuristicMapper",
]

__version__ = "1.0.0"

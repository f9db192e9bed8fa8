#!/usr/bin/env python3
"""
Smart Symbolicate - Command Line Entry Point

Symbolicates Unity Android crash reports without the GUI.
"""

import argparse
import dataclasses
import logging
import sys

from dotenv import load_dotenv

from smart_symbolicate.core import (
    BuildConfig,
    CpuType,
    ExtractionMode,
    LibraryCatalog,
    ReleaseType,
    ScriptingBackend,
    SymbolicateError,
    Symbolicator,
    enum_by_value,
    safe_print,
)
from smart_symbolicate.metadata_extractor import discover_unity_versions, extract_build_metadata
from smart_symbolicate.navigation import EditorOpener, LinkDispatcher
from smart_symbolicate.settings import SymbolicateSettings, default_settings_path
from smart_symbolicate.symbol_resolver import SymbolPathResolver

LOG = logging.getLogger("smart_symbolicate")

SETTING_KEYS = ("unity_install_root", "project_symbols_root", "project_source_root", "editor_command")


def _read_report(path):
    if not path or path == '-':
        return sys.stdin.read()
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()


def build_parser():
    parser = argparse.ArgumentParser(
        description='Smart Symbolicate - Resolve Unity Android crash addresses with addr2line',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Symbolicate a crash report, reading build info from the report
  %(prog)s symbolicate crash.txt

  # Force every address against both libunity and libil2cpp
  %(prog)s symbolicate crash.txt --symbols all

  # Show the build metadata found in a report
  %(prog)s metadata crash.txt

  # Show which symbol file would be used for a library
  %(prog)s resolve libil2cpp --cpu armeabi-v7a

  # List installed Unity versions
  %(prog)s versions

  # Store folders for later runs
  %(prog)s config --set project_symbols_root=/path/to/symbols

  # Open a source link from the output in the configured editor
  %(prog)s open "Assets/Scripts/PlayerController.cs#42"
        """
    )

    parser.add_argument(
        'command',
        choices=['symbolicate', 'metadata', 'resolve', 'versions', 'config', 'open'],
        help='Command to execute'
    )

    parser.add_argument(
        'target',
        nargs='?',
        help='Crash report file ("-" for stdin), library name for "resolve" or link for "open"'
    )

    parser.add_argument('--symbols', choices=[m.value for m in ExtractionMode],
                        default=ExtractionMode.AUTO.value,
                        help='Library selection: auto reads "at <lib>." from each line')
    parser.add_argument('--cpu', choices=[c.value for c in CpuType], help='Target CPU')
    parser.add_argument('--build-type', choices=[r.value for r in ReleaseType], help='Release type')
    parser.add_argument('--backend', choices=[b.value for b in ScriptingBackend], help='Scripting backend')
    parser.add_argument('--unity-version', help='Installed Unity version to use')
    parser.add_argument('--unity-root', help='Unity Hub editor folder')
    parser.add_argument('--symbols-root', help='Project symbols folder')
    parser.add_argument('--source-root', help='Project folder searched for C# sources')
    parser.add_argument('--settings', help='Settings file (default: %s)' % default_settings_path())
    parser.add_argument('--set', action='append', default=[], metavar='KEY=VALUE',
                        help='Setting to store (config command)')
    parser.add_argument('--legacy-context', action='store_true',
                        help='Read the library name up to ".0x" (older report format)')
    parser.add_argument('--print-commands', action='store_true',
                        help='Echo every addr2line command line')
    parser.add_argument('--html', action='store_true', help='Render rich text output')
    parser.add_argument('--output', '-o', help='Output file for results (default: console)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    return parser


def load_settings(args) -> SymbolicateSettings:
    settings = SymbolicateSettings.load(args.settings)
    if args.unity_root:
        settings.unity_install_root = args.unity_root
    if args.symbols_root:
        settings.project_symbols_root = args.symbols_root
    if args.source_root:
        settings.project_source_root = args.source_root
    return settings


def build_config(args, settings, text=""):
    """Configuration from the report metadata, overridden by explicit flags."""
    versions = discover_unity_versions(settings.unity_install_root)
    config = BuildConfig(unity_version=versions[-1] if versions else None)

    result = extract_build_metadata(text, config, versions)
    config = result.config

    overrides = {}
    if args.unity_version:
        overrides['unity_version'] = args.unity_version
    if args.cpu:
        overrides['cpu'] = enum_by_value(CpuType, args.cpu)
    if args.build_type:
        overrides['release_type'] = enum_by_value(ReleaseType, args.build_type)
    if args.backend:
        overrides['scripting_backend'] = enum_by_value(ScriptingBackend, args.backend)
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config, result


def _write(args, text):
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(text)
        safe_print(f"Results saved to: {args.output}")
    else:
        safe_print(text)


def cmd_symbolicate(args, settings):
    text = _read_report(args.target)
    config, metadata = build_config(args, settings, text)
    for warning in metadata.warnings():
        safe_print(f"[!] {warning}")

    symbolicator = Symbolicator(settings)
    symbolicator.print_commands = args.print_commands
    report = symbolicator.run(text, config, enum_by_value(ExtractionMode, args.symbols),
                              legacy=args.legacy_context)

    _write(args, report.render_html() if args.html else report.render_text())
    if report.unknown_libraries:
        safe_print(f"[!] Unknown libraries: {', '.join(report.unknown_libraries)}")
    return 0


def cmd_metadata(args, settings):
    text = _read_report(args.target)
    config, metadata = build_config(args, settings, text)
    safe_print(f"Unity version:     {config.unity_version or 'none installed'}")
    safe_print(f"CPU:               {config.cpu.value}")
    safe_print(f"Scripting backend: {config.scripting_backend.value}")
    safe_print(f"Build type:        {config.release_type.value}")
    for warning in metadata.warnings():
        safe_print(f"[!] {warning}")
    return 0


def cmd_resolve(args, settings):
    if not args.target:
        safe_print("resolve command requires a library name")
        return 2
    settings.validate()
    config, _ = build_config(args, settings)
    resolver = SymbolPathResolver(settings, LibraryCatalog())
    path = resolver.resolve(args.target, config)
    if path is None:
        safe_print(f"Unknown lib named {args.target}")
        return 1
    safe_print(path)
    return 0


def cmd_versions(args, settings):
    versions = discover_unity_versions(settings.unity_install_root)
    if not versions:
        safe_print(f"Invalid Unity Hub folder: {settings.unity_install_root}")
        return 1
    for version in versions:
        safe_print(version)
    return 0


def cmd_config(args, settings):
    for item in args.set:
        key, sep, value = item.partition('=')
        if not sep or key not in SETTING_KEYS:
            safe_print(f"Invalid setting '{item}', expected one of: {', '.join(SETTING_KEYS)}")
            return 2
        setattr(settings, key, value)
    if args.set:
        path = settings.save(args.settings)
        safe_print(f"Settings saved to: {path}")
    for key in SETTING_KEYS:
        safe_print(f"{key} = {getattr(settings, key)}")
    return 0


def cmd_open(args, settings):
    if not args.target:
        safe_print("open command requires a link such as path#line")
        return 2
    dispatcher = LinkDispatcher(EditorOpener(settings.editor_command))
    if not dispatcher.handle_href(args.target):
        safe_print(f"Could not open {args.target}")
        return 1
    return 0


COMMANDS = {
    'symbolicate': cmd_symbolicate,
    'metadata': cmd_metadata,
    'resolve': cmd_resolve,
    'versions': cmd_versions,
    'config': cmd_config,
    'open': cmd_open,
}


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args)
    try:
        return COMMANDS[args.command](args, settings)
    except SymbolicateError as e:
        LOG.error("%s", e)
        safe_print(f"[ERROR] {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())

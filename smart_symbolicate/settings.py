"""Persisted user settings.

Settings are an explicit object: load them once at startup, hand them to the
pipeline and call ``save()`` when the user changes a folder.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from .core import ConfigurationError

LOG = logging.getLogger(__name__)

SETTINGS_ENV = "SMART_SYMBOLICATE_SETTINGS"
ENV_OVERRIDES = {
    "unity_install_root": "SMART_SYMBOLICATE_UNITY_ROOT",
    "project_symbols_root": "SMART_SYMBOLICATE_SYMBOLS_ROOT",
    "project_source_root": "SMART_SYMBOLICATE_SOURCE_ROOT",
    "editor_command": "SMART_SYMBOLICATE_EDITOR",
}


def default_unity_install_root(platform: Optional[str] = None) -> str:
    """Where Unity Hub installs editors by default."""
    platform = platform or sys.platform
    if platform == "win32":
        return r"C:\Program Files\Unity\Hub\Editor"
    if platform == "darwin":
        return "/Applications/Unity/Hub/Editor"
    return str(Path.home() / "Unity" / "Hub" / "Editor")


def default_settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV)
    if override:
        return Path(override)
    return Path.home() / ".smart_symbolicate" / "settings.json"


@dataclass
class SymbolicateSettings:
    """Folders the pipeline works with.

    unity_install_root: Unity Hub ``Editor`` folder holding one folder per
        installed editor version.
    project_symbols_root: Folder with one sub folder per CPU holding the
        project's libil2cpp symbols.
    project_source_root: Project folder searched for C# sources when
        guessing where a symbol is declared. Empty means the current
        directory.
    editor_command: Optional command template used to open source links,
        e.g. ``code -g {path}:{line}:{column}``.
    """
    unity_install_root: str = ""
    project_symbols_root: str = ""
    project_source_root: str = ""
    editor_command: str = ""

    @property
    def source_root(self) -> str:
        return self.project_source_root or os.getcwd()

    def validate(self) -> None:
        """Raise ConfigurationError when a required folder is not set."""
        if not self.unity_install_root:
            raise ConfigurationError("Unity installation folder is not configured")
        if not self.project_symbols_root:
            raise ConfigurationError("Project symbols folder is not configured")

    @property
    def is_valid(self) -> bool:
        try:
            self.validate()
        except ConfigurationError:
            return False
        return True

    def apply_environment(self, environ=None) -> "SymbolicateSettings":
        """Override fields from SMART_SYMBOLICATE_* environment variables."""
        environ = os.environ if environ is None else environ
        for name, variable in ENV_OVERRIDES.items():
            value = environ.get(variable)
            if value:
                setattr(self, name, value)
        return self

    @classmethod
    def load(cls, path: Optional[Path] = None, use_environment: bool = True) -> "SymbolicateSettings":
        """
        Load settings from ``path`` (defaults to the per-user settings file).

        A missing or unreadable file gives the defaults.
        """
        path = Path(path) if path else default_settings_path()
        settings = cls(unity_install_root=default_unity_install_root())

        if path.exists():
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                LOG.warning("Could not read settings from %s: %s", path, e)
                data = {}
            known = {f.name for f in fields(cls)}
            for key, value in data.items():
                if key in known and isinstance(value, str):
                    setattr(settings, key, value)

        if use_environment:
            settings.apply_environment()
        return settings

    def save(self, path: Optional[Path] = None) -> Path:
        path = Path(path) if path else default_settings_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(asdict(self), f, indent=2)
        LOG.debug("Settings saved to %s", path)
        return path

"""Build metadata extraction.

Crash reports collected from Unity players carry lines such as
``Version '2021.3.5f1'``, ``CPU 'arm64-v8a'``, ``Build type 'Release'`` and
``Scripting Backend 'il2cpp'``. This module reads those labels and
reconciles them with the editors installed locally.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .core import BuildConfig, CpuType, ReleaseType, ScriptingBackend, enum_by_value

LOG = logging.getLogger(__name__)

SCRIPTING_BACKEND_PATTERN = re.compile(r"Scripting Backend '([^']*)")
VERSION_PATTERN = re.compile(r"Version '([^ ']*)")
CPU_PATTERN = re.compile(r"CPU '([^']*)")
BUILD_TYPE_PATTERN = re.compile(r"Build type '([^']*)")

# Editor folders inside a Unity Hub installation: "2021.3.5f1", "6000.0.23f1"
UNITY_VERSION_FOLDER_PATTERN = re.compile(r"^[1-9]\d*(\.[1-9]\d*)*[a-z]*[1-9]")


@dataclass
class MetadataResult:
    """Outcome of scanning a report for build metadata.

    ``missing_version`` and ``missing_cpu`` hold the raw value the report asked
    for when it is not available locally; the matching field of ``config``
    then keeps its previous value.
    """
    config: BuildConfig
    missing_version: Optional[str] = None
    missing_cpu: Optional[str] = None

    @property
    def is_missing_version(self) -> bool:
        return self.missing_version is not None

    @property
    def is_missing_cpu(self) -> bool:
        return self.missing_cpu is not None

    def warnings(self) -> List[str]:
        messages = []
        if self.is_missing_version:
            messages.append(f"Crash report needs Unity version {self.missing_version}")
        if self.is_missing_cpu:
            messages.append(f"Missing CPU type {self.missing_cpu}")
        return messages


_DIGITS = re.compile(r"(\d+)")


def version_sort_key(name: str) -> Tuple:
    """Sort key comparing digit runs numerically ('2022.3.9f1' < '2022.3.10f1')."""
    return tuple(int(part) if part.isdigit() else part for part in _DIGITS.split(name))


def discover_unity_versions(install_root: str) -> List[str]:
    """Editor versions installed under a Unity Hub ``Editor`` folder."""
    if not install_root or not os.path.isdir(install_root):
        LOG.warning("Invalid Unity installation folder: %s", install_root)
        return []

    versions = []
    for entry in os.scandir(install_root):
        if entry.is_dir() and UNITY_VERSION_FOLDER_PATTERN.match(entry.name):
            versions.append(entry.name)
    return sorted(versions, key=version_sort_key)


def _label_value(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def extract_build_metadata(text: str, config: BuildConfig,
                           available_versions: Sequence[str] = ()) -> MetadataResult:
    """
    Update ``config`` with whatever build metadata ``text`` contains.

    Never fails: labels that are absent or hold an unknown value leave the
    corresponding field untouched.

    Args:
        text: Raw crash report.
        config: Currently selected build configuration.
        available_versions: Locally installed editor versions.

    Returns:
        MetadataResult with the updated configuration and any unavailable
        version / CPU requested by the report.
    """
    result = MetadataResult(config=config)
    if not text:
        return result

    changes = {}

    backend_name = _label_value(SCRIPTING_BACKEND_PATTERN, text)
    if backend_name is not None:
        backend = enum_by_value(ScriptingBackend, backend_name)
        if backend is not None:
            changes["scripting_backend"] = backend

    version = _label_value(VERSION_PATTERN, text)
    if version is not None:
        if version in available_versions:
            changes["unity_version"] = version
        else:
            result.missing_version = version

    cpu_name = _label_value(CPU_PATTERN, text)
    if cpu_name is not None:
        cpu = enum_by_value(CpuType, cpu_name)
        if cpu is not None:
            changes["cpu"] = cpu
        else:
            result.missing_cpu = cpu_name

    build_type = _label_value(BUILD_TYPE_PATTERN, text)
    if build_type is not None:
        release_type = enum_by_value(ReleaseType, build_type)
        if release_type is not None:
            changes["release_type"] = release_type

    if changes:
        LOG.debug("Build metadata from report: %s", changes)
        result.config = dataclasses.replace(config, **changes)

    for warning in result.warnings():
        LOG.debug(warning)
    return result

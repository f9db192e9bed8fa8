"""
addr2line Wrapper Module - Runs the NDK addr2line shipped with a Unity install
Part of Smart Symbolicate

Handles:
- NDK version detection (source.properties)
- addr2line location for the selected editor and CPU
- Per-address invocation and output capture
"""

import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .core import CpuType, ToolNotFoundError, UNKNOWN_LOCATION_TOKEN
from .symbol_resolver import android_player_parts

LOG = logging.getLogger(__name__)

NDK_REVISION_PATTERN = re.compile(r"Pkg\.Revision\s*=\s*(?P<version>\S+)")

# NDK r23b (23.1) dropped the GNU binutils in favour of the LLVM tools
LLVM_NDK_VERSION = (23, 1)

GNU_TOOLCHAINS = {
    CpuType.ARM64_V8A: ("aarch64-linux-android-4.9", "aarch64-linux-android-addr2line"),
    CpuType.ARMEABI_V7A: ("arm-linux-androideabi-4.9", "arm-linux-androideabi-addr2line"),
}

DEFAULT_TIMEOUT = 60


def _prebuilt_host(platform: str) -> str:
    if platform == "win32":
        return "windows-x86_64"
    if platform == "darwin":
        return "darwin-x86_64"
    return "linux-x86_64"


def _exe(name: str, platform: str) -> str:
    return f"{name}.exe" if platform == "win32" else name


def ndk_root(install_root: str, unity_version: str, platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    return os.path.join(install_root, unity_version, *android_player_parts(platform), "NDK")


def parse_ndk_revision(contents: str) -> Optional[Tuple[int, ...]]:
    """Version tuple from the ``Pkg.Revision`` entry of source.properties."""
    match = NDK_REVISION_PATTERN.search(contents)
    if not match:
        return None
    parts = []
    for part in match.group("version").split("."):
        digits = re.match(r"\d+", part)
        if not digits:
            return None
        parts.append(int(digits.group()))
    return tuple(parts)


def read_ndk_version(ndk_path: str) -> Tuple[int, ...]:
    """
    Read the NDK revision bundled with an editor.

    Raises:
        ToolNotFoundError: source.properties is missing or holds no version.
    """
    properties = os.path.join(ndk_path, "source.properties")
    if not os.path.exists(properties):
        raise ToolNotFoundError(f"Couldn't acquire NDK version, '{properties}' was not found")

    with open(properties, 'r', encoding='utf-8', errors='ignore') as f:
        contents = f.read()

    version = parse_ndk_revision(contents)
    if version is None:
        raise ToolNotFoundError(f"Couldn't find NDK version inside '{properties}'")
    return version


def locate_addr2line(install_root: str, unity_version: Optional[str], cpu: CpuType,
                     platform: Optional[str] = None) -> str:
    """
    Path of the addr2line executable matching an editor's NDK and a CPU.

    The returned path is not checked for existence.

    Raises:
        ToolNotFoundError: No editor version is selected or its NDK version
            cannot be read.
    """
    platform = platform or sys.platform
    if not unity_version:
        raise ToolNotFoundError("No Unity version selected")

    ndk_path = ndk_root(install_root, unity_version, platform)
    ndk_version = read_ndk_version(ndk_path)
    host = _prebuilt_host(platform)

    if ndk_version >= LLVM_NDK_VERSION:
        return os.path.join(ndk_path, "toolchains", "llvm", "prebuilt", host, "bin",
                            _exe("llvm-addr2line", platform))

    toolchain, binary = GNU_TOOLCHAINS[cpu]
    return os.path.join(ndk_path, "toolchains", toolchain, "prebuilt", host, "bin",
                        _exe(binary, platform))


@dataclass
class Addr2LineResult:
    """Captured output of one addr2line run"""
    address: str
    symbol_file: str
    stdout: str = ""
    stderr: str = ""
    command_line: str = ""


class Addr2LineWrapper:
    """Wrapper for symbolizing addresses with addr2line"""

    def __init__(self, tool_path: str, timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.tool_path = tool_path
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return bool(self.tool_path) and os.path.isfile(self.tool_path)

    def symbol_file_exists(self, symbol_path: str) -> bool:
        return os.path.isfile(symbol_path)

    def build_command(self, symbol_path: str, address: str) -> List[str]:
        # -f function names, -C demangle, -e symbol file
        return [self.tool_path, "-f", "-C", "-e", symbol_path, address]

    def invoke(self, symbol_path: str, address: str) -> Addr2LineResult:
        """
        Symbolize a single address.

        The exit code is ignored; callers only look at stdout and stderr.
        The "??:?" placeholder addr2line prints for unknown locations is
        removed from stdout.
        """
        cmd = self.build_command(symbol_path, address)
        result = Addr2LineResult(
            address=address,
            symbol_file=symbol_path,
            command_line=f'{self.tool_path} -f -C -e "{symbol_path}" {address}',
        )
        LOG.debug("Running: %s", result.command_line)

        try:
            # CREATE_NO_WINDOW flag prevents console window from appearing
            completed = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors='replace',
                timeout=self.timeout,
                creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, 'CREATE_NO_WINDOW') else 0
            )
        except subprocess.TimeoutExpired:
            LOG.error("addr2line timed out on %s", address)
            result.stderr = f"addr2line timed out after {self.timeout} seconds"
            return result
        except OSError as e:
            LOG.error("Failed to run addr2line: %s", e)
            result.stderr = f"addr2line execution error: {e}"
            return result

        result.stdout = (completed.stdout or "").replace(UNKNOWN_LOCATION_TOKEN, "")
        result.stderr = completed.stderr or ""
        if result.stderr:
            LOG.warning("addr2line reported for %s: %s", address, result.stderr.strip())
        return result

"""Tests for addr2line location and invocation."""
import os
import subprocess
import sys
from unittest.mock import patch

import pytest

from smart_symbolicate.addr2line_wrapper import (
    Addr2LineWrapper,
    locate_addr2line,
    ndk_root,
    parse_ndk_revision,
)
from smart_symbolicate.core import CpuType, ToolNotFoundError

VERSION = "2021.3.5f1"


def _write_ndk(unity_root, revision):
    ndk = ndk_root(str(unity_root), VERSION, "linux")
    os.makedirs(ndk, exist_ok=True)
    with open(os.path.join(ndk, "source.properties"), "w", encoding="utf-8") as f:
        f.write(f"Pkg.Desc = Android NDK\nPkg.Revision = {revision}\n")
    return ndk


def test_parse_ndk_revision():
    assert parse_ndk_revision("Pkg.Revision = 23.1.7779620") == (23, 1, 7779620)
    assert parse_ndk_revision("Pkg.Revision=21.3.6528147-beta1") == (21, 3, 6528147)
    assert parse_ndk_revision("Pkg.Desc = Android NDK") is None


def test_llvm_addr2line_for_recent_ndk(unity_root):
    """NDK 23.1 and later use llvm-addr2line for every CPU."""
    ndk = _write_ndk(unity_root, "23.1.7779620")
    path = locate_addr2line(str(unity_root), VERSION, CpuType.ARMEABI_V7A, "linux")
    assert path == os.path.join(ndk, "toolchains", "llvm", "prebuilt", "linux-x86_64", "bin", "llvm-addr2line")


def test_gnu_addr2line_for_old_ndk(unity_root):
    """Older NDKs ship one binutils addr2line per architecture."""
    ndk = _write_ndk(unity_root, "21.3.6528147")
    arm64 = locate_addr2line(str(unity_root), VERSION, CpuType.ARM64_V8A, "linux")
    armv7 = locate_addr2line(str(unity_root), VERSION, CpuType.ARMEABI_V7A, "linux")
    assert arm64.endswith(os.path.join("aarch64-linux-android-4.9", "prebuilt", "linux-x86_64",
                                       "bin", "aarch64-linux-android-addr2line"))
    assert armv7.endswith("arm-linux-androideabi-addr2line")
    assert arm64.startswith(ndk)


def test_windows_executable_name(unity_root):
    ndk = ndk_root(str(unity_root), VERSION, "win32")
    os.makedirs(ndk)
    with open(os.path.join(ndk, "source.properties"), "w", encoding="utf-8") as f:
        f.write("Pkg.Revision = 25.1.8937393\n")
    path = locate_addr2line(str(unity_root), VERSION, CpuType.ARM64_V8A, "win32")
    assert path.endswith(os.path.join("windows-x86_64", "bin", "llvm-addr2line.exe"))


def test_missing_source_properties(unity_root):
    with pytest.raises(ToolNotFoundError):
        locate_addr2line(str(unity_root), VERSION, CpuType.ARM64_V8A, "linux")


def test_no_version_selected(unity_root):
    with pytest.raises(ToolNotFoundError):
        locate_addr2line(str(unity_root), None, CpuType.ARM64_V8A, "linux")


def test_available(tmp_path):
    tool = tmp_path / "llvm-addr2line"
    assert not Addr2LineWrapper(str(tool)).available
    tool.write_text("")
    assert Addr2LineWrapper(str(tool)).available


def test_invoke_arguments_and_sentinel():
    """addr2line gets -f -C -e <file> <address>; '??:?' is stripped."""
    wrapper = Addr2LineWrapper("/ndk/llvm-addr2line")
    completed = subprocess.CompletedProcess(args=[], returncode=0,
                                            stdout="PlayerController_Update_m1\n??:?\n", stderr="")
    with patch("smart_symbolicate.addr2line_wrapper.subprocess.run", return_value=completed) as run:
        result = wrapper.invoke("/symbols/libil2cpp.so", "0x1234")

    cmd = run.call_args[0][0]
    assert cmd == ["/ndk/llvm-addr2line", "-f", "-C", "-e", "/symbols/libil2cpp.so", "0x1234"]
    assert run.call_args[1]["stdin"] is subprocess.DEVNULL
    assert result.stdout == "PlayerController_Update_m1\n\n"
    assert result.stderr == ""
    assert result.command_line == '/ndk/llvm-addr2line -f -C -e "/symbols/libil2cpp.so" 0x1234'


def test_invoke_keeps_stderr_and_ignores_exit_code():
    wrapper = Addr2LineWrapper("/ndk/llvm-addr2line")
    completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="??\n??:0\n",
                                            stderr="llvm-addr2line: error: no such file\n")
    with patch("smart_symbolicate.addr2line_wrapper.subprocess.run", return_value=completed):
        result = wrapper.invoke("/symbols/libil2cpp.so", "0x1234")
    assert result.stdout == "??\n??:0\n"
    assert "no such file" in result.stderr


def test_invoke_timeout_reported_as_error():
    wrapper = Addr2LineWrapper("/ndk/llvm-addr2line", timeout=5)
    with patch("smart_symbolicate.addr2line_wrapper.subprocess.run",
               side_effect=subprocess.TimeoutExpired(cmd="addr2line", timeout=5)):
        result = wrapper.invoke("/symbols/libil2cpp.so", "0x1234")
    assert result.stdout == ""
    assert "timed out" in result.stderr


@pytest.mark.skipif(sys.platform == "win32", reason="shell script tool")
def test_invoke_runs_real_process(tmp_path):
    """Output of an actual child process is captured once it has exited."""
    tool = tmp_path / "llvm-addr2line"
    tool.write_text(
        "#!/bin/sh\n"
        "sleep 0.2\n"
        "echo \"Foo_Bar_m1 $4 $5\"\n"
        "echo '??:?'\n"
        "echo \"warning: $1 $2 $3\" >&2\n",
        encoding="utf-8",
    )
    tool.chmod(0o755)

    result = Addr2LineWrapper(str(tool)).invoke("/symbols/libil2cpp.so", "0x1234")
    assert result.stdout == "Foo_Bar_m1 /symbols/libil2cpp.so 0x1234\n\n"
    assert result.stderr == "warning: -f -C -e\n"

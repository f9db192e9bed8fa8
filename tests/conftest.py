"""Shared fixtures: a fake Unity install, project symbols and addr2line."""
import os

import pytest

from smart_symbolicate.addr2line_wrapper import Addr2LineResult
from smart_symbolicate.core import BuildConfig, CpuType
from smart_symbolicate.settings import SymbolicateSettings
from smart_symbolicate.symbol_resolver import SymbolPathResolver

UNITY_VERSION = "2021.3.5f1"


class FakeAddr2Line:
    """Stands in for Addr2LineWrapper; answers from a dict of address -> output."""

    def __init__(self, outputs=None, errors=None, available=True):
        self.tool_path = "/fake/llvm-addr2line"
        self.outputs = outputs or {}
        self.errors = errors or {}
        self._available = available
        self.calls = []

    @property
    def available(self):
        return self._available

    def symbol_file_exists(self, symbol_path):
        return os.path.isfile(symbol_path)

    def invoke(self, symbol_path, address):
        self.calls.append((symbol_path, address))
        return Addr2LineResult(
            address=address,
            symbol_file=symbol_path,
            stdout=self.outputs.get(address, "??\n"),
            stderr=self.errors.get(address, ""),
            command_line=f'{self.tool_path} -f -C -e "{symbol_path}" {address}',
        )


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SMART_SYMBOLICATE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def unity_root(tmp_path):
    root = tmp_path / "Editor"
    (root / UNITY_VERSION).mkdir(parents=True)
    (root / "2022.3.10f1").mkdir()
    (root / "not-a-version").mkdir()
    return root


@pytest.fixture
def symbols_root(tmp_path):
    root = tmp_path / "symbols"
    arm64 = root / "arm64-v8a"
    arm64.mkdir(parents=True)
    (arm64 / "libil2cpp.sym.so").write_bytes(b"\x7fELF")
    return root


@pytest.fixture
def source_root(tmp_path):
    root = tmp_path / "project"
    scripts = root / "Assets" / "Scripts"
    scripts.mkdir(parents=True)
    (scripts / "PlayerController.cs").write_text(
        "using UnityEngine;\n"
        "\n"
        "public class PlayerController : MonoBehaviour\n"
        "{\n"
        "    void Update()\n"
        "    {\n"
        "        speed = Mathf.Max(speed, 0);\n"
        "    }\n"
        "}\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def settings(unity_root, symbols_root, source_root):
    return SymbolicateSettings(
        unity_install_root=str(unity_root),
        project_symbols_root=str(symbols_root),
        project_source_root=str(source_root),
    )


@pytest.fixture
def config():
    return BuildConfig(unity_version=UNITY_VERSION, cpu=CpuType.ARM64_V8A)


@pytest.fixture
def engine_symbols(settings, config):
    """Create libunity.sym.so where the resolver expects it."""
    path = SymbolPathResolver(settings, host_platform="linux").engine_symbols_path("libunity", config)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(b"\x7fELF")
    return path

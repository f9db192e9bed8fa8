"""Tests for build metadata extraction."""
import logging

from smart_symbolicate.core import BuildConfig, CpuType, ReleaseType, ScriptingBackend
from smart_symbolicate.metadata_extractor import discover_unity_versions, extract_build_metadata

AVAILABLE = ["2021.3.5f1", "2022.3.10f1"]

HEADER = ("Version '2022.3.10f1 (ff3792e53c62)', Build type 'Development', "
          "Scripting Backend 'mono', CPU 'armeabi-v7a'")


def test_full_header_updates_everything():
    """All four labels are read from a Unity crash header."""
    result = extract_build_metadata(HEADER, BuildConfig(unity_version="2021.3.5f1"), AVAILABLE)
    assert result.config == BuildConfig(
        unity_version="2022.3.10f1",
        cpu=CpuType.ARMEABI_V7A,
        scripting_backend=ScriptingBackend.MONO,
        release_type=ReleaseType.DEVELOPMENT,
    )
    assert not result.is_missing_version
    assert not result.is_missing_cpu
    assert result.warnings() == []


def test_known_cpu_selected():
    """CPU 'arm64-v8a' selects that architecture and clears the flag."""
    start = BuildConfig(cpu=CpuType.ARMEABI_V7A)
    result = extract_build_metadata("CPU 'arm64-v8a'", start, AVAILABLE)
    assert result.config.cpu is CpuType.ARM64_V8A
    assert result.missing_cpu is None


def test_unknown_cpu_flagged():
    """CPU 'mips' is flagged and the current architecture is kept."""
    start = BuildConfig(cpu=CpuType.ARMEABI_V7A)
    result = extract_build_metadata("CPU 'mips'", start, AVAILABLE)
    assert result.missing_cpu == "mips"
    assert result.config.cpu is CpuType.ARMEABI_V7A
    assert "Missing CPU type mips" in result.warnings()


def test_unavailable_version_flagged():
    """A version that is not installed keeps the current selection."""
    start = BuildConfig(unity_version="2021.3.5f1")
    result = extract_build_metadata("Version '2019.4.1f1'", start, AVAILABLE)
    assert result.missing_version == "2019.4.1f1"
    assert result.config.unity_version == "2021.3.5f1"


def test_version_stops_at_space():
    result = extract_build_metadata("Version '2021.3.5f1 (40eb3a945986)'", BuildConfig(), AVAILABLE)
    assert result.config.unity_version == "2021.3.5f1"


def test_unknown_backend_and_build_type_ignored():
    """Unknown backend or build type values change nothing and raise no flag."""
    start = BuildConfig(unity_version="2021.3.5f1")
    result = extract_build_metadata("Scripting Backend 'dotnet', Build type 'Profile'", start, AVAILABLE)
    assert result.config == start
    assert result.warnings() == []


def test_missing_labels_leave_config_unchanged():
    start = BuildConfig(unity_version="2021.3.5f1", release_type=ReleaseType.DEVELOPMENT)
    result = extract_build_metadata("just a stack\nat libunity.0x10", start, AVAILABLE)
    assert result.config is start
    assert not result.is_missing_version
    assert not result.is_missing_cpu


def test_empty_text():
    start = BuildConfig()
    result = extract_build_metadata("", start, AVAILABLE)
    assert result.config is start
    assert result.warnings() == []


def test_discover_unity_versions(unity_root):
    """Only version-named folders count as installed editors."""
    assert discover_unity_versions(str(unity_root)) == ["2021.3.5f1", "2022.3.10f1"]


def test_discover_unity_versions_invalid_root(tmp_path):
    assert discover_unity_versions(str(tmp_path / "missing")) == []
    assert discover_unity_versions("") == []


def test_discover_unity_versions_numeric_order(tmp_path):
    """Patch numbers compare as numbers, so the newest editor sorts last."""
    for name in ("2022.3.10f1", "2022.3.9f1", "2021.3.45f1"):
        (tmp_path / name).mkdir()
    assert discover_unity_versions(str(tmp_path)) == ["2021.3.45f1", "2022.3.9f1", "2022.3.10f1"]


def test_missing_metadata_not_logged_as_warning(caplog):
    """The CLI prints these itself; the log only carries them at debug level."""
    with caplog.at_level(logging.DEBUG, logger="smart_symbolicate"):
        result = extract_build_metadata("CPU 'mips'", BuildConfig())
    assert result.warnings() == ["Missing CPU type mips"]
    assert [r.levelno for r in caplog.records if "mips" in r.getMessage()] == [logging.DEBUG]

"""Tests for the xcodebuild adapter."""

import subprocess
from typing import Any
from unittest.mock import MagicMock

import pytest
from pytest import MonkeyPatch

from podpack.compiler import BuildSettingsCache, XcodeBuilder, parse_build_settings
from podpack.exceptions import BuildError, ConfigurationError
from podpack.models import BuildVariant, Platform, PlatformName

BASE = (
    "xcodebuild ONLY_ACTIVE_ARCH=NO SKIP_INSTALL=NO BUILD_LIBRARY_FOR_DISTRIBUTION=YES "
    '-project xcodeproject_path -scheme "PodsTarget" -configuration Release '
    "EXCLUDED_SOURCE_FILE_NAMES=*-dummy.m"
)


@pytest.fixture
def builder() -> XcodeBuilder:
    return XcodeBuilder("xcodeproject_path", "xcodebuild_outdir")


@pytest.fixture
def recorded_runs(builder: XcodeBuilder, monkeypatch: MonkeyPatch) -> list[str]:
    """Replaces process execution with a recorder."""
    commands: list[str] = []

    def fake_run(command: str) -> str:
        commands.append(command)
        return ""

    monkeypatch.setattr(builder, "run", fake_run)
    return commands


def test_macos_build_command_is_exact(builder: XcodeBuilder, recorded_runs: list[str]) -> None:
    """Tests the exact archive command for a single-variant platform."""
    builder.build(PlatformName.MACOS, "PodsTarget")

    assert recorded_runs == [
        "xcodebuild ONLY_ACTIVE_ARCH=NO SKIP_INSTALL=NO BUILD_LIBRARY_FOR_DISTRIBUTION=YES "
        '-project xcodeproject_path -scheme "PodsTarget" -configuration Release '
        'EXCLUDED_SOURCE_FILE_NAMES=*-dummy.m -destination "generic/platform=macOS" '
        "archive -archivePath xcodebuild_outdir/PodsTarget.xcarchive"
    ]


def test_ios_builds_simulator_then_device(builder: XcodeBuilder, recorded_runs: list[str]) -> None:
    """Tests that split platforms archive the simulator variant first."""
    builder.build("ios", "PodsTarget")

    assert recorded_runs == [
        f'{BASE} -destination "generic/platform=iOS Simulator" archive '
        "-archivePath xcodebuild_outdir/PodsTarget-simulator.xcarchive",
        f'{BASE} -destination "generic/platform=iOS" archive '
        "-archivePath xcodebuild_outdir/PodsTarget-device.xcarchive",
    ]
    assert recorded_runs[0].endswith("-simulator.xcarchive")
    assert recorded_runs[1].endswith("-device.xcarchive")


@pytest.mark.parametrize(
    ("platform", "destination"),
    [("watchos", "watchOS"), ("tvos", "tvOS")],
)
def test_split_platforms_use_their_destinations(
    builder: XcodeBuilder, recorded_runs: list[str], platform: str, destination: str
) -> None:
    """Tests the simulator and device destinations of watchOS and tvOS."""
    builder.build(platform, "PodsTarget")

    assert len(recorded_runs) == 2
    assert f'-destination "generic/platform={destination} Simulator"' in recorded_runs[0]
    assert f'-destination "generic/platform={destination}"' in recorded_runs[1]


def test_xcodebuild_opts_follow_extra_args(recorded_runs: list[str], monkeypatch: MonkeyPatch) -> None:
    """Tests that global xcodebuild options come after the caller's extra args."""
    builder = XcodeBuilder("xcodeproject_path", "xcodebuild_outdir", "CODE_SIGNING_REQUIRED=NO")
    monkeypatch.setattr(builder, "run", lambda command: recorded_runs.append(command) or "")

    builder.build("osx", "PodsTarget", extra_args="-quiet")

    assert recorded_runs == [
        f'{BASE} -destination "generic/platform=macOS" -quiet CODE_SIGNING_REQUIRED=NO '
        "archive -archivePath xcodebuild_outdir/PodsTarget.xcarchive"
    ]


def test_blank_extra_args_are_ignored(builder: XcodeBuilder) -> None:
    """Tests that whitespace-only extra args leave the command unchanged."""
    platform = Platform.parse("osx")
    assert builder.create_build_command("T", platform, None, "   ") == builder.create_build_command(
        "T", platform, None
    )


def test_command_construction_is_deterministic(builder: XcodeBuilder) -> None:
    """Tests that the same inputs always produce the same command."""
    platform = Platform.parse("ios")
    first = builder.create_build_command("T", platform, BuildVariant.DEVICE, "-quiet")
    second = builder.create_build_command("T", platform, BuildVariant.DEVICE, "-quiet")
    assert first == second


def test_unknown_platform_runs_nothing(builder: XcodeBuilder, monkeypatch: MonkeyPatch) -> None:
    """Tests that an unknown platform raises before any process is started."""
    mock_run = MagicMock()
    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run)

    with pytest.raises(ConfigurationError, match="Unknown platform: 'windows'"):
        builder.build("windows", "target")
    with pytest.raises(ConfigurationError, match="Unknown platform: 'windows'"):
        builder.build_settings("windows", "target")
    mock_run.assert_not_called()


def test_unknown_variant_for_platform_runs_nothing(builder: XcodeBuilder, monkeypatch: MonkeyPatch) -> None:
    """Tests that a variant the platform does not have raises before any process is started."""
    mock_run = MagicMock()
    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run)

    with pytest.raises(ConfigurationError, match="Unknown type for macOS: 'device'"):
        builder.build_settings("osx", "target", BuildVariant.DEVICE)
    with pytest.raises(ConfigurationError, match="Unknown type for iOS: 'None'"):
        builder.build_settings("ios", "target", None)
    mock_run.assert_not_called()


def test_non_zero_exit_raises_build_error(
    builder: XcodeBuilder, monkeypatch: MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Tests that BuildError is raised if xcodebuild returns a non-zero exit code."""
    def mock_run_fail(*args: Any, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(args=args, returncode=42, stdout="error stderr")

    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run_fail)

    with pytest.raises(BuildError) as excinfo:
        builder.run("xcodebuild this will totally fail")

    assert str(excinfo.value) == (
        "Failed to execute 'xcodebuild this will totally fail'. Exit status: 42"
    )
    assert excinfo.value.exit_status == 42
    assert excinfo.value.output == "error stderr"
    assert "error stderr" in capsys.readouterr().err


def test_failed_device_build_stops_remaining_variants(
    builder: XcodeBuilder, monkeypatch: MonkeyPatch
) -> None:
    """Tests that the first failing variant stops the remaining ones."""
    calls: list[str] = []

    def mock_run_fail(command: str, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(command)
        return subprocess.CompletedProcess(args=command, returncode=65, stdout="** ARCHIVE FAILED **")

    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run_fail)

    with pytest.raises(BuildError, match="Exit status: 65"):
        builder.build("ios", "PodsTarget")
    assert len(calls) == 1


def test_timeout_raises_build_error(monkeypatch: MonkeyPatch) -> None:
    """Tests that BuildError is raised if xcodebuild times out."""
    builder = XcodeBuilder("proj", "out", timeout=5)

    def mock_run_timeout(command: str, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        assert kwargs["timeout"] == 5
        raise subprocess.TimeoutExpired(command, 5, output="partial")

    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run_timeout)

    with pytest.raises(BuildError, match="Timed out after 5s") as excinfo:
        builder.run("xcodebuild archive")
    assert excinfo.value.output == "partial"


def test_parse_build_settings_drops_empty_values() -> None:
    """Tests that settings without a value are dropped."""
    build_settings = (
        "    LD_NO_PIE = NO\n"
        "    LD_QUOTE_LINKER_ARGUMENTS_FOR_COMPILER_DRIVER = YES\n"
        "    LINK_FILE_LIST_normal_i386 =\n"
    )
    assert parse_build_settings(build_settings) == {
        "LD_NO_PIE": "NO",
        "LD_QUOTE_LINKER_ARGUMENTS_FOR_COMPILER_DRIVER": "YES",
    }
    assert parse_build_settings("LD_NO_PIE = NO\nLINK_FILE_LIST_normal_i386 =") == {"LD_NO_PIE": "NO"}


def test_parse_build_settings_ignores_headers_and_keeps_equals_in_values() -> None:
    """Tests that header lines are ignored and values may contain '='."""
    output = (
        "Build settings for action archive and target MyPod:\n"
        "    OTHER_LDFLAGS = -Wl,-rpath=@loader_path\n"
    )
    assert parse_build_settings(output) == {"OTHER_LDFLAGS": "-Wl,-rpath=@loader_path"}


def test_build_settings_are_memoized(monkeypatch: MonkeyPatch) -> None:
    """Tests that build settings are queried once per platform, target and variant."""
    commands: list[str] = []

    def mock_run(command: str, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        commands.append(command)
        return subprocess.CompletedProcess(
            args=command, returncode=0, stdout="PRODUCT_NAME = MyPod\nPRODUCT_MODULE_NAME = MyPod\n"
        )

    monkeypatch.setattr("podpack.compiler.subprocess.run", mock_run)
    cache = BuildSettingsCache()
    builder = XcodeBuilder("proj", "out", settings_cache=cache)

    first = builder.build_settings("ios", "MyPod", BuildVariant.SIMULATOR)
    second = builder.build_settings("ios", "MyPod", BuildVariant.SIMULATOR)

    assert first == second == {"PRODUCT_NAME": "MyPod", "PRODUCT_MODULE_NAME": "MyPod"}
    assert len(commands) == 1
    assert "-showBuildSettings" in commands[0]
    assert " archive " not in commands[0]
    assert commands[0].endswith("-archivePath out/MyPod-simulator.xcarchive")

    # A second builder sharing the cache and key performs no query either.
    XcodeBuilder("proj", "out", settings_cache=cache).build_settings(
        "ios", "MyPod", BuildVariant.SIMULATOR
    )
    assert len(commands) == 1

    builder.build_settings("ios", "MyPod", BuildVariant.DEVICE)
    assert len(commands) == 2
    assert len(cache) == 2

"""
Adapter around `xcodebuild` for archiving a sandboxed pod target.

Commands are plain shell strings so they can be logged, compared and replayed
exactly as they were run.
"""

from pathlib import Path
import subprocess

import click

from pyvider.telemetry import logger

from .exceptions import BuildError
from .models import BuildVariant, Platform, PlatformName

SHOW_BUILD_SETTINGS = "-showBuildSettings"
ARCHIVE_ACTION = "archive"

SettingsKey = tuple[str, str, PlatformName, str, BuildVariant | None]


def parse_build_settings(output: str) -> dict[str, str]:
    """Parses `KEY = VALUE` lines, dropping keys whose value is empty."""
    settings: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if not key or not value or " " in key:
            continue
        settings[key] = value
    return settings


class BuildSettingsCache:
    """Memoized `-showBuildSettings` results for the lifetime of one run."""

    def __init__(self) -> None:
        self._entries: dict[SettingsKey, dict[str, str]] = {}

    def get(self, key: SettingsKey) -> dict[str, str] | None:
        return self._entries.get(key)

    def put(self, key: SettingsKey, settings: dict[str, str]) -> None:
        self._entries[key] = settings

    def __len__(self) -> int:
        return len(self._entries)


class XcodeBuilder:
    """Builds and queries one sandbox project into one output directory."""

    def __init__(
        self,
        project_path: Path | str,
        output_dir: Path | str,
        xcodebuild_opts: str | None = None,
        *,
        settings_cache: BuildSettingsCache | None = None,
        timeout: float | None = None,
        verbose: bool = False,
    ) -> None:
        self.project_path = str(project_path)
        self.output_dir = str(output_dir)
        self.xcodebuild_opts = xcodebuild_opts
        self.settings_cache = settings_cache if settings_cache is not None else BuildSettingsCache()
        self.timeout = timeout
        self.verbose = verbose

    def build(
        self,
        platform: Platform | PlatformName | str,
        target: str,
        extra_args: str | None = None,
    ) -> list[str]:
        """Archives `target` once per build variant of the platform."""
        platform = Platform.parse(platform)
        commands = [
            self.create_build_command(target, platform, variant, extra_args)
            for variant in platform.variants
        ]

        click.secho(f"\nBuilding {target} for {platform.display_name}...\n", fg="yellow")
        outputs = [self.run(command) for command in commands]
        click.secho(f"{platform.display_name} build successful.\n", fg="green")
        return outputs

    def build_settings(
        self,
        platform: Platform | PlatformName | str,
        target: str,
        variant: BuildVariant | None = None,
    ) -> dict[str, str]:
        platform = Platform.parse(platform)
        platform.check_variant(variant)

        key: SettingsKey = (self.project_path, self.output_dir, platform.name, target, variant)
        cached = self.settings_cache.get(key)
        if cached is not None:
            logger.debug("Build settings cache hit", target=target, platform=platform.name.value)
            return cached

        command = self.create_build_command(
            target, platform, variant, action=SHOW_BUILD_SETTINGS
        )
        settings = parse_build_settings(self.run(command))
        self.settings_cache.put(key, settings)
        return settings

    def create_build_command(
        self,
        target: str,
        platform: Platform,
        variant: BuildVariant | None,
        extra_args: str | None = None,
        action: str = ARCHIVE_ACTION,
    ) -> str:
        args = [self._base_args(target), f'-destination "{platform.destination(variant)}"']
        if extra_args is not None and extra_args.strip():
            args.append(extra_args)
        if self.xcodebuild_opts is not None:
            args.append(self.xcodebuild_opts)
        args.append(action)

        archive_name = target if variant is None else f"{target}-{variant.value}"
        args.append(f"-archivePath {self.output_dir}/{archive_name}.xcarchive")
        return " ".join(args)

    def _base_args(self, target: str) -> str:
        return (
            "xcodebuild ONLY_ACTIVE_ARCH=NO SKIP_INSTALL=NO BUILD_LIBRARY_FOR_DISTRIBUTION=YES "
            f"-project {self.project_path} "
            f'-scheme "{target}" -configuration Release EXCLUDED_SOURCE_FILE_NAMES=*-dummy.m'
        )

    def run(self, command: str) -> str:
        logger.info(f"Running command: {command}")
        if self.verbose:
            click.echo(command)

        exit_status, output = self._shellout(command)
        if self.verbose:
            click.echo(output)
        if exit_status == 0:
            return output

        click.echo(output, err=True)
        raise BuildError(
            f"Failed to execute '{command}'. Exit status: {exit_status}",
            command=command,
            exit_status=exit_status,
            output=output,
        )

    def _shellout(self, command: str) -> tuple[int, str]:
        try:
            result = subprocess.run(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            output = e.output if isinstance(e.output, str) else (e.output or b"").decode(errors="replace")
            raise BuildError(
                f"Timed out after {self.timeout}s executing '{command}'.",
                command=command,
                output=output,
            ) from e
        return result.returncode, result.stdout

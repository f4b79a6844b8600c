"""
Installation of a pod into an isolated, per-platform CocoaPods sandbox.

Every install receives an explicit `InstallConfig`; nothing about the
CocoaPods environment is changed globally between platforms.
"""

from collections.abc import Callable, Iterable
from pathlib import Path
import re
import subprocess

from attrs import define, field
import click

from pyvider.telemetry import logger

from .exceptions import InstallError
from .models import PackageManifest, Platform, Sandbox
from .rendering import get_template_env

CONCRETE_TARGET_NAME = "Bin"
DEFAULT_SOURCE_URL = "https://cdn.cocoapods.org/"


@define(frozen=True, slots=True)
class InstallConfig:
    installation_root: Path = field(converter=Path)
    sources: tuple[str, ...] = field(default=(), converter=tuple)
    linkage: str = "dynamic"
    repo_update: bool = False
    verbose: bool = False
    timeout: float | None = None


def _run_pod(args: list[str], cwd: Path | None = None, timeout: float | None = None) -> str:
    command = " ".join(args)
    logger.info(f"Running command: {command}")
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise InstallError(f"Timed out after {timeout}s running '{command}'.", command=command) from e
    if result.returncode != 0:
        click.echo(result.stdout, err=True)
        raise InstallError(
            f"Failed to execute '{command}'. Exit status: {result.returncode}",
            command=command,
            exit_status=result.returncode,
            output=result.stdout,
        )
    return result.stdout


def parse_repo_list(output: str) -> dict[str, str]:
    """Parses `pod repo list` output into a `{name: url}` mapping."""
    repos: dict[str, str] = {}
    name = None
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("- URL:") and name is not None:
            repos[name] = stripped.removeprefix("- URL:").strip()
        elif not stripped.startswith("-") and not re.fullmatch(r"\d+ repos?", stripped):
            name = stripped
    return repos


def configured_sources(pod_executable: str = "pod") -> dict[str, str]:
    return parse_repo_list(_run_pod([pod_executable, "repo", "list"]))


def is_source_url(source: str) -> bool:
    return re.match(r"[\w+.-]+://|git@", source) is not None


def resolve_sources(
    requested: Iterable[str], repo_lister: Callable[[], dict[str, str]]
) -> tuple[str, ...]:
    """
    Maps repo names to their URLs; URLs and unknown names pass through.

    `repo_lister` is only consulted when a name has to be looked up.
    """
    requested = tuple(requested)
    if requested and all(is_source_url(source) for source in requested):
        return requested
    configured = repo_lister()
    if not requested:
        return tuple(configured.values()) or (DEFAULT_SOURCE_URL,)
    return tuple(configured.get(source, source) for source in requested)


class PodInstaller:
    def __init__(self, pod_executable: str = "pod") -> None:
        self.pod_executable = pod_executable

    def render_podfile(
        self, platform: Platform, manifest: PackageManifest, config: InstallConfig
    ) -> str:
        template = get_template_env().get_template("Podfile.j2")
        return template.render(
            sources=config.sources,
            linkage=config.linkage,
            platform_name=platform.name.value,
            deployment_target=platform.deployment_target,
            target_name=CONCRETE_TARGET_NAME,
            pod_name=manifest.name,
            podspec_path=str(manifest.defined_in_file or manifest.source_root),
        )

    def install(
        self, platform: Platform, manifest: PackageManifest, config: InstallConfig
    ) -> Sandbox:
        click.secho(
            f"\nInstalling {manifest.name} for {platform.name.value}...\n", fg="yellow"
        )
        root = config.installation_root
        root.mkdir(parents=True, exist_ok=True)
        (root / "Podfile").write_text(self.render_podfile(platform, manifest, config))

        args = [self.pod_executable, "install"]
        args.append("--repo-update" if config.repo_update else "--no-repo-update")
        if config.verbose:
            args.append("--verbose")
        _run_pod(args, cwd=root, timeout=config.timeout)
        return Sandbox(root)

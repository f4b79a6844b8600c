"""Loading podspecs from disk or a URL, and fetching remote pod sources."""

import json
from pathlib import Path
import re
import shutil
import subprocess
import tarfile
from typing import Any
from urllib.parse import urlparse
import zipfile

import click
import requests

from pyvider.telemetry import logger

from ..exceptions import ConfigurationError, FetchError
from ..models import PackageManifest

REQUEST_TIMEOUT = 60


def _get_cache_dir() -> Path:
    """Returns the user-specific cache directory for downloaded podspecs and sources."""
    cache_dir = Path.home() / ".cache" / "podpack"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def is_remote(source: str) -> bool:
    return re.match(r"https?://", source) is not None


def read_podspec(path: Path) -> dict[str, Any]:
    """Reads a JSON podspec directly, or asks CocoaPods to convert a Ruby one."""
    if path.name.endswith(".podspec.json"):
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON podspec `{path}`: {e}") from e

    result = subprocess.run(
        ["pod", "ipc", "spec", str(path)], capture_output=True, text=True, check=False
    )
    if result.returncode != 0:
        raise ConfigurationError(
            f"Unable to read podspec `{path}` (exit status {result.returncode}).\n"
            f"{result.stderr.strip()}"
        )
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"`pod ipc spec` returned invalid JSON for `{path}`: {e}") from e


def fetch_manifest(url: str, destination_dir: Path) -> Path:
    try:
        response = requests.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Downloading a podspec from `{url}` failed: {e}") from e

    destination_dir.mkdir(parents=True, exist_ok=True)
    output_path = destination_dir / Path(urlparse(url).path).name
    output_path.write_bytes(response.content)
    logger.debug("Downloaded podspec", url=url, path=str(output_path))
    return output_path


def load_local_manifest(path: Path) -> PackageManifest:
    if path.is_dir():
        raise ConfigurationError(f"Podspec specified in `{path}` is a directory.")
    if not path.exists() or ".podspec" not in path.name:
        raise ConfigurationError(f"Unable to find a spec named `{path}`.")
    path = path.resolve()
    return PackageManifest.from_dict(
        read_podspec(path), source_root=path.parent, defined_in_file=path
    )


def load_manifest(source: str, cache_dir: Path | None = None) -> PackageManifest:
    """
    Loads the manifest named by `source`.

    A local podspec is rooted at its own directory. A remote one is
    downloaded, its pod source fetched into the cache, and the manifest is
    re-rooted next to that source.
    """
    if not is_remote(source):
        return load_local_manifest(Path(source))

    cache_dir = cache_dir or _get_cache_dir()
    podspec_path = fetch_manifest(source, cache_dir / "podspecs")
    manifest = PackageManifest.from_dict(
        read_podspec(podspec_path),
        source_root=podspec_path.parent,
        defined_in_file=podspec_path,
    )

    source_dir = cache_dir / "sources" / manifest.name
    if source_dir.exists():
        shutil.rmtree(source_dir)
    source_dir.mkdir(parents=True)
    download_pod_source(manifest, source_dir)

    target_podspec_path = source_dir / podspec_path.name
    shutil.copyfile(podspec_path, target_podspec_path)
    return manifest.rerooted(source_dir, target_podspec_path)


def download_pod_source(manifest: PackageManifest, target: Path) -> None:
    source = manifest.attributes.get("source") or {}
    click.secho(f"Downloading {manifest.name} into {target}...", fg="yellow")
    if "git" in source:
        _clone_git_source(source, target)
    elif "http" in source:
        _download_http_source(source["http"], target)
    else:
        raise ConfigurationError(
            f"Unsupported source for {manifest.name}: {source or 'none given'}"
        )


def _run_git(args: list[str], cwd: Path | None = None) -> None:
    logger.info(f"Running command: {' '.join(args)}")
    result = subprocess.run(args, capture_output=True, text=True, cwd=cwd, check=False)
    if result.returncode != 0:
        raise FetchError(
            f"Command failed with exit code {result.returncode}.\n"
            f"  Command: {' '.join(args)}\n"
            f"  Stderr:\n{result.stderr.strip()}"
        )


def _clone_git_source(source: dict[str, Any], target: Path) -> None:
    ref = source.get("tag") or source.get("branch")
    args = ["git", "clone"]
    if not source.get("commit"):
        args.extend(["--depth", "1"])
    if ref:
        args.extend(["--branch", str(ref)])
    if source.get("submodules"):
        args.append("--recurse-submodules")
    args.extend([source["git"], str(target)])
    _run_git(args)
    if source.get("commit"):
        _run_git(["git", "checkout", "--quiet", source["commit"]], cwd=target)


def _download_http_source(url: str, target: Path) -> None:
    archive_path = target.parent / f".{target.name}-{Path(urlparse(url).path).name}"
    try:
        with requests.get(url, stream=True, timeout=REQUEST_TIMEOUT) as response:
            response.raise_for_status()
            with archive_path.open("wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
    except requests.RequestException as e:
        raise FetchError(f"Downloading pod source from `{url}` failed: {e}") from e

    try:
        if zipfile.is_zipfile(archive_path):
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(target)
        elif tarfile.is_tarfile(archive_path):
            with tarfile.open(archive_path) as archive:
                archive.extractall(target, filter="data")
        else:
            raise FetchError(f"Unsupported archive format for `{url}`.")
    finally:
        archive_path.unlink(missing_ok=True)

    _flatten_single_directory(target)


def _flatten_single_directory(target: Path) -> None:
    entries = list(target.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        return
    nested = entries[0].rename(target / ".podpack-unpacked")
    for child in nested.iterdir():
        shutil.move(str(child), target / child.name)
    nested.rmdir()

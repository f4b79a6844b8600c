"""Copies build products and pod assets into the staging tree."""

from collections.abc import Iterable
import os
from pathlib import Path
import shutil
import subprocess

import click

from pyvider.telemetry import logger

from ..compiler import XcodeBuilder
from ..exceptions import CollisionError, PackagingError, PathEscapeError, StagingError
from ..globbing import expand_glob
from ..modulemap import module_map_for_headers
from ..models import BuildArchive, PackageManifest, Platform, as_list
from ..walker import walk

HEADER_EXTENSIONS = (".h", ".hh", ".hpp")
LICENSE_PREFIXES = ("licence", "license")
MODULE_MAP_FILE_NAME = "module.modulemap"


def _expand_all(root: Path, patterns: Iterable[str]) -> list[Path]:
    paths: list[Path] = []
    for pattern in patterns:
        paths.extend(expand_glob(root, pattern))
    return list(dict.fromkeys(paths))


def _files_below(path: Path) -> list[Path]:
    if not path.is_dir():
        return [path]
    return [candidate for candidate in walk(path) if candidate.is_file()]


def public_headers(manifest: PackageManifest, platform: Platform | None = None) -> list[Path]:
    """Public headers of a pod, from `public_header_files` or its sources."""
    root = manifest.source_root
    patterns = manifest.attribute_for("public_header_files", platform)
    if patterns:
        candidates = _expand_all(root, patterns)
    else:
        candidates = [
            path
            for path in _expand_all(root, manifest.attribute_for("source_files", platform))
            if path.suffix in HEADER_EXTENSIONS
        ]
    private = set(_expand_all(root, manifest.attribute_for("private_header_files", platform)))
    return [path for path in candidates if path not in private and path.is_file()]


def header_mappings_dir(manifest: PackageManifest, platform: Platform | None = None) -> Path | None:
    value = manifest.attributes.get("header_mappings_dir")
    if platform is not None:
        value = (manifest.attributes.get(platform.name.value) or {}).get("header_mappings_dir", value)
    return manifest.source_root / value if value else None


class StagingEngine:
    """
    Writes into one staging directory on behalf of one manifest.

    Every staged file must land below the staging root and no file is ever
    written twice; violations are manifest defects and raise.
    """

    def __init__(
        self,
        manifest: PackageManifest,
        stage_dir: Path,
        *,
        timeout: float | None = None,
    ) -> None:
        self.manifest = manifest
        self.source_root = Path(manifest.source_root)
        self.stage_dir = Path(stage_dir)
        self.timeout = timeout

    def stage_file(self, file_path: Path) -> Path:
        relative_dir = os.path.relpath(
            os.path.dirname(os.path.abspath(file_path)),
            os.path.abspath(self.source_root),
        )
        if Path(relative_dir).parts[:1] == ("..",):
            raise PathEscapeError(f"Bad relative path {relative_dir}")

        staged_folder = self.stage_dir / relative_dir
        staged_file_path = staged_folder / Path(file_path).name
        if staged_file_path.exists() or staged_file_path.is_symlink():
            raise CollisionError(f"File {staged_file_path} already exists.")

        staged_folder.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(file_path, staged_file_path)
        logger.debug("Staged file", source=str(file_path), destination=str(staged_file_path))
        return staged_file_path

    def copy_glob(self, pattern: str) -> list[Path]:
        """Stages everything `pattern` matches; directories are copied recursively."""
        # `**/*` matches a directory and the files below it; stage each file once.
        file_paths: list[Path] = []
        for match in expand_glob(self.source_root, pattern):
            file_paths.extend(_files_below(match))
        return [self.stage_file(file_path) for file_path in dict.fromkeys(file_paths)]

    def rewrite_module_map(self, archives: Iterable[BuildArchive], contents: str) -> None:
        for archive in archives:
            archive.modules_path.mkdir(parents=True, exist_ok=True)
            (archive.modules_path / MODULE_MAP_FILE_NAME).write_text(contents)

    def assemble_framework_artifact(
        self,
        platform: Platform,
        archives: Iterable[BuildArchive],
        output_path: Path,
    ) -> str:
        args = ["xcodebuild", "-create-xcframework"]
        for archive in archives:
            args.extend(["-framework", os.path.abspath(archive.framework_path)])
            for dsym_path in archive.dsym_paths():
                args.extend(["-debug-symbols", os.path.abspath(dsym_path)])
            for symbol_map_path in archive.symbol_map_paths():
                args.extend(["-debug-symbols", os.path.abspath(symbol_map_path)])
        args.extend(["-output", str(output_path)])

        command = " ".join(args)
        logger.info(f"Running command: {command}", platform=platform.name.value)
        try:
            result = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise PackagingError(
                f"Timed out after {self.timeout}s invoking create-xcframework.",
                command=command,
            ) from e

        if result.returncode != 0:
            click.echo(result.stdout, err=True)
            raise PackagingError(
                f"Failed to invoke create-xcframework command! Exit status: {result.returncode}",
                command=command,
                exit_status=result.returncode,
                output=result.stdout,
            )
        return result.stdout

    def stage_platform(
        self,
        platform: Platform,
        archives: list[BuildArchive],
        builder: XcodeBuilder,
        generate_module_map: bool = False,
    ) -> Path:
        """Assembles the platform's xcframework under `<stage>/<platform>`."""
        target = self.manifest.name
        staged_platform_path = self.stage_dir / platform.name.value
        click.secho(
            f"Staging {platform.name.value}-{target} into {staged_platform_path}...", fg="yellow"
        )
        staged_platform_path.mkdir(parents=True, exist_ok=True)

        if generate_module_map:
            settings = builder.build_settings(platform, target, platform.settings_variant)
            module_name = settings.get("PRODUCT_MODULE_NAME", self.manifest.module_name)
            contents = module_map_for_headers(
                module_name,
                public_headers(self.manifest, platform),
                header_mappings_dir(self.manifest, platform),
            )
            self.rewrite_module_map(archives, contents)

        output_path = staged_platform_path / f"{self.manifest.module_name}.xcframework"
        self.assemble_framework_artifact(platform, archives, output_path)
        return output_path

    def stage_shared_assets(self) -> list[Path]:
        staged: list[Path] = []
        for attribute in ("vendored_frameworks", "vendored_libraries"):
            for pattern in self.manifest.attribute_for_all_platforms(attribute):
                staged.extend(self.copy_glob(pattern))
        staged.extend(self.stage_resource_bundles())
        for attribute in ("preserve_paths", "resources"):
            for pattern in dict.fromkeys(as_list(self.manifest.attributes.get(attribute))):
                staged.extend(self.copy_glob(pattern))
        license_path = self.stage_license()
        if license_path is not None:
            staged.append(license_path)
        return staged

    def stage_resource_bundles(self) -> list[Path]:
        bundles = self.manifest.attributes.get("resource_bundles") or {}
        resource_paths: list[Path] = []
        for patterns in bundles.values():
            for match in _expand_all(self.source_root, as_list(patterns)):
                resource_paths.extend(_files_below(match))
        return [self.stage_file(path) for path in dict.fromkeys(resource_paths)]

    def stage_license(self) -> Path | None:
        license_spec = self.manifest.license
        if license_spec.text:
            return None

        if license_spec.file:
            license_file = self.source_root / license_spec.file
            if not license_file.is_file():
                raise StagingError(f"License file {license_file} does not exist.")
        else:
            license_file = self.default_license_file()
        if license_file is None:
            return None
        return self.stage_file(license_file)

    def default_license_file(self) -> Path | None:
        if not self.source_root.is_dir():
            return None
        for name in sorted(os.listdir(self.source_root)):
            candidate = self.source_root / name
            if name.lower().startswith(LICENSE_PREFIXES) and candidate.is_file():
                return candidate
        return None

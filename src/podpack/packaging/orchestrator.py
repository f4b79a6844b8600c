"""Core logic for turning a source pod into a zipped binary pod."""

from collections.abc import Callable
from pathlib import Path
import shutil

from attrs import define
import click

from pyvider.telemetry import logger

from ..compiler import BuildSettingsCache, XcodeBuilder
from ..exceptions import ConfigurationError, ValidationError
from ..installer import InstallConfig, PodInstaller, configured_sources, resolve_sources
from ..manifest.generator import BinarySpecGenerator
from ..manifest.validator import SpecValidator
from ..models import BuildArchive, PackageManifest, PackOptions, Platform, PlatformName, Sandbox
from .archive import ZipFileWriter, skip_podspecs_and_symlinks
from .staging import StagingEngine


@define(frozen=True, slots=True)
class PackResult:
    zip_path: Path
    podspec_path: Path
    staged_sources: bool
    platforms: tuple[Platform, ...]


class PackOrchestrator:
    XCODEBUILD_DIR_NAME = "xcodebuild"

    def __init__(
        self,
        manifest: PackageManifest,
        options: PackOptions,
        artifact_repo_url: str | None = None,
        *,
        installer: PodInstaller | None = None,
        validator: SpecValidator | None = None,
        repo_lister: Callable[[], dict[str, str]] = configured_sources,
    ) -> None:
        self.manifest = manifest
        self.options = options
        self.artifact_repo_url = artifact_repo_url or manifest.artifact_repo_url
        if not self.artifact_repo_url:
            raise ConfigurationError("Must supply an artifact repo url.")

        self.installer = installer or PodInstaller()
        self.validator = validator or SpecValidator(
            sources=options.sources,
            allow_warnings=options.allow_warnings,
            use_static_frameworks=options.use_static_frameworks,
            timeout=options.build_timeout,
        )
        self.repo_lister = repo_lister
        self.settings_cache = BuildSettingsCache()
        self.builders: dict[PlatformName, XcodeBuilder] = {}

        out_dir = Path(options.out_dir).resolve()
        self.project_files_dir = out_dir / "files" / manifest.name / manifest.version
        self.project_zips_dir = out_dir / "zips" / manifest.name / manifest.version
        self.stage_dir = self.project_files_dir / "staged"

    def available_platforms(self) -> list[Platform]:
        return [
            platform
            for platform in self.manifest.available_platforms
            if not self.options.is_skipped(platform)
        ]

    def run(self) -> PackResult:
        logger.info("Orchestrator starting pack", pod=self.manifest.name, version=self.manifest.version)
        self.project_files_dir.mkdir(parents=True, exist_ok=True)
        self.project_zips_dir.mkdir(parents=True, exist_ok=True)
        if self.stage_dir.exists():
            shutil.rmtree(self.stage_dir)
        self.stage_dir.mkdir(parents=True)

        source_urls = resolve_sources(self.options.sources, self.repo_lister)
        staging = StagingEngine(self.manifest, self.stage_dir, timeout=self.options.build_timeout)

        platforms = self.available_platforms()
        staged_sources = False
        for platform in platforms:
            sandbox = self.install(platform, source_urls)
            builder = self.builder_for(platform, sandbox)
            builder.build(platform, self.manifest.name)

            archives = self.discover_archives(Path(builder.output_dir))
            if all(archive.is_empty() for archive in archives):
                logger.info("No build products to stage", platform=platform.name.value)
                continue
            staging.stage_platform(
                platform, archives, builder, self.options.generate_module_map
            )
            staged_sources = True

        staging.stage_shared_assets()
        zip_path = self.pack()
        podspec_path = self.write_binary_podspec(zip_path, staged_sources)
        self.validate(podspec_path)

        click.secho(f"Binary pod for {self.manifest.name} created successfully!", fg="green")
        return PackResult(
            zip_path=zip_path,
            podspec_path=podspec_path,
            staged_sources=staged_sources,
            platforms=tuple(platforms),
        )

    def install(self, platform: Platform, source_urls: tuple[str, ...]) -> Sandbox:
        config = InstallConfig(
            installation_root=self.project_files_dir / "sandbox" / platform.name.value,
            sources=source_urls,
            linkage=self.options.linkage,
            repo_update=self.options.repo_update,
            verbose=self.options.verbose,
            timeout=self.options.build_timeout,
        )
        return self.installer.install(platform, self.manifest, config)

    def builder_for(self, platform: Platform, sandbox: Sandbox) -> XcodeBuilder:
        builder = XcodeBuilder(
            sandbox.project_path,
            sandbox.root / self.XCODEBUILD_DIR_NAME,
            self.options.xcodebuild_opts,
            settings_cache=self.settings_cache,
            timeout=self.options.build_timeout,
            verbose=self.options.verbose,
        )
        self.builders[platform.name] = builder
        return builder

    def discover_archives(self, xcodebuild_out_dir: Path) -> list[BuildArchive]:
        return [
            BuildArchive(path, self.manifest)
            for path in sorted(xcodebuild_out_dir.glob("**/*.xcarchive"))
        ]

    def pack(self) -> Path:
        output_path = self.project_zips_dir / f"{self.manifest.name}.zip"
        click.secho(f"\nPacking {self.stage_dir} into {output_path}...\n", fg="green")
        return ZipFileWriter(self.stage_dir, output_path).write(skip_podspecs_and_symlinks)

    def binary_spec_generator(self, zip_path: Path, staged_sources: bool) -> BinarySpecGenerator:
        generator = BinarySpecGenerator(
            self.manifest, self.artifact_repo_url, zip_path, staged_sources
        )
        for platform in self.available_platforms():
            builder = self.builders.get(platform.name)
            if builder is None:
                continue
            settings = builder.build_settings(
                platform, self.manifest.name, platform.settings_variant
            )
            product_name = settings.get("PRODUCT_NAME", self.manifest.module_name)
            generator.add_platform(platform, f"{product_name}.xcframework")
        return generator

    def write_binary_podspec(self, zip_path: Path, staged_sources: bool) -> Path:
        generator = self.binary_spec_generator(zip_path, staged_sources)
        if self.options.use_json:
            podspec_path = self.stage_dir / f"{self.manifest.name}.podspec.json"
            podspec_path.write_text(generator.to_json())
        else:
            podspec_path = self.stage_dir / f"{self.manifest.name}.podspec"
            podspec_path.write_text(generator.to_ruby())
        logger.info("Wrote binary podspec", path=str(podspec_path))
        return podspec_path

    def validate(self, podspec_path: Path) -> None:
        if self.options.skip_validation:
            click.secho("Skipping validation phase...", fg="yellow")
            return

        click.secho("\nValidating generated binary podspec...\n", fg="yellow")
        failure_reason = self.validator.validate(podspec_path)
        if failure_reason:
            raise ValidationError(
                f"The binary spec did not pass validation, due to {failure_reason}."
            )

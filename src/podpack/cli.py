"""The `podpack` command-line interface."""

import importlib.metadata
from pathlib import Path
import shutil
import tomllib
from typing import Any

import click

from .exceptions import ConfigurationError, PackError
from .manifest.loader import _get_cache_dir, load_manifest
from .models import PackOptions
from .packaging.orchestrator import PackOrchestrator

try:
    __version__ = importlib.metadata.version("podpack")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"


def load_config(config_path: Path) -> dict[str, Any]:
    """Reads the optional `[tool.podpack]` table used for option defaults."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in '{config_path}': {e}") from e
    return data.get("tool", {}).get("podpack", {})


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__,
    "-V",
    "--version",
    prog_name="podpack",
    message="%(prog)s version %(version)s",
)
def cli() -> None:
    """An xcframework and binary podspec generator."""
    pass


@cli.command("pack")
@click.argument("source")
@click.argument("artifact_repo_url", required=False)
@click.option(
    "--use-static-frameworks",
    is_flag=True,
    help="Produce a framework that wraps a static library. Dynamic frameworks are used by default.",
)
@click.option(
    "--generate-module-map",
    is_flag=True,
    help="Replace the umbrella module map generated by Xcode with one built from the header dirs.",
)
@click.option("--allow-warnings", is_flag=True, help="Lint validates even if warnings are present.")
@click.option("--repo-update", is_flag=True, help="Force running `pod repo update` before install.")
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, resolve_path=True),
    help="Directory to output results into. Defaults to the current working directory.",
)
@click.option("--skip-validation", is_flag=True, help="Skip linting the generated binary podspec.")
@click.option("--skip-platforms", help="Comma-delimited platforms to skip when creating a binary.")
@click.option("--xcodebuild-opts", help="Options to be passed through to xcodebuild.")
@click.option("--use-json", is_flag=True, help="Use JSON for the generated binary podspec.")
@click.option(
    "--sources",
    help="Comma-delimited sources from which to pull dependant pods (defaults to all configured repos).",
)
@click.option(
    "--build-timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds after which any single external tool invocation is aborted.",
)
@click.option("--verbose", is_flag=True, help="Show every command run and its output.")
@click.option(
    "--config",
    "config_path",
    default="pyproject.toml",
    type=click.Path(dir_okay=False, resolve_path=True),
    help="pyproject.toml whose [tool.podpack] table provides option defaults.",
)
def pack_command(
    source: str,
    artifact_repo_url: str | None,
    use_static_frameworks: bool,
    generate_module_map: bool,
    allow_warnings: bool,
    repo_update: bool,
    out_dir: str | None,
    skip_validation: bool,
    skip_platforms: str | None,
    xcodebuild_opts: str | None,
    use_json: bool,
    sources: str | None,
    build_timeout: float | None,
    verbose: bool,
    config_path: str,
) -> None:
    """Packs SOURCE into an xcframework-based binary pod hosted at ARTIFACT_REPO_URL."""
    click.echo(f"🚀 Packing '{source}'...")
    try:
        config = load_config(Path(config_path))
        options = PackOptions(
            out_dir=Path(out_dir or config.get("out_dir") or Path.cwd()),
            use_static_frameworks=use_static_frameworks,
            generate_module_map=generate_module_map,
            allow_warnings=allow_warnings,
            repo_update=repo_update,
            skip_validation=skip_validation,
            skipped_platforms=skip_platforms if skip_platforms is not None else config.get("skip_platforms"),
            xcodebuild_opts=xcodebuild_opts if xcodebuild_opts is not None else config.get("xcodebuild_opts"),
            use_json=use_json,
            sources=sources if sources is not None else config.get("sources"),
            build_timeout=build_timeout if build_timeout is not None else config.get("build_timeout"),
            verbose=verbose,
        )

        manifest = load_manifest(source)
        orchestrator = PackOrchestrator(manifest, options, artifact_repo_url)
        result = orchestrator.run()
        click.secho(f"✅ Zip: {result.zip_path}", fg="green")
        click.secho(f"✅ Podspec: {result.podspec_path}", fg="green")

    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e
    except PackError as e:
        click.secho(f"❌ Packing Failed:\n{e}", fg="red", err=True)
        raise click.Abort() from e


@cli.command("clean")
def clean_command() -> None:
    """Removes cached podspec and pod source downloads."""
    click.echo("🧹 Cleaning cached downloads...")
    cache_dir = _get_cache_dir()
    removed = False
    for child in ("podspecs", "sources"):
        path = cache_dir / child
        if path.exists():
            shutil.rmtree(path)
            removed = True
            click.secho(f"✅ Removed cache directory: {path}", fg="green")
    if not removed:
        click.secho("i️ Cache directory not found, nothing to clean.", fg="yellow")


main = cli

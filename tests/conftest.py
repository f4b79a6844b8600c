"""Pytest fixtures for the entire podpack test suite."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from podpack.models import BuildArchive, PackageManifest


@pytest.fixture
def make_pod_source(tmp_path: Path) -> Callable[..., Path]:
    """A factory fixture that lays out a small pod with a JSON podspec."""

    def _make_pod(overrides: dict[str, Any] | None = None, name: str = "MyPod") -> Path:
        pod_dir = tmp_path / name
        (pod_dir / "Sources" / "Core").mkdir(parents=True)
        (pod_dir / "Sources" / "MyPod.h").write_text("// umbrella\n")
        (pod_dir / "Sources" / "MyPod.m").write_text("// impl\n")
        (pod_dir / "Sources" / "Core" / "Core-Utils.h").write_text("// core\n")
        (pod_dir / "Resources" / "Images").mkdir(parents=True)
        (pod_dir / "Resources" / "Images" / "icon.png").write_bytes(b"\x89PNG")
        (pod_dir / "Resources" / "strings.json").write_text("{}")
        (pod_dir / "LICENSE").write_text("MIT License\n")

        podspec = {
            "name": name,
            "version": "1.2.3",
            "summary": "A pod used in tests.",
            "homepage": "https://example.com/mypod",
            "license": {"type": "MIT"},
            "authors": {"Jane": "jane@example.com"},
            "source": {"git": "https://example.com/mypod.git", "tag": "1.2.3"},
            "platforms": {"ios": "12.0", "osx": "10.13"},
            "source_files": "Sources/**/*.{h,m}",
            "resources": ["Resources/strings.json"],
        }
        podspec.update(overrides or {})
        (pod_dir / f"{name}.podspec.json").write_text(json.dumps(podspec))
        return pod_dir

    return _make_pod


@pytest.fixture
def make_manifest(make_pod_source: Callable[..., Path]) -> Callable[..., PackageManifest]:
    """Builds a PackageManifest rooted in a freshly created pod source."""

    def _make(overrides: dict[str, Any] | None = None) -> PackageManifest:
        pod_dir = make_pod_source(overrides)
        podspec_path = pod_dir / "MyPod.podspec.json"
        return PackageManifest.from_dict(
            json.loads(podspec_path.read_text()),
            source_root=pod_dir,
            defined_in_file=podspec_path,
        )

    return _make


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., BuildArchive]:
    """Creates an .xcarchive tree with a framework, dSYMs and symbol maps."""

    def _make(
        manifest: PackageManifest,
        name: str,
        *,
        dsyms: int = 1,
        symbol_maps: int = 0,
        empty: bool = False,
    ) -> BuildArchive:
        path = tmp_path / "xcodebuild" / f"{name}.xcarchive"
        (path / "Products").mkdir(parents=True)
        archive = BuildArchive(path, manifest)
        if not empty:
            (archive.modules_path).mkdir(parents=True)
            (archive.modules_path / "module.modulemap").write_text("umbrella\n")
            (archive.framework_path / manifest.module_name).write_bytes(b"\xcf\xfa\xed\xfe")
        for index in range(dsyms):
            (path / "dSYMs" / f"{manifest.module_name}{index}.framework.dSYM").mkdir(parents=True)
        for index in range(symbol_maps):
            (path / "BCSymbolMaps").mkdir(exist_ok=True)
            (path / "BCSymbolMaps" / f"UUID-{index}.bcsymbolmap").write_text("map")
        return archive

    return _make

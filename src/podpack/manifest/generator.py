"""Generation of the binary podspec that consumers install instead of source."""

import copy
import json
from pathlib import Path
from typing import Any

from ..models import PackageManifest, Platform, PlatformName, as_list
from ..rendering import get_template_env

# Attributes that only make sense when compiling from source, or that
# podpack itself consumes.
SOURCE_ONLY_ATTRIBUTES = frozenset(
    {
        "source",
        "source_files",
        "exclude_files",
        "public_header_files",
        "private_header_files",
        "project_header_files",
        "header_dir",
        "header_mappings_dir",
        "compiler_flags",
        "prefix_header_contents",
        "prefix_header_file",
        "module_map",
        "requires_arc",
        "script_phases",
        "static_framework",
        "subspecs",
        "default_subspecs",
        "testspecs",
        "appspecs",
        "artifact_repo_url",
    }
)

# Rendered with symbol keys in the Ruby DSL.
SYMBOL_KEYED_ATTRIBUTES = frozenset({"source", "license", "platforms"})


def _strip_source_only(attributes: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in attributes.items() if key not in SOURCE_ONLY_ATTRIBUTES}


def _requirement_lists(dependencies: dict[str, Any]) -> dict[str, list[Any]]:
    return {name: as_list(requirements) for name, requirements in dependencies.items()}


class BinarySpecGenerator:
    """Accumulates per-platform xcframeworks and renders the binary podspec."""

    def __init__(
        self,
        source_manifest: PackageManifest,
        artifact_repo_url: str,
        zip_output_path: Path,
        staged_sources: bool,
    ) -> None:
        self.source_manifest = source_manifest
        self.artifact_repo_url = artifact_repo_url
        self.zip_output_path = Path(zip_output_path)
        self.staged_sources = staged_sources
        self.platform_artifacts: dict[PlatformName, str] = {}

    def add_platform(self, platform: Platform, artifact_name: str) -> None:
        self.platform_artifacts[platform.name] = artifact_name

    @property
    def source_url(self) -> str:
        manifest = self.source_manifest
        return "/".join(
            [
                self.artifact_repo_url.rstrip("/"),
                manifest.name,
                manifest.version,
                self.zip_output_path.name,
            ]
        )

    def generate(self) -> dict[str, Any]:
        spec = _strip_source_only(copy.deepcopy(self.source_manifest.attributes))
        spec["source"] = {"http": self.source_url}

        for name in PlatformName:
            section = spec.get(name.value)
            if section is not None:
                spec[name.value] = _strip_source_only(section)

        if self.staged_sources:
            for name, artifact_name in self.platform_artifacts.items():
                section = spec.setdefault(name.value, {})
                frameworks = section.get("vendored_frameworks", [])
                if isinstance(frameworks, str):
                    frameworks = [frameworks]
                section["vendored_frameworks"] = [*frameworks, f"{name.value}/{artifact_name}"]
        return spec

    def to_json(self) -> str:
        return json.dumps(self.generate(), indent=2) + "\n"

    def to_ruby(self) -> str:
        spec = self.generate()
        platform_sections = {
            name.value: spec.pop(name.value) for name in PlatformName if name.value in spec
        }
        dependencies = _requirement_lists(spec.pop("dependencies", {}))
        template = get_template_env().get_template("podspec.rb.j2")
        return template.render(
            attributes=spec,
            dependencies=dependencies,
            platform_sections=[
                {
                    "name": name,
                    "dependencies": _requirement_lists(section.pop("dependencies", {})),
                    "attributes": section,
                }
                for name, section in platform_sections.items()
            ],
            symbol_keyed=SYMBOL_KEYED_ATTRIBUTES,
        )

import enum
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Self

from attrs import define, evolve, field

from .exceptions import ConfigurationError


class PlatformName(enum.Enum):
    IOS = "ios"
    MACOS = "osx"
    WATCHOS = "watchos"
    TVOS = "tvos"


class BuildVariant(enum.Enum):
    DEVICE = "device"
    SIMULATOR = "simulator"


@define(frozen=True, slots=True)
class PlatformTraits:
    display_name: str
    destination: str
    has_device_simulator_split: bool


PLATFORM_TRAITS: dict[PlatformName, PlatformTraits] = {
    PlatformName.IOS: PlatformTraits("iOS", "iOS", True),
    PlatformName.MACOS: PlatformTraits("macOS", "macOS", False),
    PlatformName.WATCHOS: PlatformTraits("watchOS", "watchOS", True),
    PlatformName.TVOS: PlatformTraits("tvOS", "tvOS", True),
}

_PLATFORM_LOOKUP: dict[str, PlatformName] = {
    "ios": PlatformName.IOS,
    "osx": PlatformName.MACOS,
    "macos": PlatformName.MACOS,
    "watchos": PlatformName.WATCHOS,
    "tvos": PlatformName.TVOS,
}


def _normalize_platform_key(value: str) -> str:
    return re.sub(r"\s+", "", value).lower()


def c99_identifier(value: str) -> str:
    """Turns an arbitrary name into a valid C99 extended identifier."""
    identifier = re.sub(r"[^0-9A-Za-z_]", "_", value)
    if identifier[:1].isdigit():
        identifier = "_" + identifier
    return identifier


def as_list(value: Any) -> list[Any]:
    """Mirrors the podspec DSL, where most list attributes also accept a scalar."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


@define(frozen=True, slots=True)
class Platform:
    name: PlatformName
    deployment_target: str | None = None

    @classmethod
    def parse(cls, value: "str | PlatformName | Platform", deployment_target: str | None = None) -> Self:
        if isinstance(value, Platform):
            return value
        if isinstance(value, PlatformName):
            return cls(value, deployment_target)
        key = _normalize_platform_key(str(value))
        if key not in _PLATFORM_LOOKUP:
            raise ConfigurationError(f"Unknown platform: '{value}'")
        return cls(_PLATFORM_LOOKUP[key], deployment_target)

    @property
    def traits(self) -> PlatformTraits:
        return PLATFORM_TRAITS[self.name]

    @property
    def display_name(self) -> str:
        return self.traits.display_name

    @property
    def normalized_name(self) -> str:
        return _normalize_platform_key(self.display_name)

    @property
    def variants(self) -> tuple[BuildVariant | None, ...]:
        if self.traits.has_device_simulator_split:
            return (BuildVariant.SIMULATOR, BuildVariant.DEVICE)
        return (None,)

    @property
    def settings_variant(self) -> BuildVariant | None:
        """The variant whose build settings describe the platform's product."""
        return self.variants[0]

    def destination(self, variant: BuildVariant | None) -> str:
        self.check_variant(variant)
        if variant is BuildVariant.SIMULATOR:
            return f"generic/platform={self.traits.destination} Simulator"
        return f"generic/platform={self.traits.destination}"

    def check_variant(self, variant: BuildVariant | None) -> None:
        if variant not in self.variants:
            shown = variant.value if isinstance(variant, BuildVariant) else variant
            raise ConfigurationError(
                f"Unknown type for {self.display_name}: '{shown}'"
            )


@define(frozen=True, slots=True)
class LicenseSpec:
    type: str | None = None
    file: str | None = None
    text: str | None = None

    @classmethod
    def from_attribute(cls, value: Any) -> Self:
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(type=value)
        return cls(type=value.get("type"), file=value.get("file"), text=value.get("text"))


@define(frozen=True, slots=True)
class PackageManifest:
    name: str
    version: str
    attributes: dict[str, Any] = field(factory=dict, eq=False, repr=False)
    source_root: Path = field(factory=Path.cwd, converter=Path)
    defined_in_file: Path | None = None
    platforms: tuple[Platform, ...] = ()

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        source_root: Path,
        defined_in_file: Path | None = None,
    ) -> Self:
        name = data.get("name")
        version = data.get("version")
        if not name or not version:
            raise ConfigurationError("A podspec requires both a 'name' and a 'version'.")

        declared = data.get("platforms") or {}
        if isinstance(declared, str):
            declared = {declared: None}
        platforms = tuple(
            Platform.parse(platform_name, target or None)
            for platform_name, target in declared.items()
        )
        return cls(
            name=str(name),
            version=str(version),
            attributes=dict(data),
            source_root=source_root,
            defined_in_file=defined_in_file,
            platforms=platforms,
        )

    @property
    def module_name(self) -> str:
        explicit = self.attributes.get("module_name")
        if explicit:
            return explicit
        return c99_identifier(self.attributes.get("header_dir") or self.name)

    @property
    def license(self) -> LicenseSpec:
        return LicenseSpec.from_attribute(self.attributes.get("license"))

    @property
    def artifact_repo_url(self) -> str | None:
        return self.attributes.get("artifact_repo_url")

    @property
    def available_platforms(self) -> tuple[Platform, ...]:
        if self.platforms:
            return self.platforms
        return tuple(Platform(name) for name in PlatformName)

    def attribute_for(self, attribute: str, platform: Platform | None = None) -> list[Any]:
        """Root value of a list attribute merged with a platform's override."""
        values = as_list(self.attributes.get(attribute))
        if platform is not None:
            overrides = self.attributes.get(platform.name.value) or {}
            values += as_list(overrides.get(attribute))
        return values

    def attribute_for_all_platforms(self, attribute: str) -> list[Any]:
        values = as_list(self.attributes.get(attribute))
        for name in PlatformName:
            overrides = self.attributes.get(name.value) or {}
            values += as_list(overrides.get(attribute))
        return list(dict.fromkeys(values))

    def rerooted(self, source_root: Path, defined_in_file: Path) -> Self:
        return evolve(self, source_root=source_root, defined_in_file=defined_in_file)


@define(frozen=True, slots=True)
class BuildArchive:
    """A completed `.xcarchive` produced by one xcodebuild invocation."""

    path: Path = field(converter=Path)
    manifest: PackageManifest

    def dsym_paths(self) -> list[Path]:
        return sorted(self.path.glob("dSYMs/*.dSYM"))

    def symbol_map_paths(self) -> list[Path]:
        return sorted(self.path.glob("BCSymbolMaps/*.bcsymbolmap"))

    def is_empty(self) -> bool:
        products = self.path / "Products"
        return not products.is_dir() or not any(products.iterdir())

    @property
    def framework_path(self) -> Path:
        return (
            self.path
            / "Products"
            / "Library"
            / "Frameworks"
            / f"{self.manifest.module_name}.framework"
        )

    @property
    def modules_path(self) -> Path:
        return self.framework_path / "Modules"


@define(frozen=True, slots=True)
class Sandbox:
    installation_root: Path = field(converter=Path)

    @property
    def root(self) -> Path:
        return self.installation_root / "Pods"

    @property
    def project_path(self) -> Path:
        return self.root / "Pods.xcodeproj"


def _split_list(value: str | Iterable[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    items = value.split(",") if isinstance(value, str) else value
    return tuple(item.strip() for item in items if item and item.strip())


def _normalize_skip_list(value: str | Iterable[str] | None) -> tuple[str, ...]:
    return tuple(_normalize_platform_key(item) for item in _split_list(value))


@define(frozen=True, slots=True)
class PackOptions:
    out_dir: Path = field(factory=Path.cwd, converter=Path)
    use_static_frameworks: bool = False
    generate_module_map: bool = False
    allow_warnings: bool = False
    repo_update: bool = False
    skip_validation: bool = False
    skipped_platforms: tuple[str, ...] = field(default=(), converter=_normalize_skip_list)
    xcodebuild_opts: str | None = None
    use_json: bool = False
    sources: tuple[str, ...] = field(default=(), converter=_split_list)
    build_timeout: float | None = None
    verbose: bool = False

    @property
    def linkage(self) -> str:
        return "static" if self.use_static_frameworks else "dynamic"

    def is_skipped(self, platform: Platform) -> bool:
        return (
            platform.normalized_name in self.skipped_platforms
            or platform.name.value in self.skipped_platforms
        )

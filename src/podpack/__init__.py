"""
This package converts a source podspec into a prebuilt binary pod: one
xcframework per platform, the pod's assets, a zip of both and a rewritten
podspec pointing at that zip.
"""

from .compiler import XcodeBuilder
from .models import BuildVariant, PackageManifest, PackOptions, Platform, PlatformName
from .packaging.orchestrator import PackOrchestrator

__all__ = [
    "BuildVariant",
    "PackageManifest",
    "PackOptions",
    "PackOrchestrator",
    "Platform",
    "PlatformName",
    "XcodeBuilder",
]

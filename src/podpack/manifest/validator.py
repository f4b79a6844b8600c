"""Linting of the generated binary podspec with `pod lib lint`."""

from collections.abc import Sequence
from pathlib import Path
import subprocess

from attrs import define, field

from pyvider.telemetry import logger


@define(frozen=True, slots=True)
class SpecValidator:
    sources: tuple[str, ...] = field(default=(), converter=tuple)
    allow_warnings: bool = False
    use_static_frameworks: bool = False
    pod_executable: str = "pod"
    timeout: float | None = None

    def lint_command(self, podspec_path: Path) -> list[str]:
        args = [
            self.pod_executable,
            "lib",
            "lint",
            str(podspec_path),
            "--no-subspecs",
            "--fail-fast",
        ]
        if self.sources:
            args.append(f"--sources={','.join(self.sources)}")
        if self.allow_warnings:
            args.append("--allow-warnings")
        if self.use_static_frameworks:
            args.append("--use-static-frameworks")
        return args

    def validate(self, podspec_path: Path) -> str | None:
        """Returns the reason the podspec failed to lint, or `None`."""
        args = self.lint_command(podspec_path)
        logger.info(f"Running command: {' '.join(args)}")
        try:
            result = subprocess.run(
                args,
                cwd=Path(podspec_path).parent,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return f"linting timed out after {self.timeout}s"
        if result.returncode == 0:
            return None
        return failure_reason(result.stdout.splitlines())


def failure_reason(lines: Sequence[str]) -> str:
    """Picks the most specific reason out of `pod lib lint` output."""
    for line in lines:
        stripped = line.strip()
        if stripped.startswith("- ERROR |"):
            return stripped.removeprefix("- ERROR |").strip()
    for line in reversed(lines):
        stripped = line.strip()
        if stripped.startswith("[!]"):
            return stripped.removeprefix("[!]").strip()
    return "pod lib lint failed"

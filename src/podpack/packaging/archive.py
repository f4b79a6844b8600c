"""Zips the staging tree into the distributable artifact."""

from collections.abc import Callable
import os
from pathlib import Path
import zipfile

from pyvider.telemetry import logger

from ..walker import walk

PODSPEC_SUFFIXES = (".podspec", ".podspec.json")


def skip_podspecs_and_symlinks(path: Path) -> bool:
    return path.name.endswith(PODSPEC_SUFFIXES) or path.is_symlink()


class ZipFileWriter:
    """Writes every entry below `input_dir` into `output_path`."""

    def __init__(self, input_dir: Path, output_path: Path) -> None:
        self.input_dir = Path(input_dir)
        self.output_path = Path(output_path)

    def write(self, skip: Callable[[Path], bool] | None = None) -> Path:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with zipfile.ZipFile(self.output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in walk(self.input_dir):
                if path == self.input_dir:
                    continue
                arcname = os.path.relpath(path, self.input_dir).replace(os.sep, "/")
                if path.is_dir():
                    info = zipfile.ZipInfo(arcname + "/")
                    info.external_attr = (0o40755 << 16) | 0x10
                    archive.writestr(info, "")
                    continue
                if skip is not None and skip(path):
                    continue
                archive.write(path, arcname)
                written += 1
        logger.info("Wrote zip archive", path=str(self.output_path), files=written)
        return self.output_path

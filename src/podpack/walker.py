"""
Depth-first directory traversal that follows symbolic links to directories.

A symlinked directory is yielded once under its own path and then its
target's contents are walked in its place, so consumers copying the tree
recreate it as a real directory. Following links can introduce cycles; a link
whose target is one of the directories on the current branch raises
`CycleError`. Only the current root-to-node branch is remembered, so two
unrelated links resolving to the same directory are not a cycle.
"""

from collections.abc import Iterator
import os
from pathlib import Path

from attrs import define

from .exceptions import BrokenLinkError, CycleError


@define(frozen=True, slots=True)
class _Frame:
    path: Path
    canonical: str


def _canonical(path: Path) -> str:
    return os.path.realpath(path)


def _root_frames(root: Path) -> tuple[_Frame, ...]:
    absolute = Path(os.path.abspath(root))
    return tuple(
        _Frame(ancestor, _canonical(ancestor))
        for ancestor in reversed(absolute.parents)
    )


def walk(root: Path | str, *, legacy_trailing_slash: bool = False) -> Iterator[Path]:
    """
    Lazily yields `root` and everything below it, parents before children.

    `legacy_trailing_slash` keeps an old quirk: a string root ending in a
    path separator that is a symlink to a directory is descended without a
    cycle check.
    """
    unchecked = (
        legacy_trailing_slash
        and isinstance(root, str)
        and root.endswith(os.sep)
        and os.path.islink(root.rstrip(os.sep))
    )
    root_path = Path(root)
    if not root_path.is_symlink() and not root_path.exists():
        raise FileNotFoundError(f"No such file or directory: {root_path}")
    stack = _root_frames(root_path)
    if unchecked:
        yield root_path
        yield from _walk_children(root_path, stack + (_Frame(root_path, _canonical(root_path)),))
        return
    yield from _walk(root_path, stack)


def _walk(path: Path, stack: tuple[_Frame, ...]) -> Iterator[Path]:
    if path.is_symlink():
        if not path.exists():
            raise BrokenLinkError(f"Broken symbolic link: {path} -> {os.readlink(path)}")
        if not path.is_dir():
            yield path
            return
        canonical = _canonical(path)
        for frame in stack:
            if frame.canonical == canonical:
                raise CycleError(path, frame.path)
        yield path
        yield from _walk_children(path, stack + (_Frame(path, canonical),))
        return

    yield path
    if path.is_dir():
        yield from _walk_children(path, stack + (_Frame(path, _canonical(path)),))


def _walk_children(directory: Path, stack: tuple[_Frame, ...]) -> Iterator[Path]:
    for name in sorted(os.listdir(directory)):
        yield from _walk(directory / name, stack)

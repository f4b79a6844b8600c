"""Podspec-style file patterns: `glob` wildcards plus `{a,b}` alternatives."""

import glob
from pathlib import Path


def expand_braces(pattern: str) -> list[str]:
    """Expands the first top-level `{...}` group, recursively."""
    depth = 0
    start = None
    for index, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0 and start is not None:
                options = _split_top_level(pattern[start + 1 : index])
                prefix, suffix = pattern[:start], pattern[index + 1 :]
                expanded = []
                for option in options:
                    expanded.extend(expand_braces(prefix + option + suffix))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> list[str]:
    parts, depth, current = [], 0, ""
    for char in body:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    parts.append(current)
    return parts


def expand_glob(root: Path, pattern: str) -> list[Path]:
    """
    Matches `pattern` against `root`, returning files and directories.

    Matches are returned under `root` without resolving them, so a pattern
    reaching outside the root keeps its `..` components.
    """
    matches: list[Path] = []
    for candidate in expand_braces(pattern):
        for match in sorted(glob.glob(candidate, root_dir=root, recursive=True)):
            matches.append(root / match)
    return list(dict.fromkeys(matches))

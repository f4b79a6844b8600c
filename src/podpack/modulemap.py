"""
Synthesis of a framework module map from a pod's public headers.

Headers are arranged into a tree following their directory layout; every
directory becomes a submodule and every header its own explicit submodule, so
that consumers can import `Lib.Sub.Header` without an umbrella header.
"""

from collections.abc import Iterable
import os
from pathlib import Path

from attrs import define, field

from .models import c99_identifier


@define(frozen=True, slots=True)
class Leaf:
    header: str


@define(frozen=True, slots=True)
class Branch:
    children: dict[str, "Leaf | Branch"] = field(factory=dict)


ModuleNode = Leaf | Branch


def _normalize_header(header: str) -> str:
    header = header.replace(os.sep, "/")
    if header.startswith("./"):
        return header[2:]
    return header.lstrip("/")


def build_module_tree(headers: Iterable[str]) -> Branch:
    """Inserts headers into a tree keyed by directory, preserving order."""
    root = Branch()
    for header in headers:
        header = _normalize_header(header)
        if not header:
            continue
        *directories, file_name = header.split("/")
        node = root
        for directory in directories:
            child = node.children.get(directory)
            if not isinstance(child, Branch):
                child = node.children[directory] = Branch()
            node = child
        node.children[file_name] = Leaf(header)
    return root


def _render(node: Branch, indent: int) -> list[str]:
    pad = " " * indent
    lines = []
    for key, child in node.children.items():
        if isinstance(child, Leaf):
            name = c99_identifier(key.split(".", 1)[0])
            lines.append(f"{pad}module {name} {{")
            lines.append(f'{pad}  header "{child.header}"')
            lines.append(f"{pad}  export *")
        else:
            lines.append(f"{pad}module {c99_identifier(key)} {{")
            lines.extend(_render(child, indent + 2))
        lines.append(f"{pad}}}")
    return lines


def render_module_map(framework_name: str, tree: Branch) -> str:
    body = "\n".join(_render(tree, 2))
    return f"framework module {framework_name} {{\n{body}\n}}\n"


def module_map_for_headers(
    framework_name: str,
    headers: Iterable[Path | str],
    header_mappings_dir: Path | str | None = None,
) -> str:
    """
    Produces module map text for `headers`.

    Without a header mappings dir every header sits at the top level under its
    file name; with one, headers keep their path relative to that directory.
    """
    relative = []
    for path in headers:
        path = Path(path)
        if header_mappings_dir is not None:
            relative.append(os.path.relpath(path, header_mappings_dir))
        else:
            relative.append(path.name)
    return render_module_map(framework_name, build_module_tree(relative))


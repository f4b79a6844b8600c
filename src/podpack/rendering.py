"""Jinja2 environment for the Ruby files podpack writes (Podfile, podspec)."""

from pathlib import Path
from typing import Any

import jinja2

_TEMPLATE_DIR = Path(__file__).parent / "templates"


def ruby_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def ruby_literal(value: Any, symbol_keys: bool = False) -> str:
    """Renders a JSON-compatible value as a Ruby literal."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return ruby_string(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(ruby_literal(item) for item in value) + "]"
    if isinstance(value, dict):
        if not value:
            return "{}"
        pairs = []
        for key, item in value.items():
            rendered_key = f":{key}" if symbol_keys else ruby_string(str(key))
            pairs.append(f"{rendered_key} => {ruby_literal(item)}")
        return "{ " + ", ".join(pairs) + " }"
    raise TypeError(f"Cannot render {type(value).__name__} as a Ruby literal.")


def get_template_env() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["ruby"] = ruby_literal
    return env

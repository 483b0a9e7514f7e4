"""JSON rendering for command results."""

import json
from typing import Any

import click


def to_jsonable(value: Any) -> Any:
    """Recursively convert records (anything with to_dict()) and lists to plain data."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def render_json(value: Any, indent: int = 2, ensure_ascii: bool = False) -> str:
    """Render ``value`` as indented JSON. An empty list renders as ``[]``."""
    return json.dumps(to_jsonable(value), indent=indent, ensure_ascii=ensure_ascii)


def emit_json(value: Any, indent: int = 2, ensure_ascii: bool = False) -> None:
    """Write ``value`` to stdout as JSON followed by a newline."""
    click.echo(render_json(value, indent=indent, ensure_ascii=ensure_ascii))

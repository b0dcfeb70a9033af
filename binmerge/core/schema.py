"""
Schema source: loading, validating and registering layouts.

Layouts reach the merge engine already validated. A schema is a JSON
document of the form:

    {
        "name": "example",
        "magic": "0xDEADBEEF",
        "fields": [
            {"name": "x", "type": "integer"},
            {"name": "pos", "type": "structure", "layout": {"fields": [...]}},
            {"name": "name", "type": "cstring", "size": 20}
        ]
    }

Fixed-width sizes are inferred from the type; structure sizes from the
nested layout.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from binmerge.core.errors import SchemaError
from binmerge.core.models import Field, FieldType, Layout


DEFAULT_MAX_NESTING_DEPTH = 8


def _parse_magic(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            raise SchemaError(f"Invalid magic {value!r}") from None
    raise SchemaError(f"Invalid magic {value!r}")


def field_from_dict(data: dict) -> Field:
    """Build a field from its schema entry."""
    try:
        name = data['name']
        field_type = FieldType.from_string(data['type'])
    except KeyError as e:
        raise SchemaError(f"Field entry missing {e.args[0]!r}: {data!r}") from None

    if field_type == FieldType.STRUCTURE:
        if 'layout' not in data:
            raise SchemaError(f"Structure field {name!r} has no nested layout")
        nested = layout_from_dict(data['layout'])
        declared = data.get('size')
        if declared is not None and declared != nested.structure_size:
            raise SchemaError(
                f"Structure field {name!r} declares {declared} bytes but its "
                f"layout is {nested.structure_size} bytes"
            )
        return Field.structure(name, nested)

    return Field.of(name, field_type, data.get('size'))


def layout_from_dict(data: dict) -> Layout:
    """Build a layout from a schema document (nested layouts default to magic 0)."""
    if not isinstance(data, dict):
        raise SchemaError(f"Layout must be an object, got {type(data).__name__}")
    magic = _parse_magic(data.get('magic', 0))
    fields = tuple(field_from_dict(entry) for entry in data.get('fields', []))
    return Layout(magic, fields)


def layout_to_dict(layout: Layout) -> dict:
    """Inverse of layout_from_dict."""
    entries = []
    for f in layout.fields:
        entry: dict[str, Any] = {'name': f.name, 'type': f.type.name.lower(), 'size': f.size}
        if f.layout is not None:
            entry['layout'] = layout_to_dict(f.layout)
        entries.append(entry)
    return {'magic': f"0x{layout.magic:08X}", 'fields': entries}


def nesting_depth(layout: Layout) -> int:
    """Number of layout levels, 1 for a layout without structure fields."""
    inner = [nesting_depth(f.layout) for f in layout.fields if f.layout is not None]
    return 1 + max(inner, default=0)


def validate_layout(layout: Layout, max_depth: int = DEFAULT_MAX_NESTING_DEPTH) -> Layout:
    """
    Check constraints not enforced by the model itself.

    Field-level invariants are checked when fields are built; this bounds
    the nesting depth so merges recurse a known number of levels.
    """
    depth = nesting_depth(layout)
    if depth > max_depth:
        raise SchemaError(f"Layout nests {depth} levels, maximum is {max_depth}")
    return layout


class SchemaRegistry:
    """
    Named collection of validated layouts.

    Created explicitly and passed to whoever needs it.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_NESTING_DEPTH):
        self.max_depth = max_depth
        self._layouts: dict[str, Layout] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._layouts

    def __len__(self) -> int:
        return len(self._layouts)

    @property
    def names(self) -> list[str]:
        return sorted(self._layouts)

    def register(self, name: str, layout: Layout) -> Layout:
        """Validate and store a layout under a name."""
        if name in self._layouts:
            raise SchemaError(f"Schema {name!r} is already registered")
        validate_layout(layout, self.max_depth)
        self._layouts[name] = layout
        logging.debug(f"SchemaRegistry - Registered {name!r} (magic 0x{layout.magic:08X})")
        return layout

    def get(self, name: str) -> Layout:
        try:
            return self._layouts[name]
        except KeyError:
            raise SchemaError(f"Unknown schema {name!r}") from None

    def by_magic(self, magic: int) -> Optional[Layout]:
        """First registered layout with this format identifier."""
        for layout in self._layouts.values():
            if layout.magic == magic:
                return layout
        return None

    def load_dict(self, data: dict, name: Optional[str] = None) -> Layout:
        name = name or data.get('name')
        if not name:
            raise SchemaError("Schema has no name")
        return self.register(name, layout_from_dict(data))

    def load_file(self, path: Path | str) -> Layout:
        """Load one JSON schema file; its name defaults to the file stem."""
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Invalid JSON in schema {path}: {e}") from e
        except OSError as e:
            logging.error(f"SchemaRegistry - Failed to read schema {path}: {e}")
            raise
        return self.load_dict(data, data.get('name') or path.stem)

    def load_paths(self, paths: Iterable[Path | str]) -> list[Layout]:
        return [self.load_file(p) for p in paths]

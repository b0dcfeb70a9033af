import os
import struct
from types import SimpleNamespace

import pytest

# Qt workers are exercised without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from binmerge.core.models import Field, FieldType, Layout, Record
from binmerge.core.schema import SchemaRegistry


EXAMPLE_MAGIC = 0xDEADBEEF


def cstr(text: str, size: int = 20) -> bytes:
    """NUL-padded c-string buffer."""
    return text.encode("ascii").ljust(size, b"\0")


def u32(value: int) -> bytes:
    return struct.pack("<I", value)


def u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def vec3(x: float, y: float, z: float) -> bytes:
    return struct.pack("<fff", x, y, z)


def build_vec3_layout() -> Layout:
    return Layout(0, (
        Field.of("x", FieldType.FLOAT),
        Field.of("y", FieldType.FLOAT),
        Field.of("z", FieldType.FLOAT),
    ))


def build_example_layout() -> Layout:
    """The illustrative fixed-layout record: x, pos, name[20], counter."""
    return Layout(EXAMPLE_MAGIC, (
        Field.of("x", FieldType.INTEGER),
        Field.structure("pos", build_vec3_layout()),
        Field.of("name", FieldType.CSTRING, 20),
        Field.of("counter", FieldType.LONG),
    ))


@pytest.fixture
def example_registry() -> SchemaRegistry:
    """Registry passed explicitly to the code under test."""
    registry = SchemaRegistry()
    registry.register("example", build_example_layout())
    registry.register("vec3", build_vec3_layout())
    return registry


@pytest.fixture
def example_layout(example_registry) -> Layout:
    return example_registry.get("example")


@pytest.fixture
def make_example(example_layout):
    """Factory for example records; defaults are the base revision."""
    def factory(x=10, pos=(1.0, 2.0, 3.0), name="test", counter=123) -> Record:
        return Record(example_layout, (u32(x), vec3(*pos), cstr(name), u64(counter)))
    return factory


@pytest.fixture
def make_record():
    """Build a record from a layout and a name -> bytes mapping."""
    def factory(layout: Layout, **values: bytes) -> Record:
        return Record(layout, tuple(values[f.name] for f in layout.fields))
    return factory


@pytest.fixture
def codec():
    """Little-endian encoders used to build field buffers."""
    return SimpleNamespace(cstr=cstr, u32=u32, u64=u64, vec3=vec3)

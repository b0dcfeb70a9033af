"""
Core data models for the binary record merge engine.

This module defines all data structures used across the application:
- Field and layout (schema) models
- Record models (per-field byte buffers bound to a layout)
- Structural diff models
- Merge conflict and merge outcome models

All models are designed to be:
- Schema-agnostic (field bytes are opaque to the engine)
- Immutable where they describe inputs (layouts, records, deltas)
- Type-hinted for IDE support
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, NamedTuple, Optional

from binmerge.core.errors import SchemaError, SizeMismatch


# A 40-byte name buffer including its NUL terminator
MAX_FIELD_NAME_LENGTH = 39

MAGIC_MAX = 0xFFFFFFFF


# =============================================================================
# Enumerations
# =============================================================================

class FieldType(Enum):
    """Primitive kind of a field. Used as an opaque tag for equality."""
    BYTE = auto()
    SHORT = auto()
    INTEGER = auto()
    FLOAT = auto()
    DOUBLE = auto()
    LONG = auto()
    CSTRING = auto()
    SIZED_BUFFER = auto()
    STRUCTURE = auto()      # Nested layout; data holds a serialized sub-record

    @property
    def fixed_size(self) -> Optional[int]:
        """Width in bytes for fixed-width types, None for variable ones."""
        return _FIXED_SIZES.get(self)

    @property
    def is_variable(self) -> bool:
        return self.fixed_size is None

    @classmethod
    def from_string(cls, value: str) -> 'FieldType':
        """Create from a schema string (enum name or common alias)."""
        key = value.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise SchemaError(f"Unknown field type: {value!r}") from None


_FIXED_SIZES = {
    FieldType.BYTE: 1,
    FieldType.SHORT: 2,
    FieldType.INTEGER: 4,
    FieldType.FLOAT: 4,
    FieldType.DOUBLE: 8,
    FieldType.LONG: 8,
}

_ALIASES = {
    'byte': FieldType.BYTE,
    'char': FieldType.BYTE,
    'short': FieldType.SHORT,
    'int': FieldType.INTEGER,
    'integer': FieldType.INTEGER,
    'float': FieldType.FLOAT,
    'double': FieldType.DOUBLE,
    'long': FieldType.LONG,
    'cstring': FieldType.CSTRING,
    'string': FieldType.CSTRING,
    'sized_buffer': FieldType.SIZED_BUFFER,
    'buffer': FieldType.SIZED_BUFFER,
    'struct': FieldType.STRUCTURE,
    'structure': FieldType.STRUCTURE,
}


class ConflictKind(Enum):
    """Category of a merge conflict."""
    CONTENT = auto()             # Both sides changed a field's bytes differently
    DIVERGENT_ADDITION = auto()  # Both sides added a name with different type/size
    DIVERGENT_REORDER = auto()   # Both sides moved a field to different places
    REMOVE_VS_MODIFY = auto()    # One side removed what the other still changes

    @property
    def is_structural(self) -> bool:
        return self != ConflictKind.CONTENT


class ConflictResolution(Enum):
    """How a content conflict was resolved."""
    UNRESOLVED = auto()
    USE_BASE = auto()
    USE_LOCAL = auto()
    USE_REMOTE = auto()
    CUSTOM = auto()


class MergeStatus(Enum):
    """Tag of a merge outcome."""
    SUCCESS = auto()
    CONFLICTS_FOUND = auto()
    FATAL = auto()


class FatalReason(Enum):
    """Why a merge could not produce any result."""
    MAGIC_MISMATCH = auto()
    SIZE_MISMATCH = auto()
    INVALID_SCHEMA = auto()


# =============================================================================
# Layout Models
# =============================================================================

FieldIdentity = tuple[str, FieldType, Optional[int]]


@dataclass(frozen=True)
class Field:
    """
    A named, typed, sized field of a layout.

    STRUCTURE fields carry their nested layout; their size is the
    serialized size of that layout's record.
    """
    name: str
    type: FieldType
    size: int
    layout: Optional[Layout] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaError("Field name must not be empty")
        if len(self.name) > MAX_FIELD_NAME_LENGTH:
            raise SchemaError(
                f"Field name {self.name!r} exceeds {MAX_FIELD_NAME_LENGTH} characters"
            )
        if self.size < 0:
            raise SchemaError(f"Field {self.name!r} has negative size {self.size}")

        fixed = self.type.fixed_size
        if fixed is not None and self.size != fixed:
            raise SchemaError(
                f"Field {self.name!r} of type {self.type.name} must be {fixed} bytes, "
                f"declared {self.size}"
            )

        if self.type == FieldType.STRUCTURE:
            if self.layout is None:
                raise SchemaError(f"Structure field {self.name!r} has no nested layout")
            if self.layout.structure_size != self.size:
                raise SchemaError(
                    f"Structure field {self.name!r} declares {self.size} bytes but its "
                    f"layout is {self.layout.structure_size} bytes"
                )
        elif self.layout is not None:
            raise SchemaError(f"Field {self.name!r} of type {self.type.name} cannot nest a layout")

    @classmethod
    def of(cls, name: str, field_type: FieldType, size: Optional[int] = None) -> 'Field':
        """Build a primitive field, inferring the size of fixed-width types."""
        if size is None:
            size = field_type.fixed_size
            if size is None:
                raise SchemaError(f"Field {name!r} of type {field_type.name} needs a size")
        return cls(name, field_type, size)

    @classmethod
    def structure(cls, name: str, layout: Layout) -> 'Field':
        """Build a nested-structure field around a layout."""
        return cls(name, FieldType.STRUCTURE, layout.structure_size, layout)

    @property
    def identity(self) -> FieldIdentity:
        """
        Key used to match a field across revisions.

        The size only takes part where the type fixes it: resizing a
        string, buffer or nested structure is a content change.
        """
        return (self.name, self.type, None if self.type.is_variable else self.size)

    @property
    def is_structure(self) -> bool:
        return self.type == FieldType.STRUCTURE


@dataclass(frozen=True)
class Layout:
    """
    Ordered field declarations plus a 32-bit format identifier.

    Order is meaningful: it defines byte offsets and positional identity.
    """
    magic: int
    fields: tuple[Field, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.fields, tuple):
            object.__setattr__(self, 'fields', tuple(self.fields))
        if not 0 <= self.magic <= MAGIC_MAX:
            raise SchemaError(f"Magic 0x{self.magic:X} does not fit in 32 bits")

        seen: set[str] = set()
        for f in self.fields:
            if f.name in seen:
                raise SchemaError(f"Duplicate field name {f.name!r} in layout")
            seen.add(f.name)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    @property
    def structure_size(self) -> int:
        """Serialized size in bytes of a record of this layout."""
        return sum(f.size for f in self.fields)

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def offsets(self) -> list[int]:
        """Byte offset of every field."""
        result = []
        offset = 0
        for f in self.fields:
            result.append(offset)
            offset += f.size
        return result

    def index_of(self, name: str) -> int:
        """Index of the field with this name, or -1."""
        for i, f in enumerate(self.fields):
            if f.name == name:
                return i
        return -1

    def field_named(self, name: str) -> Optional[Field]:
        idx = self.index_of(name)
        return self.fields[idx] if idx >= 0 else None

    def find(self, identity: FieldIdentity) -> int:
        """Index of the field with this identity, or -1."""
        for i, f in enumerate(self.fields):
            if f.identity == identity:
                return i
        return -1


def get_structure_size(layout: Layout) -> int:
    """Serialized size in bytes of a record of the given layout."""
    return layout.structure_size


# =============================================================================
# Record Models
# =============================================================================

class FieldValue(NamedTuple):
    """A field declaration together with its bytes in one record."""
    field: Field
    data: bytes


@dataclass(frozen=True)
class Record:
    """
    Per-field byte buffers bound to exactly one layout.

    Buffers of STRUCTURE fields hold a serialized nested record.
    """
    layout: Layout
    values: tuple[bytes, ...]

    def __post_init__(self) -> None:
        values = tuple(bytes(v) for v in self.values)
        object.__setattr__(self, 'values', values)

        if len(values) != len(self.layout.fields):
            raise SizeMismatch(
                f"Record has {len(values)} buffers but layout has "
                f"{len(self.layout.fields)} fields",
                expected=len(self.layout.fields),
                actual=len(values)
            )
        for f, data in zip(self.layout.fields, values):
            if len(data) != f.size:
                raise SizeMismatch(
                    f"Field {f.name!r} expects {f.size} bytes, got {len(data)}",
                    expected=f.size,
                    actual=len(data)
                )

    @classmethod
    def from_bytes(cls, layout: Layout, blob: bytes) -> 'Record':
        """Slice a flat blob into per-field buffers."""
        expected = layout.structure_size
        if len(blob) != expected:
            raise SizeMismatch(
                f"Blob is {len(blob)} bytes, layout needs {expected}",
                expected=expected,
                actual=len(blob)
            )
        values = []
        offset = 0
        for f in layout.fields:
            values.append(bytes(blob[offset:offset + f.size]))
            offset += f.size
        return cls(layout, tuple(values))

    def to_bytes(self) -> bytes:
        """Flatten field buffers in layout order."""
        return b''.join(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def value(self, index: int) -> FieldValue:
        return FieldValue(self.layout.fields[index], self.values[index])

    def get(self, name: str) -> bytes:
        """Bytes of the named field."""
        idx = self.layout.index_of(name)
        if idx < 0:
            raise KeyError(name)
        return self.values[idx]

    def nested(self, index: int) -> 'Record':
        """Sub-record held by a STRUCTURE field."""
        f = self.layout.fields[index]
        if not f.is_structure:
            raise TypeError(f"Field {f.name!r} is not a structure")
        return Record.from_bytes(f.layout, self.values[index])

    def replace(self, path: tuple[str, ...], new_field: Field, data: bytes) -> 'Record':
        """
        Return a record with the field at `path` replaced.

        Enclosing STRUCTURE fields are rebuilt so their declared sizes
        follow the new nested content.
        """
        if not path:
            raise ValueError("Empty field path")

        idx = self.layout.index_of(path[0])
        if idx < 0:
            raise KeyError(path[0])

        if len(path) == 1:
            replacement = new_field
            replacement_data = data
        else:
            inner = self.nested(idx).replace(path[1:], new_field, data)
            replacement = Field.structure(path[0], inner.layout)
            replacement_data = inner.to_bytes()

        fields = list(self.layout.fields)
        values = list(self.values)
        fields[idx] = replacement
        values[idx] = replacement_data
        return Record(Layout(self.layout.magic, tuple(fields)), tuple(values))


# =============================================================================
# Structural Diff Models
# =============================================================================

@dataclass(frozen=True)
class RevisionDelta:
    """
    Structural changes of one revision's layout against the base layout.

    `reordered` holds (base_index, revision_index) pairs for the fields
    judged moved: the common fields outside the longest runs that keep
    base order. Fields whose index only shifted because others moved,
    or because fields were added or removed, are not listed. `anchors` maps
    each moved field's identity to the identity of the nearest preceding
    field, in the revision, that also exists in base (None at the front).
    """
    revision: Layout
    added: tuple[Field, ...] = ()
    removed: tuple[Field, ...] = ()
    reordered: tuple[tuple[int, int], ...] = ()
    modified: frozenset = frozenset()
    anchors: dict = field(default_factory=dict, hash=False, compare=False)

    @property
    def added_names(self) -> set[str]:
        return {f.name for f in self.added}

    @property
    def removed_identities(self) -> set[FieldIdentity]:
        return {f.identity for f in self.removed}

    @property
    def moved_identities(self) -> set[FieldIdentity]:
        return set(self.anchors)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.reordered or self.modified)


# =============================================================================
# Merge Models
# =============================================================================

@dataclass
class MergeConflict:
    """
    A field or structural change in contention.

    Carries what base, local and remote had for the field so a caller
    can resolve it manually.
    """
    conflict_id: int
    kind: ConflictKind
    path: tuple[str, ...]
    base_field: Optional[Field] = None
    local_field: Optional[Field] = None
    remote_field: Optional[Field] = None
    base_value: Optional[bytes] = None
    local_value: Optional[bytes] = None
    remote_value: Optional[bytes] = None
    base_index: Optional[int] = None
    local_index: Optional[int] = None
    remote_index: Optional[int] = None
    message: str = ""
    resolution: Optional[ConflictResolution] = None
    resolved_value: Optional[bytes] = None

    @property
    def field_name(self) -> str:
        return '.'.join(self.path)

    @property
    def is_structural(self) -> bool:
        return self.kind.is_structural

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None and self.resolution != ConflictResolution.UNRESOLVED

    def describe(self) -> str:
        """One-line textual report of the conflict."""
        def fmt(value: Optional[bytes]) -> str:
            return '-' if value is None else value.hex()

        def pos(index: Optional[int]) -> str:
            return '-' if index is None else str(index)

        text = f"[{self.conflict_id}] {self.kind.name} {self.field_name}"
        if self.kind == ConflictKind.CONTENT:
            text += (f" base={fmt(self.base_value)} local={fmt(self.local_value)}"
                     f" remote={fmt(self.remote_value)}")
        else:
            text += (f" positions base={pos(self.base_index)} local={pos(self.local_index)}"
                     f" remote={pos(self.remote_index)}")
        if self.message:
            text += f": {self.message}"
        return text


@dataclass
class MergeOutcome:
    """
    Result of a merge.

    SUCCESS carries the merged layout and record. CONFLICTS_FOUND carries
    the best-effort layout and record plus every conflict. FATAL carries
    only the reason.
    """
    status: MergeStatus
    layout: Optional[Layout] = None
    record: Optional[Record] = None
    conflicts: list[MergeConflict] = field(default_factory=list)
    fatal_reason: Optional[FatalReason] = None
    message: str = ""

    @classmethod
    def success(cls, layout: Layout, record: Record) -> 'MergeOutcome':
        return cls(MergeStatus.SUCCESS, layout, record)

    @classmethod
    def conflicts_found(
        cls,
        layout: Layout,
        record: Record,
        conflicts: list[MergeConflict]
    ) -> 'MergeOutcome':
        return cls(MergeStatus.CONFLICTS_FOUND, layout, record, list(conflicts))

    @classmethod
    def fatal(cls, reason: FatalReason, message: str = "") -> 'MergeOutcome':
        return cls(MergeStatus.FATAL, fatal_reason=reason, message=message)

    @property
    def is_success(self) -> bool:
        return self.status == MergeStatus.SUCCESS

    @property
    def is_fatal(self) -> bool:
        return self.status == MergeStatus.FATAL

    @property
    def has_conflicts(self) -> bool:
        return self.status == MergeStatus.CONFLICTS_FOUND

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def unresolved_count(self) -> int:
        return sum(1 for c in self.conflicts if not c.is_resolved)

    def get_conflict(self, conflict_id: int) -> Optional[MergeConflict]:
        for conflict in self.conflicts:
            if conflict.conflict_id == conflict_id:
                return conflict
        return None

    def to_bytes(self) -> bytes:
        """Serialized merged record."""
        if self.record is None:
            raise ValueError("Merge outcome has no record")
        return self.record.to_bytes()

    def summary(self) -> str:
        """Multi-line textual report."""
        if self.is_fatal:
            return f"FATAL {self.fatal_reason.name}: {self.message}"
        lines = [
            f"{self.status.name}: {len(self.layout.fields)} fields, "
            f"{self.layout.structure_size} bytes, {self.conflict_count} conflicts"
        ]
        lines.extend(c.describe() for c in self.conflicts)
        return '\n'.join(lines)

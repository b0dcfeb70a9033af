"""
Unit Tests for Field Equality and the diff3 Rule
"""

from binmerge.core.content import fields_equal, merge_field_content
from binmerge.core.models import Field, FieldType, FieldValue


INT = Field.of("v", FieldType.INTEGER)


def value(data: bytes, field: Field = INT) -> FieldValue:
    return FieldValue(field, data)


class TestFieldsEqual:

    def test_same_declaration_and_bytes(self):
        assert fields_equal(value(b"\1\0\0\0"), value(b"\1\0\0\0"))

    def test_bytes_differ(self):
        assert not fields_equal(value(b"\1\0\0\0"), value(b"\2\0\0\0"))

    def test_size_difference_is_content_difference(self):
        short = Field.of("s", FieldType.CSTRING, 2)
        long = Field.of("s", FieldType.CSTRING, 3)
        assert not fields_equal(value(b"a\0", short), value(b"a\0\0", long))

    def test_type_difference(self):
        as_float = Field.of("v", FieldType.FLOAT)
        assert not fields_equal(value(b"\0" * 4), value(b"\0" * 4, as_float))


class TestMergeFieldContent:
    """The four diff3 cases."""

    def test_unchanged(self):
        base = value(b"\1\0\0\0")
        merged, ok = merge_field_content(base, base, base)
        assert ok and merged == base

    def test_only_local_changed(self):
        base, local = value(b"\1\0\0\0"), value(b"\2\0\0\0")
        merged, ok = merge_field_content(base, local, base)
        assert ok and merged == local

    def test_only_remote_changed(self):
        base, remote = value(b"\1\0\0\0"), value(b"\3\0\0\0")
        merged, ok = merge_field_content(base, base, remote)
        assert ok and merged == remote

    def test_same_change_on_both_sides(self):
        base, changed = value(b"\1\0\0\0"), value(b"\4\0\0\0")
        merged, ok = merge_field_content(base, changed, changed)
        assert ok and merged == changed

    def test_pairwise_distinct_is_conflict(self):
        merged, ok = merge_field_content(value(b"\1\0\0\0"), value(b"\2\0\0\0"), value(b"\3\0\0\0"))
        assert not ok
        assert merged is None

    def test_resize_on_one_side_wins(self):
        base = value(b"ab\0", Field.of("s", FieldType.CSTRING, 3))
        local = value(b"abcd\0", Field.of("s", FieldType.CSTRING, 5))
        merged, ok = merge_field_content(base, local, base)
        assert ok
        assert merged.field.size == 5

"""
Unit Tests for the Structural Diff Engine

Tests additions, removals, reorders and modifications detected by
field identity.
"""

import pytest

from binmerge.core.diff import StructuralDiffEngine, diff_against_base
from binmerge.core.models import Field, FieldType, Layout


def F(name, type_=FieldType.INTEGER, size=None):
    return Field.of(name, type_, size)


def layout(*fields):
    return Layout(0xABCD, tuple(fields))


@pytest.fixture
def engine():
    return StructuralDiffEngine()


BASE = layout(F("a"), F("b"), F("c"), F("d"))


class TestStructuralDiff:
    """Tests for StructuralDiffEngine.diff."""

    def test_identical_layouts_are_empty(self, engine):
        delta = engine.diff(BASE, BASE)
        assert delta.is_empty
        assert delta.anchors == {}

    def test_addition(self, engine):
        revision = layout(F("a"), F("b"), F("new", FieldType.SHORT), F("c"), F("d"))
        delta = engine.diff(BASE, revision)
        assert [f.name for f in delta.added] == ["new"]
        assert delta.removed == ()
        # Inserting a field moves nothing
        assert delta.reordered == ()

    def test_removal(self, engine):
        revision = layout(F("a"), F("c"), F("d"))
        delta = engine.diff(BASE, revision)
        assert [f.name for f in delta.removed] == ["b"]
        assert delta.reordered == ()

    def test_type_change_is_remove_plus_add(self, engine):
        revision = layout(F("a"), F("b", FieldType.FLOAT), F("c"), F("d"))
        delta = engine.diff(BASE, revision)
        assert [f.name for f in delta.removed] == ["b"]
        assert [f.name for f in delta.added] == ["b"]

    def test_move_to_front(self, engine):
        revision = layout(F("d"), F("a"), F("b"), F("c"))
        delta = engine.diff(BASE, revision)
        assert delta.reordered == ((3, 0),)
        assert delta.anchors == {F("d").identity: None}

    def test_move_records_anchor(self, engine):
        revision = layout(F("b"), F("c"), F("a"), F("d"))
        delta = engine.diff(BASE, revision)
        assert delta.moved_identities == {F("a").identity}
        assert delta.anchors[F("a").identity] == F("c").identity

    def test_anchor_skips_added_fields(self, engine):
        revision = layout(F("b"), F("c"), F("new"), F("a"), F("d"))
        delta = engine.diff(BASE, revision)
        assert delta.anchors[F("a").identity] == F("c").identity

    def test_resize_is_modification(self, engine):
        base = layout(F("a"), F("s", FieldType.CSTRING, 8))
        revision = layout(F("a"), F("s", FieldType.CSTRING, 12))
        delta = engine.diff(base, revision)
        assert delta.added == () and delta.removed == ()
        assert delta.modified == frozenset({F("s", FieldType.CSTRING, 8).identity})

    def test_content_change_needs_records(self, make_example, example_layout):
        base = make_example()
        local = make_example(counter=124)

        without_records = diff_against_base(example_layout, example_layout)
        with_records = diff_against_base(example_layout, example_layout, base, local)

        assert without_records.modified == frozenset()
        assert with_records.modified == frozenset({example_layout.field_named("counter").identity})

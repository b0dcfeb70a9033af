"""
Field equality and the atomic (single field) three-way merge rule.
"""

from __future__ import annotations

from typing import Optional

from binmerge.core.models import FieldValue


def fields_equal(a: FieldValue, b: FieldValue) -> bool:
    """
    True if declaration and bytes both match.

    Name, type and size must agree (and, for structures, the nested
    layout); then every data byte must match. A size difference is a
    content difference.
    """
    return a.field == b.field and a.data == b.data


def merge_field_content(
    base: FieldValue,
    local: FieldValue,
    remote: FieldValue
) -> tuple[Optional[FieldValue], bool]:
    """
    diff3 resolution at field granularity.

    Returns (merged, True) when the rule resolves the field, or
    (None, False) when base, local and remote are pairwise distinct.
    """
    if fields_equal(local, remote):
        # No change, or the same change on both sides
        return local, True
    if fields_equal(base, local):
        return remote, True
    if fields_equal(base, remote):
        return local, True
    return None, False

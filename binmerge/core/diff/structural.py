"""
Structural diff of a revision's layout against the base layout.

Detects, by field identity rather than position:
1. Fields added in the revision
2. Fields removed from base
3. Fields moved relative to the other retained fields
4. Retained fields whose declaration or bytes changed
"""

from __future__ import annotations

import difflib
import logging
from typing import Optional

from binmerge.core.content import fields_equal
from binmerge.core.models import (
    FieldIdentity,
    Layout,
    Record,
    RevisionDelta,
)


class StructuralDiffEngine:
    """
    Computes a RevisionDelta for one (base, revision) pair.

    Reordering is judged on the fields common to both layouts only, so
    an insertion or removal never makes its neighbours look moved. The
    longest runs that keep base order are considered stable; every other
    common field was moved.
    """

    def diff(
        self,
        base: Layout,
        revision: Layout,
        base_record: Optional[Record] = None,
        revision_record: Optional[Record] = None
    ) -> RevisionDelta:
        """
        Diff a revision against base.

        Args:
            base: Common ancestor layout
            revision: Local or remote layout
            base_record: Base bytes, used to detect content changes
            revision_record: Revision bytes, used to detect content changes

        Returns:
            RevisionDelta describing the revision's structural changes
        """
        base_keys = [f.identity for f in base.fields]
        rev_keys = [f.identity for f in revision.fields]
        base_set = set(base_keys)
        rev_set = set(rev_keys)

        added = tuple(f for f in revision.fields if f.identity not in base_set)
        removed = tuple(f for f in base.fields if f.identity not in rev_set)

        common_base = [k for k in base_keys if k in rev_set]
        common_rev = [k for k in rev_keys if k in base_set]
        moved = self._find_moved(common_base, common_rev)

        reordered = tuple(
            (base_keys.index(key), rev_keys.index(key))
            for key in common_rev
            if key in moved
        )
        anchors = {
            key: self._anchor_of(key, rev_keys, base_set)
            for key in common_rev
            if key in moved
        }

        modified = frozenset(
            key for key in common_rev
            if self._is_modified(key, base, revision, base_record, revision_record)
        )

        delta = RevisionDelta(
            revision=revision,
            added=added,
            removed=removed,
            reordered=reordered,
            modified=modified,
            anchors=anchors,
        )
        logging.debug(
            f"StructuralDiffEngine - {len(added)} added, {len(removed)} removed, "
            f"{len(reordered)} reordered, {len(modified)} modified"
        )
        return delta

    def _find_moved(
        self,
        common_base: list[FieldIdentity],
        common_rev: list[FieldIdentity]
    ) -> set[FieldIdentity]:
        """Identities outside the longest order-preserving matches."""
        matcher = difflib.SequenceMatcher(None, common_base, common_rev, autojunk=False)

        stable: set[FieldIdentity] = set()
        for block in matcher.get_matching_blocks():
            stable.update(common_rev[block.b:block.b + block.size])

        return {key for key in common_rev if key not in stable}

    def _anchor_of(
        self,
        key: FieldIdentity,
        rev_keys: list[FieldIdentity],
        base_set: set[FieldIdentity]
    ) -> Optional[FieldIdentity]:
        """Nearest preceding field in the revision that base also has."""
        idx = rev_keys.index(key)
        for candidate in reversed(rev_keys[:idx]):
            if candidate in base_set:
                return candidate
        return None

    def _is_modified(
        self,
        key: FieldIdentity,
        base: Layout,
        revision: Layout,
        base_record: Optional[Record],
        revision_record: Optional[Record]
    ) -> bool:
        base_idx = base.find(key)
        rev_idx = revision.find(key)

        if base_record is None or revision_record is None:
            return base.fields[base_idx] != revision.fields[rev_idx]

        return not fields_equal(base_record.value(base_idx), revision_record.value(rev_idx))


def diff_against_base(
    base: Layout,
    revision: Layout,
    base_record: Optional[Record] = None,
    revision_record: Optional[Record] = None
) -> RevisionDelta:
    """Module-level shortcut for StructuralDiffEngine().diff()."""
    return StructuralDiffEngine().diff(base, revision, base_record, revision_record)

"""
Structural merge of two revision deltas against a base layout.

Implements the layout half of a three-way merge:
1. Honours removals unless the other side still changes the field
2. Honours moves, reports moves that cannot all hold at once
3. Adds single-sided additions, reports divergent additions
4. Composes the merged order from base order, then local, then remote
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from binmerge.core.models import (
    ConflictKind,
    Field,
    FieldIdentity,
    Layout,
    MergeConflict,
    RevisionDelta,
)


@dataclass
class StructureMergeResult:
    """Merged layout plus the structural conflicts found while building it."""
    layout: Layout
    conflicts: list[MergeConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0


class StructuralMerger:
    """
    Combines base with local and remote deltas into one layout.

    Conflicting changes are never decided: a removal that collides with
    a modification keeps the field, a field moved to two different places
    keeps its base position, and a divergent addition is left out. Moves
    of different fields that contradict each other are reported on the
    composed order as is. The result is still returned so callers can
    show it.
    """

    def merge(
        self,
        base: Layout,
        local_delta: RevisionDelta,
        remote_delta: RevisionDelta,
        path: tuple[str, ...] = ()
    ) -> StructureMergeResult:
        """
        Perform the structural merge.

        Args:
            base: Common ancestor layout
            local_delta: Local revision against base
            remote_delta: Remote revision against base
            path: Names of the enclosing structure fields, for reporting

        Returns:
            StructureMergeResult with the merged layout (magic copied from
            base) and any structural conflicts
        """
        conflicts: list[MergeConflict] = []

        removed = self._merge_removals(base, local_delta, remote_delta, path, conflicts)
        moved_local, moved_remote = self._merge_reorders(
            base, local_delta, remote_delta, removed, path, conflicts
        )

        retained_names = {f.name for f in base.fields if f.identity not in removed}
        added_local, added_remote = self._merge_additions(
            local_delta, remote_delta, retained_names, path, conflicts
        )

        order = self._compose_order(
            base,
            local_delta.revision,
            remote_delta.revision,
            removed,
            moved_local | added_local,
            moved_remote | added_remote,
        )

        already_reported = {c.base_field.identity for c in conflicts if c.base_field is not None}
        conflicts.extend(self._check_relative_order(
            base,
            local_delta.revision,
            remote_delta.revision,
            order,
            already_reported,
            local_delta.moved_identities,
            remote_delta.moved_identities,
            path,
        ))

        fields = tuple(
            self._pick_definition(key, base, local_delta.revision, remote_delta.revision)
            for key in order
        )

        if conflicts:
            logging.info(
                f"StructuralMerger - {len(conflicts)} structural conflicts"
                f"{' in ' + '.'.join(path) if path else ''}"
            )

        return StructureMergeResult(Layout(base.magic, fields), conflicts)

    def _merge_removals(
        self,
        base: Layout,
        local_delta: RevisionDelta,
        remote_delta: RevisionDelta,
        path: tuple[str, ...],
        conflicts: list[MergeConflict]
    ) -> set[FieldIdentity]:
        """Identities to drop from the merged layout."""
        removed: set[FieldIdentity] = set()
        local_removed = local_delta.removed_identities
        remote_removed = remote_delta.removed_identities

        for base_index, base_field in enumerate(base.fields):
            key = base_field.identity
            in_local = key in local_removed
            in_remote = key in remote_removed

            if in_local and in_remote:
                removed.add(key)
                continue
            if not in_local and not in_remote:
                continue

            other = remote_delta if in_local else local_delta
            moved = key in other.moved_identities
            modified = key in other.modified

            if not moved and not modified:
                removed.add(key)
                continue

            remover, keeper = ('local', 'remote') if in_local else ('remote', 'local')
            change = 'moved and modified' if moved and modified else ('moved' if moved else 'modified')
            conflicts.append(self._conflict(
                ConflictKind.REMOVE_VS_MODIFY,
                path + (base_field.name,),
                base,
                local_delta.revision,
                remote_delta.revision,
                key,
                f"removed in {remover}, {change} in {keeper}"
            ))

        return removed

    def _merge_reorders(
        self,
        base: Layout,
        local_delta: RevisionDelta,
        remote_delta: RevisionDelta,
        removed: set[FieldIdentity],
        path: tuple[str, ...],
        conflicts: list[MergeConflict]
    ) -> tuple[set[FieldIdentity], set[FieldIdentity]]:
        """Moves to apply from each side."""
        moved_local: set[FieldIdentity] = set()
        moved_remote: set[FieldIdentity] = set()
        local_anchors = local_delta.anchors
        remote_anchors = remote_delta.anchors

        for base_field in base.fields:
            key = base_field.identity
            if key in removed:
                continue

            in_local = key in local_anchors
            in_remote = key in remote_anchors

            if in_local and in_remote:
                if local_anchors[key] == remote_anchors[key]:
                    moved_local.add(key)
                else:
                    conflicts.append(self._conflict(
                        ConflictKind.DIVERGENT_REORDER,
                        path + (base_field.name,),
                        base,
                        local_delta.revision,
                        remote_delta.revision,
                        key,
                        f"moved after {self._anchor_name(local_anchors[key])} in local, "
                        f"after {self._anchor_name(remote_anchors[key])} in remote"
                    ))
            elif in_local:
                moved_local.add(key)
            elif in_remote:
                moved_remote.add(key)

        return moved_local, moved_remote

    def _merge_additions(
        self,
        local_delta: RevisionDelta,
        remote_delta: RevisionDelta,
        retained_names: set[str],
        path: tuple[str, ...],
        conflicts: list[MergeConflict]
    ) -> tuple[set[FieldIdentity], set[FieldIdentity]]:
        """Additions to insert from each side."""
        added_local: set[FieldIdentity] = set()
        added_remote: set[FieldIdentity] = set()
        remote_by_name = {f.name: f for f in remote_delta.added}
        local_names = local_delta.added_names

        for local_field in local_delta.added:
            name = local_field.name
            if name in retained_names:
                # Only reachable alongside a reported remove-vs-modify
                logging.debug(f"StructuralMerger - Skipping addition of {name!r}, name still in use")
                continue

            remote_field = remote_by_name.get(name)
            if remote_field is None:
                added_local.add(local_field.identity)
            elif remote_field.type == local_field.type and remote_field.size == local_field.size:
                # Same addition on both sides, inserted once from local
                added_local.add(local_field.identity)
            else:
                conflicts.append(MergeConflict(
                    conflict_id=-1,
                    kind=ConflictKind.DIVERGENT_ADDITION,
                    path=path + (name,),
                    local_field=local_field,
                    remote_field=remote_field,
                    local_index=local_delta.revision.index_of(name),
                    remote_index=remote_delta.revision.index_of(name),
                    message=(
                        f"added as {local_field.type.name}[{local_field.size}] in local, "
                        f"{remote_field.type.name}[{remote_field.size}] in remote"
                    )
                ))

        for remote_field in remote_delta.added:
            if remote_field.name in local_names:
                continue
            if remote_field.name in retained_names:
                logging.debug(
                    f"StructuralMerger - Skipping addition of {remote_field.name!r}, name still in use"
                )
                continue
            added_remote.add(remote_field.identity)

        return added_local, added_remote

    def _compose_order(
        self,
        base: Layout,
        local: Layout,
        remote: Layout,
        removed: set[FieldIdentity],
        local_inserts: set[FieldIdentity],
        remote_inserts: set[FieldIdentity]
    ) -> list[FieldIdentity]:
        """
        Merged field order.

        Untouched base fields keep their relative order. Each inserted
        field goes after every field that precedes it in its own
        revision and is already placed. Remote insertions sharing an
        anchor with local ones go after them.
        """
        order = [
            f.identity for f in base.fields
            if f.identity not in removed
            and f.identity not in local_inserts
            and f.identity not in remote_inserts
        ]

        local_keys = [f.identity for f in local.fields]
        inserted_local: set[FieldIdentity] = set()
        for key in local_keys:
            if key in local_inserts:
                order.insert(self._insert_position(order, local_keys, key), key)
                inserted_local.add(key)

        remote_keys = [f.identity for f in remote.fields]
        for key in remote_keys:
            if key in remote_inserts:
                pos = self._insert_position(order, remote_keys, key)
                while pos < len(order) and order[pos] in inserted_local:
                    pos += 1
                order.insert(pos, key)

        return order

    def _insert_position(
        self,
        order: list[FieldIdentity],
        source_keys: list[FieldIdentity],
        key: FieldIdentity
    ) -> int:
        """Just past every field that precedes `key` in its revision and is placed."""
        idx = source_keys.index(key)
        placed = [order.index(p) for p in source_keys[:idx] if p in order]
        return max(placed) + 1 if placed else 0

    def _check_relative_order(
        self,
        base: Layout,
        local: Layout,
        remote: Layout,
        order: list[FieldIdentity],
        skip: set[FieldIdentity],
        moved_local: set[FieldIdentity],
        moved_remote: set[FieldIdentity],
        path: tuple[str, ...]
    ) -> list[MergeConflict]:
        """
        Divergent reorders that only show in the composed order.

        For every pair of base fields still in the merged layout, a side
        that swapped the pair wins over a side that kept it; with no swap
        the base order holds. A pair the merged order gets wrong means
        the two sides' moves cannot both hold. One conflict is reported
        per field, on the field the overruled side moved where there is one.
        """
        position = {key: i for i, key in enumerate(order)}
        sides = (
            ('local', {f.identity: i for i, f in enumerate(local.fields)}, moved_local),
            ('remote', {f.identity: i for i, f in enumerate(remote.fields)}, moved_remote),
        )
        keys = [
            f.identity for f in base.fields
            if f.identity in position and f.identity not in skip
        ]

        conflicts: list[MergeConflict] = []
        reported: set[FieldIdentity] = set()
        for i, first in enumerate(keys):
            for second in keys[i + 1:]:
                swapped_by = [
                    (label, moved) for label, index, moved in sides
                    if first in index and second in index and index[second] < index[first]
                ]
                merged_swapped = position[second] < position[first]
                if merged_swapped == bool(swapped_by):
                    continue

                if swapped_by:
                    label, moved = swapped_by[0]
                    subject = first if first in moved and second not in moved else second
                    message = (
                        f"{second[0]!r} before {first[0]!r} in {label}, "
                        f"after it in the merged order"
                    )
                else:
                    subject = second
                    message = (
                        f"{first[0]!r} before {second[0]!r} in base and both revisions, "
                        f"after it in the merged order"
                    )

                if subject in reported:
                    continue
                reported.add(subject)
                conflicts.append(self._conflict(
                    ConflictKind.DIVERGENT_REORDER,
                    path + (subject[0],),
                    base,
                    local,
                    remote,
                    subject,
                    message
                ))

        return conflicts

    def _pick_definition(
        self,
        key: FieldIdentity,
        base: Layout,
        local: Layout,
        remote: Layout
    ) -> Field:
        """
        Declaration for a merged field, three-way on the declaration itself.

        When both sides changed it differently the base declaration is
        kept; the content merge settles the final one.
        """
        b = self._find(base, key)
        l = self._find(local, key)
        r = self._find(remote, key)

        if l is None or r is None:
            present = l if l is not None else r
            return present if present is not None else b
        if l == r or b is None:
            return l
        if b == l:
            return r
        if b == r:
            return l
        return b

    @staticmethod
    def _find(layout: Layout, key: FieldIdentity) -> Optional[Field]:
        idx = layout.find(key)
        return layout.fields[idx] if idx >= 0 else None

    @staticmethod
    def _anchor_name(anchor: Optional[FieldIdentity]) -> str:
        return 'start' if anchor is None else repr(anchor[0])

    def _conflict(
        self,
        kind: ConflictKind,
        path: tuple[str, ...],
        base: Layout,
        local: Layout,
        remote: Layout,
        key: FieldIdentity,
        message: str
    ) -> MergeConflict:
        """Structural conflict on a field base already had."""
        base_index = base.find(key)
        local_index = local.find(key)
        remote_index = remote.find(key)
        return MergeConflict(
            conflict_id=-1,
            kind=kind,
            path=path,
            base_field=base.fields[base_index],
            local_field=local.fields[local_index] if local_index >= 0 else None,
            remote_field=remote.fields[remote_index] if remote_index >= 0 else None,
            base_index=base_index,
            local_index=local_index if local_index >= 0 else None,
            remote_index=remote_index if remote_index >= 0 else None,
            message=message
        )

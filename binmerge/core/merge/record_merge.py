"""
Three-way merge engine for binary records.

Implements the full merge of a base record with two descendants:
1. Checks that all revisions share the same format identifier
2. Diffs local and remote layouts against base
3. Merges the structure into one layout
4. Merges every retained field's content, recursing into structures
5. Collects every structural and content conflict in one pass
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional, Union

from binmerge.core.content import fields_equal, merge_field_content
from binmerge.core.diff.structural import StructuralDiffEngine
from binmerge.core.errors import MagicMismatch, SchemaError, SizeMismatch
from binmerge.core.merge.structure import StructuralMerger
from binmerge.core.models import (
    ConflictKind,
    ConflictResolution,
    FatalReason,
    Field,
    FieldIdentity,
    FieldValue,
    Layout,
    MergeConflict,
    MergeOutcome,
    MergeStatus,
    Record,
)
from binmerge.core.schema import DEFAULT_MAX_NESTING_DEPTH, validate_layout


RecordInput = Union[Record, bytes, bytearray]


class RecordMergeEngine:
    """
    Three-way merge engine for layout-described binary records.

    Pure and stateless between calls: inputs are never mutated and one
    engine may serve independent merges from several threads.
    """

    def __init__(self, max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH):
        self.max_nesting_depth = max_nesting_depth
        self.differ = StructuralDiffEngine()
        self.structural_merger = StructuralMerger()

    def merge(
        self,
        base_layout: Layout,
        local_layout: Layout,
        remote_layout: Layout,
        base_record: RecordInput,
        local_record: RecordInput,
        remote_record: RecordInput
    ) -> MergeOutcome:
        """
        Perform three-way merge.

        Args:
            base_layout: Common ancestor layout
            local_layout: Layout of the caller's revision
            remote_layout: Layout of the revision being merged in
            base_record: Base record, or its flat bytes
            local_record: Local record, or its flat bytes
            remote_record: Remote record, or its flat bytes

        Returns:
            MergeOutcome: SUCCESS with the merged layout and record,
            CONFLICTS_FOUND with a best-effort result and every conflict,
            or FATAL when a precondition failed
        """
        try:
            if not base_layout.magic == local_layout.magic == remote_layout.magic:
                raise MagicMismatch(base_layout.magic, local_layout.magic, remote_layout.magic)

            for layout in (base_layout, local_layout, remote_layout):
                validate_layout(layout, self.max_nesting_depth)

            base = self._bind(base_layout, base_record, 'base')
            local = self._bind(local_layout, local_record, 'local')
            remote = self._bind(remote_layout, remote_record, 'remote')

            record, conflicts = self._merge_level(base, local, remote, ())
        except MagicMismatch as e:
            logging.error(f"RecordMergeEngine - {e}")
            return MergeOutcome.fatal(FatalReason.MAGIC_MISMATCH, str(e))
        except SizeMismatch as e:
            logging.error(f"RecordMergeEngine - Size mismatch: {e}")
            return MergeOutcome.fatal(FatalReason.SIZE_MISMATCH, str(e))
        except SchemaError as e:
            logging.error(f"RecordMergeEngine - Invalid schema: {e}")
            return MergeOutcome.fatal(FatalReason.INVALID_SCHEMA, str(e))

        for index, conflict in enumerate(conflicts):
            conflict.conflict_id = index

        if conflicts:
            logging.info(f"RecordMergeEngine - Merge finished with {len(conflicts)} conflicts")
            for conflict in conflicts:
                logging.info(f"RecordMergeEngine - {conflict.describe()}")
            return MergeOutcome.conflicts_found(record.layout, record, conflicts)

        logging.debug(f"RecordMergeEngine - Merged {len(record)} fields without conflicts")
        return MergeOutcome.success(record.layout, record)

    def merge_records(self, base: Record, local: Record, remote: Record) -> MergeOutcome:
        """Merge three records, each bound to its own layout."""
        return self.merge(base.layout, local.layout, remote.layout, base, local, remote)

    def _bind(self, layout: Layout, record: RecordInput, label: str) -> Record:
        if isinstance(record, Record):
            if record.layout != layout:
                raise SizeMismatch(f"The {label} record is bound to a different layout")
            return record
        try:
            return Record.from_bytes(layout, bytes(record))
        except SizeMismatch as e:
            raise SizeMismatch(f"{label}: {e}", e.expected, e.actual) from e

    def _merge_level(
        self,
        base: Record,
        local: Record,
        remote: Record,
        path: tuple[str, ...]
    ) -> tuple[Record, list[MergeConflict]]:
        """Merge one layout level; nested structures call back in here."""
        magics = (base.layout.magic, local.layout.magic, remote.layout.magic)
        if len(set(magics)) != 1:
            raise MagicMismatch(*magics, path=path)

        local_delta = self.differ.diff(base.layout, local.layout, base, local)
        remote_delta = self.differ.diff(base.layout, remote.layout, base, remote)
        structure = self.structural_merger.merge(base.layout, local_delta, remote_delta, path)

        conflicts = list(structure.conflicts)
        for conflict in conflicts:
            self._attach_values(conflict, base, local, remote)

        fields: list[Field] = []
        values: list[bytes] = []
        for merged_field in structure.layout.fields:
            key = merged_field.identity
            value = self._merge_field(
                self._lookup(base, key),
                self._lookup(local, key),
                self._lookup(remote, key),
                path + (merged_field.name,),
                conflicts
            )
            fields.append(value.field)
            values.append(value.data)

        layout = Layout(base.layout.magic, tuple(fields))
        return Record(layout, tuple(values)), conflicts

    def _merge_field(
        self,
        base: Optional[FieldValue],
        local: Optional[FieldValue],
        remote: Optional[FieldValue],
        path: tuple[str, ...],
        conflicts: list[MergeConflict]
    ) -> FieldValue:
        """Merged value of one field present in the merged layout."""
        if base is None:
            if local is not None and remote is not None:
                if fields_equal(local, remote):
                    return local
                conflicts.append(self._content_conflict(
                    path, None, local, remote, "added on both sides with different content"
                ))
                return local
            # Added on one side only: nothing to three-way merge
            return local if local is not None else remote

        if local is None or remote is None:
            # Kept against a removal; the remove-vs-modify conflict is already reported
            return local if local is not None else remote

        merged, ok = merge_field_content(base, local, remote)
        if ok:
            return merged

        if base.field.is_structure and local.field.is_structure and remote.field.is_structure:
            logging.debug(f"RecordMergeEngine - Recursing into {'.'.join(path)}")
            nested, nested_conflicts = self._merge_level(
                Record.from_bytes(base.field.layout, base.data),
                Record.from_bytes(local.field.layout, local.data),
                Record.from_bytes(remote.field.layout, remote.data),
                path
            )
            conflicts.extend(nested_conflicts)
            return FieldValue(Field.structure(base.field.name, nested.layout), nested.to_bytes())

        conflicts.append(self._content_conflict(path, base, local, remote, "changed on both sides"))
        return base

    @staticmethod
    def _lookup(record: Record, key: FieldIdentity) -> Optional[FieldValue]:
        idx = record.layout.find(key)
        return record.value(idx) if idx >= 0 else None

    @staticmethod
    def _content_conflict(
        path: tuple[str, ...],
        base: Optional[FieldValue],
        local: FieldValue,
        remote: FieldValue,
        message: str
    ) -> MergeConflict:
        return MergeConflict(
            conflict_id=-1,
            kind=ConflictKind.CONTENT,
            path=path,
            base_field=base.field if base is not None else None,
            local_field=local.field,
            remote_field=remote.field,
            base_value=base.data if base is not None else None,
            local_value=local.data,
            remote_value=remote.data,
            message=message
        )

    @staticmethod
    def _attach_values(conflict: MergeConflict, base: Record, local: Record, remote: Record) -> None:
        """Fill in the bytes each side holds for a structural conflict."""
        for declared, record, attr in (
            (conflict.base_field, base, 'base_value'),
            (conflict.local_field, local, 'local_value'),
            (conflict.remote_field, remote, 'remote_value'),
        ):
            if declared is None:
                continue
            idx = record.layout.find(declared.identity)
            if idx >= 0:
                setattr(conflict, attr, record.values[idx])

    # -------------------------------------------------------------------------
    # Manual resolution
    # -------------------------------------------------------------------------

    def apply_resolution(
        self,
        outcome: MergeOutcome,
        conflict_id: int,
        resolution: ConflictResolution,
        custom_value: Optional[bytes] = None
    ) -> MergeOutcome:
        """
        Apply a resolution to a content conflict.

        Args:
            outcome: Outcome holding the conflict
            conflict_id: ID of conflict to resolve
            resolution: Which side to keep, or CUSTOM
            custom_value: Bytes for a CUSTOM resolution

        Returns:
            New MergeOutcome with the conflict resolved; SUCCESS once no
            conflict remains unresolved
        """
        if outcome.is_fatal or outcome.record is None:
            raise ValueError("Cannot resolve conflicts of a fatal merge")

        conflict = outcome.get_conflict(conflict_id)
        if conflict is None:
            raise ValueError(f"Invalid conflict ID: {conflict_id}")
        if conflict.is_structural:
            raise ValueError(
                f"Conflict {conflict_id} is structural ({conflict.kind.name}) "
                f"and cannot be resolved by value"
            )

        current = self._field_at(outcome.record.layout, conflict.path)
        new_field, data = self._resolved_value(conflict, resolution, current, custom_value)
        record = outcome.record.replace(conflict.path, new_field, data)

        conflicts = [
            dataclasses.replace(c, resolution=resolution, resolved_value=data)
            if c.conflict_id == conflict_id else c
            for c in outcome.conflicts
        ]
        status = (
            MergeStatus.SUCCESS
            if all(c.is_resolved for c in conflicts)
            else MergeStatus.CONFLICTS_FOUND
        )
        logging.debug(f"RecordMergeEngine - Resolved conflict {conflict_id} with {resolution.name}")
        return MergeOutcome(status, record.layout, record, conflicts)

    def get_conflict_preview(
        self,
        conflict: MergeConflict,
        resolution: ConflictResolution
    ) -> Optional[bytes]:
        """Get preview of what a resolution would produce."""
        if resolution == ConflictResolution.USE_BASE:
            return conflict.base_value
        elif resolution == ConflictResolution.USE_LOCAL:
            return conflict.local_value
        elif resolution == ConflictResolution.USE_REMOTE:
            return conflict.remote_value
        else:
            return None

    def _resolved_value(
        self,
        conflict: MergeConflict,
        resolution: ConflictResolution,
        current: Field,
        custom_value: Optional[bytes]
    ) -> tuple[Field, bytes]:
        if resolution == ConflictResolution.USE_BASE:
            if conflict.base_field is None:
                raise ValueError(f"Conflict {conflict.conflict_id} has no base value")
            return conflict.base_field, conflict.base_value
        elif resolution == ConflictResolution.USE_LOCAL:
            return conflict.local_field, conflict.local_value
        elif resolution == ConflictResolution.USE_REMOTE:
            return conflict.remote_field, conflict.remote_value
        elif resolution == ConflictResolution.CUSTOM:
            if custom_value is None:
                raise ValueError("Custom resolution requires custom_value")
            data = bytes(custom_value)
            if len(data) == current.size:
                return current, data
            if current.type.is_variable and not current.is_structure:
                return Field(current.name, current.type, len(data)), data
            raise ValueError(
                f"Field {conflict.field_name!r} needs {current.size} bytes, got {len(data)}"
            )
        else:
            raise ValueError(f"Unknown resolution: {resolution}")

    @staticmethod
    def _field_at(layout: Layout, path: tuple[str, ...]) -> Field:
        current = None
        for name in path:
            current = layout.field_named(name)
            if current is None:
                raise ValueError(f"No field at {'.'.join(path)}")
            if current.layout is not None:
                layout = current.layout
        if current is None:
            raise ValueError("Empty field path")
        return current


def merge(
    base_layout: Layout,
    local_layout: Layout,
    remote_layout: Layout,
    base_record: RecordInput,
    local_record: RecordInput,
    remote_record: RecordInput
) -> MergeOutcome:
    """Sole entry point: merge with a default engine."""
    return RecordMergeEngine().merge(
        base_layout, local_layout, remote_layout,
        base_record, local_record, remote_record
    )

"""
Workers for merge operations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from binmerge.workers.base_worker import BaseWorker
from binmerge.core.merge.record_merge import RecordMergeEngine
from binmerge.core.models import Layout, MergeOutcome, Record
from binmerge.core.schema import DEFAULT_MAX_NESTING_DEPTH
from binmerge.services.file_io import RecordFileService


class RecordMergeWorker(BaseWorker):
    """
    Worker for three-way merges of record files.

    Local and remote default to the base layout when not given.
    """

    # Emitted for every conflict of a finished merge
    conflict_found = pyqtSignal(object)  # MergeConflict

    total_steps = 4

    def __init__(
        self,
        base_path: str | Path,
        local_path: str | Path,
        remote_path: str | Path,
        base_layout: Layout,
        local_layout: Optional[Layout] = None,
        remote_layout: Optional[Layout] = None,
        max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.base_path = Path(base_path)
        self.local_path = Path(local_path)
        self.remote_path = Path(remote_path)
        self.base_layout = base_layout
        self.local_layout = local_layout if local_layout is not None else base_layout
        self.remote_layout = remote_layout if remote_layout is not None else base_layout
        self.max_nesting_depth = max_nesting_depth
        self.file_service = RecordFileService()

    def do_work(self) -> MergeOutcome:
        """Read the three revisions and merge them."""
        records = []
        for label, path, layout in (
            ('base', self.base_path, self.base_layout),
            ('local', self.local_path, self.local_layout),
            ('remote', self.remote_path, self.remote_layout),
        ):
            records.append(self.file_service.read_record(path, layout))
            self.advance(f"Read {label} ({path.name})")

        engine = RecordMergeEngine(self.max_nesting_depth)
        outcome = engine.merge_records(*records)
        self.advance()

        for conflict in outcome.conflicts:
            self.conflict_found.emit(conflict)

        self.report_status(outcome.status.name)
        return outcome


class RecordMergeFromRecordsWorker(BaseWorker):
    """
    Worker for merging records already in memory.
    """

    def __init__(
        self,
        base: Record,
        local: Record,
        remote: Record,
        max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.base = base
        self.local = local
        self.remote = remote
        self.max_nesting_depth = max_nesting_depth

    def do_work(self) -> MergeOutcome:
        engine = RecordMergeEngine(self.max_nesting_depth)
        outcome = engine.merge_records(self.base, self.local, self.remote)
        self.advance(outcome.status.name)
        return outcome


class SaveMergeWorker(BaseWorker):
    """
    Worker for saving a merge result to file.

    Only SUCCESS outcomes are written; resolve conflicts first.
    """

    def __init__(
        self,
        outcome: MergeOutcome,
        output_path: str | Path,
        create_backup: bool = True,
        backup_extension: str = ".orig",
        atomic: bool = True,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.outcome = outcome
        self.output_path = Path(output_path)
        self.create_backup = create_backup
        self.backup_extension = backup_extension
        self.atomic = atomic
        self.file_service = RecordFileService()

    def do_work(self) -> bool:
        if not self.outcome.is_success:
            raise ValueError(
                f"Refusing to save a merge with status {self.outcome.status.name} "
                f"({self.outcome.unresolved_count} unresolved conflicts)"
            )

        result = self.file_service.write_record(
            self.output_path,
            self.outcome.record,
            atomic=self.atomic,
            create_backup=self.create_backup,
            backup_extension=self.backup_extension
        )
        if not result.success:
            raise OSError(result.error)

        self.advance(f"Wrote {result.bytes_written} bytes to {self.output_path}")
        return True

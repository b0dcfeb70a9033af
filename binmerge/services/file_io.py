"""
File I/O service for reading and writing binary records safely.

Handles:
- Slicing a file into per-field buffers for a layout
- Atomic writes
- Backups of overwritten files
"""

from __future__ import annotations

import os
import shutil
import tempfile
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from binmerge.core.errors import SizeMismatch
from binmerge.core.models import Layout, Record


@dataclass
class WriteResult:
    """Result of a file write operation."""
    success: bool
    bytes_written: int = 0
    error: Optional[str] = None
    backup_path: Optional[str] = None


class RecordFileService:
    """Service for persisting records as flat byte blobs."""

    def read_record(self, path: Path | str, layout: Layout) -> Record:
        """
        Read a record file for a layout.

        Raises:
            SizeMismatch: The file length differs from the layout size
            OSError: The file could not be read
        """
        path = Path(path)

        try:
            blob = path.read_bytes()
        except OSError as e:
            logging.error(f"RecordFileService - Failed to read {path}: {e}")
            raise

        try:
            return Record.from_bytes(layout, blob)
        except SizeMismatch as e:
            logging.error(f"RecordFileService - {path} does not match its layout: {e}")
            raise SizeMismatch(f"{path}: {e}", e.expected, e.actual) from e

    def write_record(
        self,
        path: Path | str,
        record: Record,
        atomic: bool = True,
        create_backup: bool = False,
        backup_extension: str = ".orig"
    ) -> WriteResult:
        """
        Write a record's flattened bytes to a file.

        Args:
            path: Path to write to
            record: Record to serialize
            atomic: Use atomic write (write to temp then move)
            create_backup: Copy an existing file aside first
            backup_extension: Suffix appended for the backup copy

        Returns:
            WriteResult with success status
        """
        path = Path(path)
        data = record.to_bytes()
        backup_path = None

        try:
            if create_backup and path.exists():
                backup = path.with_suffix(path.suffix + backup_extension)
                shutil.copy2(path, backup)
                backup_path = str(backup)

            path.parent.mkdir(parents=True, exist_ok=True)

            if atomic:
                fd, temp_path = tempfile.mkstemp(dir=path.parent)
                try:
                    with os.fdopen(fd, 'wb') as f:
                        f.write(data)
                    shutil.move(temp_path, path)
                except Exception:
                    if os.path.exists(temp_path):
                        os.unlink(temp_path)
                    raise
            else:
                path.write_bytes(data)

            return WriteResult(success=True, bytes_written=len(data), backup_path=backup_path)

        except PermissionError:
            logging.error(f"RecordFileService - Permission denied writing {path}")
            return WriteResult(success=False, error=f"Permission denied: {path}")
        except OSError as e:
            logging.error(f"RecordFileService - Failed to write {path}: {e}")
            return WriteResult(success=False, error=f"OS error: {e}")

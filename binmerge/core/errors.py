"""
Exceptions raised by the layout model, the schema loader and the merge engine.

Conflicts are not exceptions: they are collected into the merge outcome.
Only precondition failures (bad schemas, wrong buffer sizes, mismatched
format identifiers) are raised.
"""

from __future__ import annotations

from typing import Optional


class BinMergeError(Exception):
    """Base class for all binmerge errors."""
    pass


class SchemaError(BinMergeError):
    """A layout or field declaration is malformed."""
    pass


class SizeMismatch(BinMergeError):
    """A buffer does not match the size its layout declares."""

    def __init__(self, message: str, expected: Optional[int] = None, actual: Optional[int] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class MagicMismatch(BinMergeError):
    """The format identifiers of base, local and remote disagree."""

    def __init__(
        self,
        base_magic: int,
        local_magic: int,
        remote_magic: int,
        path: tuple[str, ...] = ()
    ):
        where = f" at {'.'.join(path)}" if path else ""
        super().__init__(
            f"Magic mismatch{where}: base=0x{base_magic:08X} "
            f"local=0x{local_magic:08X} remote=0x{remote_magic:08X}"
        )
        self.base_magic = base_magic
        self.local_magic = local_magic
        self.remote_magic = remote_magic
        self.path = path

"""
Merge module for three-way record merging.
"""

from binmerge.core.merge.record_merge import (
    RecordMergeEngine,
    merge,
)
from binmerge.core.merge.structure import (
    StructuralMerger,
    StructureMergeResult,
)

__all__ = [
    'RecordMergeEngine',
    'merge',
    'StructuralMerger',
    'StructureMergeResult',
]

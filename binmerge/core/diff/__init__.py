"""
Diff module for layout comparison.

Provides the structural differ that reports, for one revision against
its base, which fields were added, removed, moved or modified.
"""

from binmerge.core.diff.structural import (
    StructuralDiffEngine,
    diff_against_base,
)

__all__ = [
    'StructuralDiffEngine',
    'diff_against_base',
]

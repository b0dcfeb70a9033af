"""
Background workers for non-blocking merge operations.

Provides QThread-based workers for:
- Merging record files from disk, step by step
- Merging in-memory records
- Saving merge results

All workers use Qt signals for thread-safe communication
with the thread that started them. Merges share no state, so one
worker per file can run concurrently.
"""

from binmerge.workers.base_worker import (
    BaseWorker,
    CancelledException,
    WorkerSignals,
    WorkerState,
    WorkerThread,
)
from binmerge.workers.merge_worker import (
    RecordMergeWorker,
    RecordMergeFromRecordsWorker,
    SaveMergeWorker,
)

__all__ = [
    # Base
    'BaseWorker',
    'CancelledException',
    'WorkerSignals',
    'WorkerState',
    'WorkerThread',
    # Merge
    'RecordMergeWorker',
    'RecordMergeFromRecordsWorker',
    'SaveMergeWorker',
]

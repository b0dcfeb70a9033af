"""
Unit Tests for Merge Workers

Workers are run synchronously through run() unless the test is about
threading.
"""

import pytest

from binmerge.core.models import MergeStatus
from binmerge.workers import (
    RecordMergeFromRecordsWorker,
    RecordMergeWorker,
    SaveMergeWorker,
    WorkerState,
    WorkerThread,
)


@pytest.fixture
def record_files(tmp_path, make_example):
    """Base, local and remote revisions written to disk."""
    paths = []
    for label, record in (
        ("base", make_example()),
        ("local", make_example(name="testlocal")),
        ("remote", make_example(counter=999)),
    ):
        path = tmp_path / f"{label}.bin"
        path.write_bytes(record.to_bytes())
        paths.append(path)
    return paths


class TestRecordMergeWorker:
    """Tests for merging record files."""

    def test_merges_files(self, qtbot, record_files, example_layout, make_example):
        worker = RecordMergeWorker(*record_files, base_layout=example_layout)
        statuses = []
        steps = []
        worker.signals.status.connect(statuses.append)
        worker.signals.step.connect(lambda current, total: steps.append((current, total)))

        worker.run()

        assert worker.state == WorkerState.COMPLETED
        assert worker.result.status == MergeStatus.SUCCESS
        assert worker.result.record == make_example(name="testlocal", counter=999)
        assert statuses[0] == "Read base (base.bin)"
        assert statuses[-1] == "SUCCESS"
        assert steps == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_emits_each_conflict(self, qtbot, tmp_path, make_example, example_layout):
        paths = []
        for label, counter in (("b", 1), ("l", 2), ("r", 3)):
            path = tmp_path / f"{label}.bin"
            path.write_bytes(make_example(counter=counter).to_bytes())
            paths.append(path)
        worker = RecordMergeWorker(*paths, base_layout=example_layout)
        found = []
        worker.conflict_found.connect(found.append)

        worker.run()

        assert [c.path for c in found] == [("counter",)]
        assert worker.result.status == MergeStatus.CONFLICTS_FOUND

    def test_short_file_reports_error(self, qtbot, record_files, example_layout):
        record_files[1].write_bytes(b"\0" * 3)
        worker = RecordMergeWorker(*record_files, base_layout=example_layout)
        errors = []
        worker.signals.error.connect(lambda kind, msg: errors.append((kind, msg)))

        worker.run()

        assert worker.state == WorkerState.FAILED
        assert errors[0][0] == "SizeMismatch"
        assert "local.bin" in errors[0][1]

    def test_cancelled_before_merge(self, qtbot, record_files, example_layout):
        worker = RecordMergeWorker(*record_files, base_layout=example_layout)
        cancelled = []
        worker.signals.cancelled.connect(lambda: cancelled.append(True))
        worker.cancel()

        worker.run()

        assert worker.state == WorkerState.CANCELLED
        assert cancelled == [True]
        assert worker.result is None

    def test_cancel_between_reads(self, qtbot, record_files, example_layout):
        worker = RecordMergeWorker(*record_files, base_layout=example_layout)
        steps = []
        worker.signals.step.connect(lambda current, total: steps.append(current))
        worker.signals.step.connect(lambda current, total: worker.cancel())

        worker.run()

        assert worker.state == WorkerState.CANCELLED
        assert steps == [1]

    def test_runs_in_thread(self, qtbot, record_files, example_layout):
        worker = RecordMergeWorker(*record_files, base_layout=example_layout)
        thread = WorkerThread(worker)

        with qtbot.waitSignal(worker.signals.finished, timeout=5000) as blocker:
            thread.start()
        thread.wait(5000)

        assert blocker.args[0].is_success
        assert thread.result is blocker.args[0]


class TestRecordMergeFromRecordsWorker:

    def test_merges_in_memory(self, qtbot, make_example):
        base = make_example()
        worker = RecordMergeFromRecordsWorker(base, make_example(x=1), base)

        worker.run()

        assert worker.result.record == make_example(x=1)


class TestSaveMergeWorker:
    """Tests for persisting merge results."""

    def test_saves_successful_merge(self, qtbot, tmp_path, make_example):
        base = make_example()
        merge = RecordMergeFromRecordsWorker(base, base, make_example(x=5))
        merge.run()
        output = tmp_path / "merged.bin"
        output.write_bytes(b"previous")

        worker = SaveMergeWorker(merge.result, output, backup_extension=".orig")
        worker.run()

        assert worker.result is True
        assert output.read_bytes() == make_example(x=5).to_bytes()
        assert (tmp_path / "merged.bin.orig").read_bytes() == b"previous"

    def test_refuses_unresolved_conflicts(self, qtbot, tmp_path, make_example):
        merge = RecordMergeFromRecordsWorker(make_example(), make_example(x=1), make_example(x=2))
        merge.run()

        worker = SaveMergeWorker(merge.result, tmp_path / "merged.bin")
        worker.run()

        assert worker.state == WorkerState.FAILED
        assert worker.error[0] == "ValueError"
        assert not (tmp_path / "merged.bin").exists()

"""
Base worker for running merges off the calling thread.

A worker owns one job (one merge, one save) and reports back through
Qt signals:
- Step progress (current step, step count)
- Status text
- Completion with a result, failure, or cancellation
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Optional

from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot, QMutex, QMutexLocker


class WorkerState(Enum):
    """Lifecycle of a worker."""
    PENDING = auto()
    RUNNING = auto()
    CANCELLING = auto()
    CANCELLED = auto()
    COMPLETED = auto()
    FAILED = auto()


class WorkerSignals(QObject):
    """
    Signals emitted by a worker.

    Kept on a separate QObject that stays in the creating thread, so
    receivers there get queued delivery while the worker runs elsewhere.
    """
    started = pyqtSignal()
    status = pyqtSignal(str)
    step = pyqtSignal(int, int)         # (current, total)
    finished = pyqtSignal(object)       # result of do_work
    error = pyqtSignal(str, str)        # (exception type, message)
    cancelled = pyqtSignal()
    state_changed = pyqtSignal(object)  # WorkerState


class WorkerMeta(type(QObject), type(ABC)):
    pass


class CancelledException(Exception):
    """Raised from do_work to abandon a cancelled job."""
    pass


class BaseWorker(QObject, ABC, metaclass=WorkerMeta):
    """
    QObject job that runs do_work() once.

    Subclasses set `total_steps` and call `advance()` between steps;
    exceptions escaping do_work() become an `error` signal.
    """

    total_steps = 1

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.signals = WorkerSignals()
        self._mutex = QMutex()
        self._state = WorkerState.PENDING
        self._cancelled = False
        self._current_step = 0
        self._result: Any = None
        self._error: Optional[tuple[str, str]] = None

    @property
    def state(self) -> WorkerState:
        with QMutexLocker(self._mutex):
            return self._state

    @state.setter
    def state(self, value: WorkerState) -> None:
        with QMutexLocker(self._mutex):
            self._state = value
        self.signals.state_changed.emit(value)

    @property
    def is_cancelled(self) -> bool:
        with QMutexLocker(self._mutex):
            return self._cancelled

    @property
    def result(self) -> Any:
        """Return value of do_work, once completed."""
        return self._result

    @property
    def error(self) -> Optional[tuple[str, str]]:
        """(exception type, message), once failed."""
        return self._error

    def cancel(self) -> None:
        """Ask the job to stop at its next step boundary."""
        with QMutexLocker(self._mutex):
            self._cancelled = True
            if self._state == WorkerState.RUNNING:
                self._state = WorkerState.CANCELLING
        self.signals.state_changed.emit(WorkerState.CANCELLING)

    @pyqtSlot()
    def run(self) -> None:
        """Entry point for the thread; override do_work instead."""
        self.state = WorkerState.RUNNING
        self.signals.started.emit()

        try:
            result = self.do_work()
        except CancelledException:
            self._finish_cancelled()
            return
        except Exception as e:
            self._error = (type(e).__name__, str(e))
            self.state = WorkerState.FAILED
            self.signals.error.emit(*self._error)
            return

        if self.is_cancelled:
            self._finish_cancelled()
        else:
            self._result = result
            self.state = WorkerState.COMPLETED
            self.signals.finished.emit(result)

    def _finish_cancelled(self) -> None:
        self.state = WorkerState.CANCELLED
        self.signals.cancelled.emit()

    @abstractmethod
    def do_work(self) -> Any:
        """
        Perform the job and return its result.

        Call advance() between steps; it raises CancelledException
        once cancel() was requested.
        """

    def report_status(self, message: str) -> None:
        self.signals.status.emit(message)

    def advance(self, message: str = "") -> None:
        """Complete one step, then stop here if cancelled."""
        self._current_step += 1
        self.signals.step.emit(self._current_step, self.total_steps)
        if message:
            self.report_status(message)
        if self.is_cancelled:
            raise CancelledException("Operation cancelled")


class WorkerThread(QThread):
    """
    Thread that runs one worker and quits when it is done.

    Usage:
        thread = WorkerThread(RecordMergeWorker(...))
        thread.worker.signals.finished.connect(on_outcome)
        thread.start()
    """

    def __init__(self, worker: BaseWorker, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.worker = worker
        self.worker.moveToThread(self)

        self.started.connect(self.worker.run)
        for signal in (worker.signals.finished, worker.signals.error, worker.signals.cancelled):
            signal.connect(self.quit)

    def cancel(self) -> None:
        self.worker.cancel()

    @property
    def result(self) -> Any:
        return self.worker.result

    @property
    def error(self) -> Optional[tuple[str, str]]:
        return self.worker.error

"""Background workers for batch operations and diagnostics."""

from __future__ import annotations

import logging
from typing import Callable

from PyQt6.QtCore import QObject, QRunnable, QThreadPool, pyqtSignal

from devproxy_manager.core.errors import AppError

logger = logging.getLogger(__name__)


class BatchWorkerSignals(QObject):
    result = pyqtSignal(object)
    error = pyqtSignal(str)


class BatchWorker(QRunnable):
    """Run one whole batch off the UI thread and report once it finishes."""

    def __init__(self, fn: Callable[[], object]) -> None:
        super().__init__()
        self.fn = fn
        self.signals = BatchWorkerSignals()

    def run(self) -> None:
        try:
            payload = self.fn()
        except AppError as exc:
            logger.warning("Background task failed: %s", exc)
            self.signals.error.emit(exc.user_message)
            return
        except Exception as exc:
            logger.exception("Background task crashed")
            self.signals.error.emit(str(exc))
            return
        self.signals.result.emit(payload)


def run_in_background(
    fn: Callable[[], object],
    on_result: Callable[[object], None],
    on_error: Callable[[str], None],
    pool: QThreadPool | None = None,
) -> BatchWorker:
    worker = BatchWorker(fn)
    worker.signals.result.connect(on_result)
    worker.signals.error.connect(on_error)
    (pool or QThreadPool.globalInstance()).start(worker)
    return worker

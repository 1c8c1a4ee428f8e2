from collections import deque
from typing import Deque, Dict, Optional, Tuple

import numpy as np
from PyQt6.QtCore import QObject, QThread, pyqtSignal
from PyQt6.QtGui import QImage

from hdrtmo.desktop.workers.tonemap import TonemapTask, TonemapWorker
from hdrtmo.domain.models import TonemapOptions
from hdrtmo.kernel.system.config import APP_CONFIG
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.services.rendering.engine import TonemapEngine

logger = get_logger(__name__)


class TonemapController(QObject):
    """
    Runs tone mapping jobs on background threads and forwards their
    results to the UI thread. All jobs share one engine so repeated runs
    on the same frame reuse its statistics.

    At most `max_workers` jobs run at once, the rest wait in order.
    """

    imageComputed = pyqtSignal(QImage, object)
    finished = pyqtSignal()
    tmo_error = pyqtSignal(str)
    progress = pyqtSignal(int)
    maximumSteps = pyqtSignal(int)

    def __init__(
        self, engine: Optional[TonemapEngine] = None, max_workers: Optional[int] = None
    ) -> None:
        super().__init__()
        self.engine = engine if engine is not None else TonemapEngine()
        self.max_workers = max(1, max_workers or APP_CONFIG.max_workers)
        self._jobs: Dict[int, Tuple[QThread, TonemapWorker]] = {}
        self._running: set[int] = set()
        self._pending: Deque[int] = deque()
        self._next_id = 0

    @property
    def active_jobs(self) -> int:
        """Jobs submitted and not yet done, waiting ones included."""
        return len(self._jobs)

    @property
    def running_jobs(self) -> int:
        return len(self._running)

    def request_tonemap(
        self, frame: np.ndarray, options: TonemapOptions, source_hash: str = ""
    ) -> int:
        """
        Queues a job and returns its id. The frame is copied before return.
        """
        job_id = self._next_id
        self._next_id += 1

        worker = TonemapWorker(TonemapTask(frame, options, source_hash), engine=self.engine)
        thread = QThread()
        worker.moveToThread(thread)

        thread.started.connect(worker.run)
        worker.imageComputed.connect(self.imageComputed)
        worker.finished.connect(self.finished)
        worker.tmo_error.connect(self.tmo_error)
        worker.setValue.connect(self.progress)
        worker.setMaximumSteps.connect(self.maximumSteps)
        worker.stopped.connect(thread.quit)
        thread.finished.connect(lambda: self._on_job_done(job_id))

        self._jobs[job_id] = (thread, worker)
        self._pending.append(job_id)
        self._start_pending()
        return job_id

    def _start_pending(self) -> None:
        while self._pending and len(self._running) < self.max_workers:
            job_id = self._pending.popleft()
            thread, _ = self._jobs[job_id]
            self._running.add(job_id)
            logger.debug(f"Starting tone mapping job {job_id}")
            thread.start()

    def cancel(self, job_id: int) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        if job_id in self._pending:
            # Never started, so nothing will be emitted for it
            self._pending.remove(job_id)
            del self._jobs[job_id]
            logger.debug(f"Dropped queued tone mapping job {job_id}")
            return
        job[1].terminateRequested()

    def cancel_all(self) -> None:
        for job_id in list(self._jobs):
            self.cancel(job_id)

    def _on_job_done(self, job_id: int) -> None:
        self._running.discard(job_id)
        job = self._jobs.pop(job_id, None)
        if job is not None:
            job[0].wait()
            logger.debug(f"Tone mapping job {job_id} done, {len(self._jobs)} left")
        self._start_pending()

    def cleanup(self) -> None:
        """
        Cancels outstanding jobs and waits for their threads.
        """
        self.cancel_all()
        for job_id, (thread, _) in list(self._jobs.items()):
            thread.quit()
            thread.wait()
            self._on_job_done(job_id)

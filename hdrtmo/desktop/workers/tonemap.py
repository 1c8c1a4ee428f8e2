from dataclasses import dataclass
from typing import Optional

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot
from PyQt6.QtGui import QImage

from hdrtmo.desktop.converters import ImageConverter
from hdrtmo.domain.errors import TonemapError
from hdrtmo.domain.models import TonemapOptions
from hdrtmo.kernel.system.config import APP_CONFIG
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.kernel.system.progress import ProgressToken
from hdrtmo.services.rendering.engine import TonemapEngine

logger = get_logger(__name__)


@dataclass(frozen=True)
class TonemapTask:
    """
    Request parameters for a single tone mapping pass.
    """

    frame: np.ndarray
    options: TonemapOptions
    source_hash: str = ""


class TonemapWorker(QObject):
    """
    Runs one tone mapping job off the UI thread.

    The worker keeps a private copy of the frame, so the caller may reuse
    its buffer right after construction. A cancelled job emits nothing but
    `stopped`, which every run ends with.
    """

    imageComputed = pyqtSignal(QImage, object)  # display image, options
    finished = pyqtSignal()
    tmo_error = pyqtSignal(str)
    setValue = pyqtSignal(int)
    setMaximumSteps = pyqtSignal(int)
    stopped = pyqtSignal()

    def __init__(self, task: TonemapTask, engine: Optional[TonemapEngine] = None) -> None:
        super().__init__()
        self._frame: Optional[np.ndarray] = np.array(task.frame, copy=True)
        self.options = task.options
        self.source_hash = task.source_hash
        self._engine = engine if engine is not None else TonemapEngine()
        self.progress = ProgressToken(APP_CONFIG.progress_steps, on_progress=self.setValue.emit)
        self.result: Optional[np.ndarray] = None

    @property
    def holds_frame(self) -> bool:
        return self._frame is not None

    @pyqtSlot()
    def terminateRequested(self) -> None:
        """
        Asks the running job to stop at its next checkpoint. Safe to call
        from any thread.
        """
        self.progress.request_termination(True)

    @pyqtSlot()
    def run(self) -> None:
        try:
            self._run()
        finally:
            self._frame = None
            self.stopped.emit()

    def _run(self) -> None:
        self.setMaximumSteps.emit(self.progress.maximum)
        frame = self._frame
        if frame is None:
            return

        try:
            codes = self._engine.process(frame, self.options, self.source_hash, self.progress)
            image = ImageConverter.to_qimage(codes) if codes is not None else None
        except TonemapError as e:
            logger.error(f"Tone mapping failed: {e}")
            self.tmo_error.emit(str(e))
            return
        except Exception:
            logger.exception("Unexpected failure while tone mapping")
            self.tmo_error.emit("Failed to tonemap image")
            return

        if codes is None or image is None or self.progress.is_termination_requested():
            logger.info("Tone mapping cancelled")
            return

        self.result = codes
        self.imageComputed.emit(image, self.options)
        self.finished.emit()

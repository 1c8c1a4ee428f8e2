import threading
from typing import Callable, Optional

from hdrtmo.domain.interfaces import IProgress


class ProgressToken:
    """
    Cooperative progress/cancellation handle shared between a computation
    and its observer. Cancellation is advisory: numeric stages poll
    is_termination_requested() at coarse checkpoints.
    """

    def __init__(
        self,
        maximum: int = 100,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.maximum = maximum
        self._on_progress = on_progress
        self._value = 0
        self._terminate = threading.Event()
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def post_progress(self, value: float) -> None:
        clamped = int(min(max(value, 0), self.maximum))
        with self._lock:
            # Observers only ever see a non-decreasing sequence
            if clamped < self._value:
                return
            self._value = clamped
        if self._on_progress is not None:
            self._on_progress(clamped)

    def request_termination(self, value: bool = True) -> None:
        if value:
            self._terminate.set()
        else:
            self._terminate.clear()

    def is_termination_requested(self) -> bool:
        return self._terminate.is_set()


class ProgressRange:
    """
    Maps a sub-stage's local 0..1 progress onto a slice of a parent token.
    """

    def __init__(self, parent: IProgress, start: float, end: float) -> None:
        self.parent = parent
        self.start = start
        self.end = end

    @property
    def maximum(self) -> int:
        return self.parent.maximum

    def post_progress(self, value: float) -> None:
        frac = min(max(value / float(self.parent.maximum), 0.0), 1.0)
        self.parent.post_progress(self.start + (self.end - self.start) * frac)

    def request_termination(self, value: bool = True) -> None:
        self.parent.request_termination(value)

    def is_termination_requested(self) -> bool:
        return self.parent.is_termination_requested()

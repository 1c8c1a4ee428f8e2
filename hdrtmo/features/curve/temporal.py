from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np
from scipy.signal import firwin

from hdrtmo.domain.types import Vector
from hdrtmo.features.curve.models import ToneCurve
from hdrtmo.kernel.system.config import DATMO_CONSTANTS
from hdrtmo.kernel.system.logging import get_logger

logger = get_logger(__name__)


class ToneCurveFilter:
    """
    Low-pass filters tone curves over a sliding window of frames to avoid
    flicker in video. weights[0] applies to the newest frame.

    Before the window is full the weights of the available frames are
    renormalised, so the output is always a proper weighted average.
    """

    def __init__(
        self,
        tapsize: int = DATMO_CONSTANTS["tf_tapsize"],
        cutoff: float = DATMO_CONSTANTS["tf_cutoff"],
        weights: Optional[Vector] = None,
    ):
        if weights is None:
            weights = firwin(tapsize, cutoff)
        w = np.asarray(weights, dtype=np.float64)
        if w.ndim != 1 or w.size == 0 or np.any(w < 0) or w[0] <= 0:
            raise ValueError("temporal filter weights must be non-negative with a positive first tap")

        self.weights: Vector = w
        self.tapsize = w.size
        self._window: Deque[Tuple[int, ToneCurve]] = deque(maxlen=self.tapsize)
        self._last_index: Optional[int] = None

    @property
    def frames_in_window(self) -> int:
        return len(self._window)

    @property
    def is_full(self) -> bool:
        return len(self._window) == self.tapsize

    def reset(self) -> None:
        self._window.clear()
        self._last_index = None

    def smooth(self, curve: ToneCurve, frame_index: Optional[int] = None) -> ToneCurve:
        """
        Adds the newest frame's curve and returns the filtered curve on the
        newest curve's knot grid.
        """
        if curve.is_empty:
            raise ValueError("cannot filter an empty tone curve")
        if frame_index is None:
            frame_index = 0 if self._last_index is None else self._last_index + 1
        if self._last_index is not None and frame_index <= self._last_index:
            raise ValueError(
                f"frame index must increase (got {frame_index} after {self._last_index})"
            )

        self._last_index = frame_index
        self._window.append((frame_index, curve.copy()))

        grid = curve.x_i
        # Newest first, matching the weight order
        rows = []
        for _, tc in reversed(self._window):
            if tc.size == curve.size and np.array_equal(tc.x_i, grid):
                rows.append(tc.y_i)
            else:
                rows.append(np.interp(grid, tc.x_i, tc.y_i))

        w = self.weights[: len(rows)]
        w = w / w.sum()
        y = w @ np.vstack(rows)

        # Rounding in the sum must not break monotonicity
        y = np.maximum.accumulate(y)

        out = ToneCurve()
        out.init(curve.size, grid.copy())
        out.y_i[:] = y
        return out

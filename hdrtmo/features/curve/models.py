from dataclasses import dataclass
from typing import Optional

import numpy as np

from hdrtmo.domain.types import Vector
from hdrtmo.features.color.models import ColorCorrection


@dataclass(frozen=True)
class Mantiuk08Config:
    """
    Display adaptive tone mapping parameters.
    """

    enhancement: float = 1.0  # Contrast enhancement factor (1.0 = preserve)
    white_anchor: Optional[float] = None  # Scene luminance pinned to display peak
    saturation: float = 1.0  # Colour saturation factor
    color_correction: str = ColorCorrection.MANTIUK09.value
    temporal: bool = False  # Smooth curves across frames


class ToneCurve:
    """
    Monotonic mapping from log10 scene luminance (x_i) to log10 display
    luminance (y_i), sampled on strictly increasing knots.

    The curve either owns its y buffer or writes into caller storage
    passed to init(); `owns_y` tells the two apart.
    """

    def __init__(self) -> None:
        self.size = 0
        self.x_i: Vector = np.empty(0, dtype=np.float64)
        self.y_i: Vector = np.empty(0, dtype=np.float64)
        self.owns_y = False

    def init(self, size: int, x_i: Vector, y_i: Optional[Vector] = None) -> None:
        x = np.asarray(x_i, dtype=np.float64)
        if x.shape != (size,):
            raise ValueError(f"expected {size} knots, got shape {x.shape}")
        if size > 1 and np.any(np.diff(x) <= 0):
            raise ValueError("tone curve knots must be strictly increasing")

        self.size = size
        self.x_i = x
        if y_i is None:
            self.y_i = np.zeros(size, dtype=np.float64)
            self.owns_y = True
        else:
            if y_i.shape != (size,) or y_i.dtype != np.float64:
                raise ValueError("caller supplied y buffer must be float64 of matching size")
            self.y_i = y_i
            self.owns_y = False

    def free(self) -> None:
        self.size = 0
        self.x_i = np.empty(0, dtype=np.float64)
        self.y_i = np.empty(0, dtype=np.float64)
        self.owns_y = False

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def copy(self) -> "ToneCurve":
        tc = ToneCurve()
        tc.init(self.size, self.x_i.copy())
        tc.y_i[:] = self.y_i
        return tc

    def evaluate(self, log_lum: np.ndarray) -> np.ndarray:
        """
        Piecewise-linear evaluation. Knots are reproduced exactly and values
        outside [x_0, x_{N-1}] clamp to the end values.
        """
        return np.interp(log_lum, self.x_i, self.y_i)

    def slope(self, log_lum: np.ndarray) -> np.ndarray:
        """
        Local slope dy/dx of the segment containing each sample. Zero
        outside the knot range.
        """
        x = np.asarray(log_lum, dtype=np.float64)
        if self.size < 2:
            return np.zeros_like(x)
        seg = np.diff(self.y_i) / np.diff(self.x_i)
        idx = np.searchsorted(self.x_i, x.ravel(), side="right") - 1
        inside = (idx >= 0) & (idx < self.size - 1)
        out = np.zeros(idx.shape, dtype=np.float64)
        out[inside] = seg[idx[inside]]
        return out.reshape(x.shape)

    def max_slope(self) -> float:
        if self.size < 2:
            return 0.0
        return float(np.max(np.diff(self.y_i) / np.diff(self.x_i)))

    def is_monotonic(self) -> bool:
        return bool(np.all(np.diff(self.y_i) >= 0))

    def __repr__(self) -> str:
        if self.is_empty:
            return "ToneCurve(empty)"
        return (
            f"ToneCurve(size={self.size}, x=[{self.x_i[0]:.2f}, {self.x_i[-1]:.2f}], "
            f"y=[{self.y_i[0]:.3f}, {self.y_i[-1]:.3f}])"
        )

"""
Conditional density of local contrast given background luminance.

The image is decomposed into spatial frequency bands (a Gaussian pyramid
of log10 luminance). At every band each pixel contributes one contrast
sample: the difference between the band and its blurred version. A sample
spanning k knot steps upwards from luminance bin x is counted in
counts[band, x, k - 1]. The optimizer later asks how well the tone curve
reproduces every such step.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np
from numba import njit  # type: ignore

from hdrtmo.domain.interfaces import IProgress
from hdrtmo.domain.status import TmoStatus
from hdrtmo.domain.types import LuminanceMap, Vector
from hdrtmo.kernel.system.config import DATMO_CONSTANTS
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.kernel.system.performance import time_function
from hdrtmo.kernel.system.progress import ProgressToken

logger = get_logger(__name__)


@njit(cache=True)
def _accumulate_band_jit(
    background: np.ndarray,
    contrast: np.ndarray,
    hist: np.ndarray,
    l_min: float,
    delta: float,
    g_count: int,
) -> None:
    """
    Serial accumulation so that the histogram is bit-identical between runs.
    """
    h, w = background.shape
    x_count = hist.shape[0]
    for y in range(h):
        for x in range(w):
            c = contrast[y, x]
            k = int(abs(c) / delta + 0.5)
            if k == 0:
                continue
            if k > g_count:
                k = g_count

            # Key on the darker side of the step
            lower = background[y, x]
            if c < 0.0:
                lower = lower + c

            xi = int((lower - l_min) / delta + 0.5)
            if xi < 0:
                xi = 0
            if xi > x_count - 2:
                xi = x_count - 2
            if xi + k > x_count - 1:
                k = x_count - 1 - xi
            hist[xi, k - 1] += 1.0


@dataclass(frozen=True)
class ConditionalDensity:
    """
    Image statistics needed to fit a tone curve. Immutable: the arrays are
    made read-only so one density can serve any number of curve fits,
    including concurrent ones.
    """

    counts: np.ndarray  # (bands, x_count, g_count), normalised per band
    x_scale: Vector  # log10 luminance of every knot
    lum_hist: np.ndarray  # full resolution pixel count per knot bin
    x_lo: int  # first occupied knot bin
    x_hi: int  # last occupied knot bin
    pixel_count: int

    def __post_init__(self) -> None:
        for arr in (self.counts, self.x_scale, self.lum_hist):
            arr.flags.writeable = False

    @property
    def band_count(self) -> int:
        return int(self.counts.shape[0])

    @property
    def x_count(self) -> int:
        return int(self.x_scale.shape[0])

    @property
    def delta(self) -> float:
        return float(self.x_scale[1] - self.x_scale[0])


def knot_grid() -> Vector:
    l_min = DATMO_CONSTANTS["l_min"]
    l_max = DATMO_CONSTANTS["l_max"]
    delta = DATMO_CONSTANTS["delta"]
    x_count = int(round((l_max - l_min) / delta)) + 1
    return l_min + np.arange(x_count, dtype=np.float64) * delta


@time_function
def compute_conditional_density(
    width: int,
    height: int,
    L: LuminanceMap,
    progress: Optional[IProgress] = None,
) -> Tuple[TmoStatus, Optional[ConditionalDensity]]:
    """
    Computes the contrast statistics of a luminance map. This is the most
    time-consuming stage; the result can be reused by any number of
    compute_tone_curve() calls with different parameters.

    Returns (OK, density), (ABORTED, None) when cancellation was observed
    between bands, or (ERROR, None) for empty or non-finite input.
    """
    ph = progress if progress is not None else ProgressToken()

    if width <= 0 or height <= 0:
        logger.warning(f"Invalid image size {width}x{height}")
        return TmoStatus.ERROR, None

    lum = np.asarray(L)
    if lum.size != width * height:
        logger.warning(f"Luminance map has {lum.size} samples, expected {width * height}")
        return TmoStatus.ERROR, None
    lum = lum.reshape(height, width)
    if not np.all(np.isfinite(lum)):
        logger.warning("Luminance map contains non-finite values")
        return TmoStatus.ERROR, None

    l_min = float(DATMO_CONSTANTS["l_min"])
    l_max = float(DATMO_CONSTANTS["l_max"])
    delta = float(DATMO_CONSTANTS["delta"])
    g_count = int(DATMO_CONSTANTS["g_count"])
    f_count = int(DATMO_CONSTANTS["f_count"])
    min_band = int(DATMO_CONSTANTS["min_band_size"])

    x_scale = knot_grid()
    x_count = x_scale.shape[0]

    log_l = np.log10(np.clip(lum.astype(np.float64), 10.0**l_min, 10.0**l_max))
    level = np.ascontiguousarray(log_l, dtype=np.float32)

    bins = np.clip(np.rint((log_l - l_min) / delta), 0, x_count - 1).astype(np.int64)
    lum_hist = np.bincount(bins.ravel(), minlength=x_count).astype(np.float64)
    x_lo = int(bins.min())
    x_hi = int(bins.max())

    bands = []
    for band in range(f_count):
        if ph.is_termination_requested():
            logger.info(f"Density estimation aborted before band {band}")
            return TmoStatus.ABORTED, None

        blurred = cv2.GaussianBlur(level, (5, 5), 1.0, borderType=cv2.BORDER_REPLICATE)
        contrast = level - blurred

        hist = np.zeros((x_count, g_count), dtype=np.float64)
        _accumulate_band_jit(
            np.ascontiguousarray(blurred, dtype=np.float64),
            np.ascontiguousarray(contrast, dtype=np.float64),
            hist,
            l_min,
            delta,
            g_count,
        )
        bands.append(hist / float(level.size))
        ph.post_progress(ph.maximum * (band + 1) / f_count)

        if min(level.shape) // 2 < min_band:
            break
        level = cv2.pyrDown(level)

    density = ConditionalDensity(
        counts=np.stack(bands, axis=0),
        x_scale=x_scale,
        lum_hist=lum_hist,
        x_lo=x_lo,
        x_hi=x_hi,
        pixel_count=int(lum.size),
    )
    ph.post_progress(ph.maximum)
    logger.debug(
        f"Density: {density.band_count} bands, luminance bins {x_lo}..{x_hi}"
    )
    return TmoStatus.OK, density

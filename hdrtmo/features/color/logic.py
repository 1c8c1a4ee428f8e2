"""
Applies a fitted tone curve to RGB radiance and returns display codes.

Both strategies share the curve evaluation; they only differ in how much
of each channel's deviation from luminance survives:

    C_out = inv_display( (C_in / L_in)^s * L_d )

Legacy uses a fixed s. The colour-correcting variant (Mantiuk, Mantiuk,
Tomaszewska, Heidrich: "Color Correction for Tone Mapping", 2009) scales s
with the local contrast compression of the curve, so compressed regions do
not turn oversaturated.
"""

from typing import Dict, Optional, Protocol

import numpy as np

from hdrtmo.domain.interfaces import IProgress
from hdrtmo.domain.status import TmoStatus
from hdrtmo.features.color.models import ColorCorrection
from hdrtmo.features.curve.models import ToneCurve
from hdrtmo.features.display.models import DisplayFunction
from hdrtmo.kernel.system.config import COLOR_CONSTANTS, DATMO_CONSTANTS
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.kernel.system.performance import time_function
from hdrtmo.kernel.system.progress import ProgressToken

logger = get_logger(__name__)


class SaturationModel(Protocol):
    def saturation(
        self, log_lum: np.ndarray, tc: ToneCurve, factor: float
    ) -> np.ndarray: ...


class LegacySaturation:
    def saturation(self, log_lum: np.ndarray, tc: ToneCurve, factor: float) -> np.ndarray:
        return np.full(log_lum.shape, factor, dtype=np.float64)


class Mantiuk09Saturation:
    def __init__(
        self,
        k1: float = COLOR_CONSTANTS["k1"],
        k2: float = COLOR_CONSTANTS["k2"],
    ):
        self.k1 = k1
        self.k2 = k2

    def saturation(self, log_lum: np.ndarray, tc: ToneCurve, factor: float) -> np.ndarray:
        c = np.power(np.maximum(tc.slope(log_lum), 0.0), self.k2)
        return factor * (1.0 + self.k1) * c / (1.0 + self.k1 * c)


_SATURATION_MODELS: Dict[ColorCorrection, SaturationModel] = {
    ColorCorrection.LEGACY: LegacySaturation(),
    ColorCorrection.MANTIUK09: Mantiuk09Saturation(),
}


def get_saturation_model(correction: ColorCorrection | str) -> SaturationModel:
    return _SATURATION_MODELS[ColorCorrection(correction)]


def _as_plane(buf: np.ndarray, width: int, height: int) -> Optional[np.ndarray]:
    arr = np.asarray(buf)
    if arr.size != width * height:
        return None
    plane = arr.reshape(height, width)
    # Writes must reach the caller's buffer
    if not np.shares_memory(plane, arr):
        return None
    return plane


@time_function
def apply_tone_curve(
    r_out: np.ndarray,
    g_out: np.ndarray,
    b_out: np.ndarray,
    width: int,
    height: int,
    r_in: np.ndarray,
    g_in: np.ndarray,
    b_in: np.ndarray,
    l_in: np.ndarray,
    tc: ToneCurve,
    df: DisplayFunction,
    saturation: float = 1.0,
    correction: ColorCorrection | str = ColorCorrection.MANTIUK09,
    progress: Optional[IProgress] = None,
) -> TmoStatus:
    """
    Tone-maps radiance channels into display codes [0, 1]. Output buffers
    may be the input buffers. Processed in scanline blocks; cancellation is
    polled between blocks.
    """
    ph = progress if progress is not None else ProgressToken()

    if width <= 0 or height <= 0 or tc is None or tc.is_empty:
        logger.warning("Nothing to apply: empty image or tone curve")
        return TmoStatus.ERROR
    if not np.isfinite(saturation) or saturation < 0:
        logger.warning(f"Invalid saturation factor {saturation}")
        return TmoStatus.ERROR

    ins = [_as_plane(c, width, height) for c in (r_in, g_in, b_in, l_in)]
    outs = [_as_plane(c, width, height) for c in (r_out, g_out, b_out)]
    if any(p is None for p in ins + outs):
        logger.warning("Channel buffers do not match the image size")
        return TmoStatus.ERROR
    if not all(np.all(np.isfinite(p)) for p in ins):
        logger.warning("Input channels contain non-finite values")
        return TmoStatus.ERROR

    model = get_saturation_model(correction)
    floor = 10.0 ** DATMO_CONSTANTS["l_min"]
    rows = int(DATMO_CONSTANTS["rows_per_block"])
    lum_plane = ins[3]

    for start in range(0, height, rows):
        if ph.is_termination_requested():
            logger.info(f"Tone curve application aborted at row {start}")
            return TmoStatus.ABORTED

        sl = slice(start, min(start + rows, height))
        lum = np.array(lum_plane[sl], dtype=np.float64)
        valid = lum > 0
        log_l = np.log10(np.maximum(lum, floor))
        l_disp = np.power(10.0, tc.evaluate(log_l))
        s = model.saturation(log_l, tc, saturation)

        # Read the whole block before writing: outputs may alias inputs
        mapped = []
        for plane in ins[:3]:
            ratio = np.ones_like(lum)
            np.divide(plane[sl], lum, out=ratio, where=valid)
            mapped.append(df.to_code(np.power(np.maximum(ratio, 0.0), s) * l_disp))

        for plane, values in zip(outs, mapped):
            plane[sl] = values

        ph.post_progress(ph.maximum * sl.stop / height)

    return TmoStatus.OK

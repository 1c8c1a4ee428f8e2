"""
Static form of Pattanaik et al. 2000 ("Time-dependent visual adaptation
for fast realistic image display"): photoreceptor responses of cones and
rods to scene luminance, each adapted to its own adaptation luminance.
"""

from typing import Tuple

import cv2
import numpy as np

from hdrtmo.domain.types import ImageBuffer, LuminanceMap, RGB_TO_XYZ
from hdrtmo.kernel.image.validation import ensure_image
from hdrtmo.kernel.system.performance import time_function

RESPONSE_EXPONENT = 0.73
EPSILON = 1e-6


def rgb_to_xyz(img: ImageBuffer) -> ImageBuffer:
    return ensure_image(np.einsum("hwc,kc->hwk", img, RGB_TO_XYZ))


def scotopic_luminance(xyz: ImageBuffer) -> LuminanceMap:
    """Rod luminance approximated from CIE XYZ."""
    x, y, z = xyz[..., 0], xyz[..., 1], xyz[..., 2]
    return ensure_image(np.maximum(-0.702 * x + 1.039 * y + 0.433 * z, 0.0))


def log_average(lum: np.ndarray) -> float:
    return float(np.exp(np.mean(np.log(np.maximum(lum, EPSILON)))))


def bleaching_factors(a_cone: np.ndarray, a_rod: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Pigment bleaching: responses shrink as adaptation luminance grows."""
    b_cone = 2.0e6 / (2.0e6 + a_cone)
    b_rod = 0.04 / (0.04 + a_rod)
    return b_cone, b_rod


def photoreceptor_response(lum: np.ndarray, sigma: np.ndarray) -> np.ndarray:
    """Naka-Rushton response I^n / (I^n + sigma^n)."""
    i_n = np.power(np.maximum(lum, 0.0), RESPONSE_EXPONENT)
    return i_n / (i_n + np.power(np.maximum(sigma, EPSILON), RESPONSE_EXPONENT))


def local_adaptation(lum: LuminanceMap, scale_px: float) -> LuminanceMap:
    """
    Per-pixel adaptation luminance: Gaussian blur in the log domain so that
    bright highlights do not dominate their neighbourhood.
    """
    log_l = np.log(np.maximum(lum, EPSILON)).astype(np.float32)
    blurred = cv2.GaussianBlur(log_l, (0, 0), max(scale_px, 0.5), borderType=cv2.BORDER_REFLECT)
    return ensure_image(np.exp(blurred))


@time_function
def tonemap_pattanaik(
    img: ImageBuffer,
    local: bool,
    multiplier: float,
    a_cone: float,
    a_rod: float,
    autolum: bool,
) -> ImageBuffer:
    """
    Returns relative display luminance per channel in [0, 1] (linear).
    Colour ratios are kept; only luminance passes through the receptors.
    """
    scaled = ensure_image(img * multiplier)
    xyz = rgb_to_xyz(scaled)
    lum = np.maximum(xyz[..., 1], 0.0)
    rod_lum = scotopic_luminance(xyz)

    cone_adapt: np.ndarray
    rod_adapt: np.ndarray
    if local:
        scale = max(lum.shape) / 16.0
        cone_adapt = local_adaptation(lum, scale)
        rod_adapt = local_adaptation(rod_lum, scale)
    elif autolum:
        cone_adapt = np.full_like(lum, log_average(lum))
        rod_adapt = np.full_like(lum, log_average(rod_lum))
    else:
        cone_adapt = np.full_like(lum, a_cone)
        rod_adapt = np.full_like(lum, a_rod)

    b_cone, b_rod = bleaching_factors(cone_adapt, rod_adapt)
    response = b_cone * photoreceptor_response(lum, cone_adapt) + b_rod * photoreceptor_response(
        rod_lum, rod_adapt
    )

    peak = float(np.max(response))
    rel = response / peak if peak > 0 else response

    ratio = np.ones_like(scaled)
    valid = lum > EPSILON
    np.divide(scaled, lum[..., None], out=ratio, where=valid[..., None])
    out = np.maximum(ratio, 0.0) * rel[..., None]
    return ensure_image(np.clip(out, 0.0, 1.0))

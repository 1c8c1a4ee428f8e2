"""
Display adaptive tone curve fitting.

The curve is parametrised by its per-segment increments d_i (log10 display
luminance gained between knot i and i+1). Every contrast sample in the
conditional density spans k segments starting at knot x, so the displayed
contrast is sum(d[x:x+k]) while the scene contrast, scaled by the
enhancement factor, is e * k * delta. The fit minimises the squared error
weighted by sample frequency and by the observer's contrast sensitivity at
the displayed luminance, subject to

    d_i >= 0                  (monotonic curve)
    sum(d_i) <= log10(L_max / L_black)   (display dynamic range)

Sensitivity depends on the display luminance of the curve being fitted,
so the weights are relinearised a few times around the previous solution.
"""

import math
from typing import Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cholesky, solve_triangular
from scipy.optimize import nnls

from hdrtmo.domain.interfaces import IProgress
from hdrtmo.domain.status import TmoStatus
from hdrtmo.domain.types import Vector
from hdrtmo.features.curve.models import ToneCurve
from hdrtmo.features.density.logic import ConditionalDensity
from hdrtmo.features.display.models import DisplayFunction, DisplaySize
from hdrtmo.kernel.system.config import DATMO_CONSTANTS
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.kernel.system.performance import time_function
from hdrtmo.kernel.system.progress import ProgressToken

logger = get_logger(__name__)


def csf_daly(
    rho: float,
    lum: np.ndarray,
    field_deg: float = 10.0,
    viewing_distance_m: float = 0.5,
) -> np.ndarray:
    """
    Daly's contrast sensitivity function (foveal, horizontal orientation).

    rho: spatial frequency in cycles per degree
    lum: adapting luminance in cd/m2
    field_deg: edge of the visual field covered by the stimulus
    """
    P = 250.0
    eps = 0.9
    rho = max(rho, 1e-3)
    lum = np.maximum(np.asarray(lum, dtype=np.float64), 1e-5)
    i2 = field_deg * field_deg

    A = 0.801 * np.power(1.0 + 0.7 / lum, -0.2)
    B = 0.3 * np.power(1.0 + 100.0 / lum, 0.15)

    def s1(r: float) -> np.ndarray:
        b1 = B * eps * r
        return (
            np.power(np.power(3.23 * (r * r * i2) ** -0.3, 5.0) + 1.0, -0.2)
            * A
            * eps
            * r
            * np.exp(-b1)
            * np.sqrt(1.0 + 0.06 * np.exp(b1))
        )

    # Accommodation term; eccentricity and orientation terms are 1 here
    r_a = 0.856 * viewing_distance_m**0.14
    return P * np.minimum(s1(rho / r_a), s1(rho))


def _place_curve(
    d: Vector, y_min: float, y_max: float, anchor_knot: Optional[int], top_knot: int
) -> Vector:
    """
    Integrates increments into absolute display log luminance. The anchor
    knot (or the brightest occupied knot) lands on the display peak.
    """
    y = np.concatenate(([0.0], np.cumsum(d)))
    ref = anchor_knot if anchor_knot is not None else top_knot
    y = y + (y_max - y[ref])
    return np.clip(y, y_min, y_max)


def _build_normal_equations(
    weights: np.ndarray, seg_count: int, target_step: float
) -> Tuple[np.ndarray, Vector]:
    """
    weights[i, k-1] is the importance of a k-segment step starting at
    active segment i. Returns H, g of 0.5 d'Hd - g'd.
    """
    H = np.zeros((seg_count, seg_count), dtype=np.float64)
    g = np.zeros(seg_count, dtype=np.float64)
    g_count = weights.shape[1]
    for k in range(1, min(g_count, seg_count) + 1):
        w_k = weights[: seg_count - k + 1, k - 1]
        for i in np.flatnonzero(w_k):
            w = w_k[i]
            H[i : i + k, i : i + k] += w
            g[i : i + k] += w * k * target_step
    return H, g


def _solve_increments(
    H: np.ndarray,
    g: Vector,
    budget: float,
    ph: IProgress,
) -> Tuple[TmoStatus, Optional[Vector]]:
    """
    min 0.5 d'Hd - g'd  s.t. d >= 0, sum(d) <= budget

    Each candidate is a non-negative least squares problem on the Cholesky
    factor of H; the budget multiplier is found by bisection.
    """
    if not (np.all(np.isfinite(H)) and np.all(np.isfinite(g))):
        logger.warning("Tone curve system has non-finite coefficients")
        return TmoStatus.ERROR, None

    n = H.shape[0]
    ridge = DATMO_CONSTANTS["ridge"] * max(float(np.max(np.diag(H))), 1e-12)
    try:
        R = cholesky(H + ridge * np.eye(n), lower=False)
    except LinAlgError as e:
        logger.warning(f"Tone curve system is not positive definite: {e}")
        return TmoStatus.ERROR, None

    def solve_for(mu: float) -> Vector:
        rhs = solve_triangular(R, g - mu, trans="T")
        d, _ = nnls(R, rhs, maxiter=50 * n)
        return d

    try:
        d = solve_for(0.0)
        if d.sum() <= budget:
            return TmoStatus.OK, d

        mu_lo, mu_hi = 0.0, float(np.max(g))
        for _ in range(int(DATMO_CONSTANTS["bisection_steps"])):
            if ph.is_termination_requested():
                return TmoStatus.ABORTED, None
            mu = 0.5 * (mu_lo + mu_hi)
            if solve_for(mu).sum() > budget:
                mu_lo = mu
            else:
                mu_hi = mu
        d = solve_for(mu_hi)
    except (RuntimeError, ValueError) as e:
        logger.warning(f"Tone curve solver failed: {e}")
        return TmoStatus.ERROR, None

    # Bisection leaves d on the feasible side up to rounding
    total = d.sum()
    if total > budget:
        d = d * (budget / total)
    return TmoStatus.OK, d


@time_function
def compute_tone_curve(
    tc: ToneCurve,
    density: ConditionalDensity,
    df: DisplayFunction,
    ds: DisplaySize,
    enhancement: float = 1.0,
    white_anchor: Optional[float] = None,
    progress: Optional[IProgress] = None,
) -> TmoStatus:
    """
    Fits the tone curve for one density, display and parameter set.

    white_anchor: scene luminance mapped to the display peak, or None to
    map the brightest part of the scene there (recommended for HDR).

    `tc` is only written on OK.
    """
    ph = progress if progress is not None else ProgressToken()

    if density is None:
        logger.warning("No conditional density supplied")
        return TmoStatus.ERROR
    if not math.isfinite(enhancement) or enhancement < 0:
        logger.warning(f"Invalid enhancement factor {enhancement}")
        return TmoStatus.ERROR
    if white_anchor is not None and (not math.isfinite(white_anchor) or white_anchor <= 0):
        logger.warning(f"Invalid white anchor {white_anchor}")
        return TmoStatus.ERROR

    x_scale = np.array(density.x_scale, dtype=np.float64)
    n = density.x_count
    delta = density.delta
    y_min, y_max = df.log_range()
    budget = y_max - y_min
    if not budget > 0:
        logger.warning("Display has no usable dynamic range")
        return TmoStatus.ERROR

    anchor_knot = None
    if white_anchor is not None:
        anchor_knot = int(np.clip(round((math.log10(white_anchor) - x_scale[0]) / delta), 0, n - 1))

    lo, hi = density.x_lo, density.x_hi
    seg_count = hi - lo
    d = np.zeros(n - 1, dtype=np.float64)

    if seg_count > 0:
        ppd = ds.pixels_per_degree()
        field = ds.screen_height_deg()
        rhos = [ppd / 2.0 ** (f + 1) for f in range(density.band_count)]
        counts = density.counts[:, lo:hi, :]

        # Start from a uniform compression of the occupied range
        d[lo:hi] = min(delta * max(enhancement, 1e-3), budget / seg_count)

        iterations = int(DATMO_CONSTANTS["iterations"])
        for it in range(iterations):
            if ph.is_termination_requested():
                logger.info(f"Tone curve fit aborted at iteration {it}")
                return TmoStatus.ABORTED

            y = _place_curve(d, y_min, y_max, anchor_knot, hi)
            # Sensitivity at the darker end of every step
            l_disp = np.power(10.0, y[lo:hi])
            weights = np.zeros(counts.shape[1:], dtype=np.float64)
            for f, rho in enumerate(rhos):
                s = csf_daly(rho, l_disp, field_deg=field)
                weights += counts[f] * (s * s)[:, None]

            H, g = _build_normal_equations(weights, seg_count, enhancement * delta)
            status, d_act = _solve_increments(H, g, budget, ph)
            if status != TmoStatus.OK or d_act is None:
                return status

            d[lo:hi] = d_act
            ph.post_progress(ph.maximum * (it + 1) / iterations)

    y = _place_curve(d, y_min, y_max, anchor_knot, hi)

    if tc.size == n and not tc.owns_y:
        tc.init(n, x_scale, tc.y_i)
    else:
        tc.init(n, x_scale)
    tc.y_i[:] = y
    ph.post_progress(ph.maximum)
    logger.debug(f"Tone curve fitted: {tc}")
    return TmoStatus.OK

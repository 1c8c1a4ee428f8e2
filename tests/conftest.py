import os

# Keep test runs from writing perf CSVs and from needing a display
os.environ.setdefault("HDRTMO_PERF_CSV", "0")
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pytest


def make_hdr_frame(width: int = 64, height: int = 48, decades: float = 3.0, seed: int = 7) -> np.ndarray:
    """
    Linear RGB frame whose luminance spans `decades` orders of magnitude
    left to right, with mild texture so every pyramid band sees contrast.
    """
    rng = np.random.default_rng(seed)
    ramp = np.logspace(-decades / 2.0, decades / 2.0, width)
    lum = np.tile(ramp, (height, 1)) * (1.0 + 0.2 * rng.random((height, width)))
    tint = np.array([1.1, 1.0, 0.8])
    return (lum[..., None] * tint).astype(np.float32)


@pytest.fixture
def hdr_frame() -> np.ndarray:
    return make_hdr_frame()

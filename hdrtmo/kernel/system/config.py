import os
from typing import Dict, Any
from hdrtmo.domain.types import AppConfig

# User dir env (cache and perf logs live below it)
BASE_USER_DIR = os.path.abspath(os.getenv("HDRTMO_USER_DIR", "user"))


def _env_workers() -> int:
    raw = os.getenv("HDRTMO_MAX_WORKERS")
    if raw:
        try:
            return max(1, int(raw))
        except ValueError:
            pass
    return max(1, (os.cpu_count() or 1) - 1)


APP_CONFIG = AppConfig(
    max_workers=_env_workers(),
    cache_dir=os.path.join(BASE_USER_DIR, "cache"),
    progress_steps=100,
    log_perf_csv=os.getenv("HDRTMO_PERF_CSV", "1") != "0",
)

# Discretisation of the display adaptive operator
DATMO_CONSTANTS: Dict[str, Any] = {
    "l_min": -8.0,  # Lowest log10 luminance on the knot grid
    "l_max": 8.0,  # Highest log10 luminance on the knot grid
    "delta": 0.1,  # Knot spacing in log10 units
    "g_count": 20,  # Contrast magnitude bins (multiples of delta)
    "f_count": 8,  # Pyramid depth (spatial frequency bands)
    "min_band_size": 4,  # Smallest pyramid level edge in pixels
    "iterations": 4,  # CSF relinearisation passes
    "bisection_steps": 40,  # Dynamic range budget search
    "ridge": 1e-6,  # Relative Tikhonov term on the normal equations
    "rows_per_block": 64,  # Applicator scanline block
    "tf_tapsize": 26,  # Temporal filter window
    "tf_cutoff": 0.06,  # Temporal filter cutoff (fraction of Nyquist)
}

# Colour correction constants (Mantiuk et al. 2009, non-linear model)
COLOR_CONSTANTS: Dict[str, float] = {
    "k1": 1.6774,
    "k2": 0.9925,
}

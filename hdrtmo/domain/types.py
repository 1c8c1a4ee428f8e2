from typing import TypeAlias
import numpy as np
import numpy.typing as npt
from dataclasses import dataclass


# Image Types
# Linear floating point radiance (Height, Width, Channels), unbounded
ImageBuffer: TypeAlias = npt.NDArray[np.float32]
# Single channel luminance (Height, Width), non-negative
LuminanceMap: TypeAlias = npt.NDArray[np.float32]
# Float64 vectors used by curves and statistics
Vector: TypeAlias = npt.NDArray[np.float64]

# Rec. 709 / sRGB primaries, D65
LUMA_R = 0.212656
LUMA_G = 0.715158
LUMA_B = 0.072186

# linear sRGB -> CIE XYZ (D65)
RGB_TO_XYZ = np.array(
    [
        [0.412424, 0.357579, 0.180464],
        [0.212656, 0.715158, 0.072186],
        [0.019332, 0.119193, 0.950444],
    ],
    dtype=np.float32,
)


@dataclass
class AppConfig:
    max_workers: int
    cache_dir: str
    progress_steps: int
    log_perf_csv: bool

"""
Display model: how pixel codes turn into light on a physical screen, and
how large that screen looks to the observer.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt

from hdrtmo.domain.errors import DisplayModelError

ArrayLike = Any

# (gamma, l_max, l_black, e_amb, screen_refl)
DISPLAY_PRESETS: Dict[str, Tuple[float, float, float, float, float]] = {
    "lcd_office": (2.2, 100.0, 0.8, 400.0, 0.01),
    "lcd": (2.2, 200.0, 0.8, 60.0, 0.01),
    "lcd_bright": (2.6, 500.0, 0.5, 10.0, 0.01),
    "crt": (2.2, 80.0, 1.0, 60.0, 0.02),
}


@dataclass(frozen=True)
class DisplayConfig:
    """
    Target display. A named preset wins over the explicit GGBA parameters,
    a LUT file wins over both.
    """

    display_preset: Optional[str] = "lcd"
    display_gamma: float = 2.2
    display_l_max: float = 100.0
    display_l_black: float = 0.8
    display_e_amb: float = 0.0
    display_refl: float = 0.01
    display_lut_path: Optional[str] = None

    # Viewing geometry
    vres: int = 1024
    vd_screen_h: float = 3.0
    vd_meters: Optional[float] = None
    screen_height_m: Optional[float] = None


class DisplayFunction(ABC):
    """
    Bijective mapping between normalised display codes [0, 1] and emitted
    luminance in cd/m2. Both directions accept scalars or arrays.
    """

    @abstractmethod
    def to_luminance(self, code: ArrayLike) -> npt.NDArray[np.float64]: ...

    @abstractmethod
    def to_code(self, luminance: ArrayLike) -> npt.NDArray[np.float64]: ...

    @property
    def black_level(self) -> float:
        return float(self.to_luminance(0.0))

    @property
    def max_luminance(self) -> float:
        return float(self.to_luminance(1.0))

    def log_range(self) -> Tuple[float, float]:
        """(log10 black level, log10 peak luminance)"""
        return math.log10(self.black_level), math.log10(self.max_luminance)


class DisplayFunctionGGBA(DisplayFunction):
    """
    Gamma-Gain-Black-Ambient display model:

        L = (L_max - L_black) * V^gamma + L_black + L_refl
        L_refl = k / pi * E_amb

    where E_amb is the ambient illuminance (lux) and k the screen
    reflectivity. Covers CRT and power-law LCD responses.
    """

    def __init__(
        self,
        gamma: float = 2.2,
        l_max: float = 100.0,
        l_black: float = 0.8,
        e_amb: float = 0.0,
        screen_refl: float = 0.01,
    ):
        if gamma <= 0:
            raise DisplayModelError(f"gamma must be positive, got {gamma}")
        if l_black < 0 or l_max <= l_black:
            raise DisplayModelError(
                f"need 0 <= l_black < l_max, got l_black={l_black} l_max={l_max}"
            )
        if e_amb < 0 or not 0.0 <= screen_refl < 1.0:
            raise DisplayModelError("ambient light and reflectivity must be non-negative")

        self.gamma = float(gamma)
        self.l_max = float(l_max)
        self.l_black = float(l_black)
        self.e_amb = float(e_amb)
        self.screen_refl = float(screen_refl)
        self.l_refl = self.screen_refl / math.pi * self.e_amb
        self.l_offset = self.l_black + self.l_refl

        if self.l_offset <= 0:
            raise DisplayModelError("display black level must be above zero")

    @classmethod
    def from_preset(cls, name: str) -> "DisplayFunctionGGBA":
        try:
            gamma, l_max, l_black, e_amb, refl = DISPLAY_PRESETS[name]
        except KeyError:
            raise DisplayModelError(
                f"unknown display preset '{name}' (known: {', '.join(DISPLAY_PRESETS)})"
            ) from None
        return cls(gamma, l_max, l_black, e_amb, refl)

    def to_luminance(self, code: ArrayLike) -> npt.NDArray[np.float64]:
        v = np.clip(np.asarray(code, dtype=np.float64), 0.0, 1.0)
        return (self.l_max - self.l_black) * np.power(v, self.gamma) + self.l_offset

    def to_code(self, luminance: ArrayLike) -> npt.NDArray[np.float64]:
        lum = np.asarray(luminance, dtype=np.float64)
        rel = (lum - self.l_offset) / (self.l_max - self.l_black)
        return np.power(np.clip(rel, 0.0, 1.0), 1.0 / self.gamma)

    def __repr__(self) -> str:
        return (
            f"DisplayFunctionGGBA(gamma={self.gamma}, l_max={self.l_max}, "
            f"l_black={self.l_black}, e_amb={self.e_amb}, screen_refl={self.screen_refl})"
        )


class DisplayFunctionLUT(DisplayFunction):
    """
    Measured display response: (code, luminance) pairs interpolated
    linearly in log luminance. Codes outside the table clamp to its ends.
    """

    def __init__(self, codes: ArrayLike, luminances: ArrayLike):
        c = np.asarray(codes, dtype=np.float64).ravel()
        lum = np.asarray(luminances, dtype=np.float64).ravel()

        if c.size < 2 or c.size != lum.size:
            raise DisplayModelError("LUT needs at least two (code, luminance) pairs")
        if np.any(lum <= 0) or not np.all(np.isfinite(lum)):
            raise DisplayModelError("LUT luminances must be finite and positive")
        if np.any(np.diff(c) <= 0) or np.any(np.diff(lum) <= 0):
            raise DisplayModelError("LUT codes and luminances must be strictly increasing")

        self.codes = c
        self.log_lum = np.log10(lum)

    @classmethod
    def from_file(cls, path: str) -> "DisplayFunctionLUT":
        """
        Two columns: code (0..1) and luminance (cd/m2). Commas or whitespace.
        """
        with open(path, "r") as f:
            rows = [
                line.replace(",", " ").split()
                for line in f
                if line.strip() and not line.lstrip().startswith("#")
            ]
        try:
            table = np.array([[float(r[0]), float(r[1])] for r in rows])
        except (IndexError, ValueError) as e:
            raise DisplayModelError(f"malformed display LUT '{path}': {e}") from e
        if table.ndim != 2 or table.shape[0] < 2:
            raise DisplayModelError(f"display LUT '{path}' has too few rows")
        return cls(table[:, 0], table[:, 1])

    @property
    def black_level(self) -> float:
        return float(10.0 ** self.log_lum[0])

    @property
    def max_luminance(self) -> float:
        return float(10.0 ** self.log_lum[-1])

    def to_luminance(self, code: ArrayLike) -> npt.NDArray[np.float64]:
        v = np.asarray(code, dtype=np.float64)
        return np.power(10.0, np.interp(v, self.codes, self.log_lum))

    def to_code(self, luminance: ArrayLike) -> npt.NDArray[np.float64]:
        lum = np.maximum(np.asarray(luminance, dtype=np.float64), 1e-30)
        return np.asarray(np.interp(np.log10(lum), self.log_lum, self.codes))


@dataclass(frozen=True)
class DisplaySize:
    """
    Viewing geometry: vertical resolution and viewing distance expressed
    in screen heights.
    """

    vres: int = 1024
    vd_screen_h: float = 3.0

    def __post_init__(self) -> None:
        if self.vres <= 0 or self.vd_screen_h <= 0:
            raise DisplayModelError(
                f"display size needs positive vres and distance, got {self.vres}, {self.vd_screen_h}"
            )

    @classmethod
    def from_meters(cls, vres: int, vd_meters: float, screen_height_m: float) -> "DisplaySize":
        if screen_height_m <= 0:
            raise DisplayModelError("screen height must be positive")
        return cls(vres=vres, vd_screen_h=vd_meters / screen_height_m)

    def screen_height_deg(self) -> float:
        """Visual angle subtended by the screen height."""
        return math.degrees(2.0 * math.atan(0.5 / self.vd_screen_h))

    def pixels_per_degree(self) -> float:
        return self.vres / self.screen_height_deg()


def create_display_function(config: DisplayConfig) -> DisplayFunction:
    if config.display_lut_path:
        return DisplayFunctionLUT.from_file(config.display_lut_path)
    if config.display_preset and config.display_preset != "custom":
        return DisplayFunctionGGBA.from_preset(config.display_preset)
    return DisplayFunctionGGBA(
        gamma=config.display_gamma,
        l_max=config.display_l_max,
        l_black=config.display_l_black,
        e_amb=config.display_e_amb,
        screen_refl=config.display_refl,
    )


def create_display_size(config: DisplayConfig) -> DisplaySize:
    if config.vd_meters is not None and config.screen_height_m is not None:
        return DisplaySize.from_meters(config.vres, config.vd_meters, config.screen_height_m)
    return DisplaySize(vres=config.vres, vd_screen_h=config.vd_screen_h)

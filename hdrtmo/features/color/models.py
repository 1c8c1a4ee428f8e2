from enum import Enum


class ColorCorrection(Enum):
    # (C/L)^s * Ld with a fixed saturation factor
    LEGACY = "legacy"
    # Contrast dependent saturation, Mantiuk et al. 2009
    MANTIUK09 = "mantiuk09"

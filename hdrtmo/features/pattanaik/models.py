from dataclasses import dataclass


@dataclass(frozen=True)
class PattanaikConfig:
    """
    Static visual adaptation operator parameters.
    """

    local: bool = False  # Per-pixel adaptation from a blurred luminance map
    multiplier: float = 1.0  # Scales input radiance before adaptation
    cone: float = 0.5  # Cone adaptation luminance (cd/m2)
    rod: float = 0.5  # Rod adaptation luminance (cd/m2)
    autolum: bool = True  # Derive adaptation from the log-average luminance

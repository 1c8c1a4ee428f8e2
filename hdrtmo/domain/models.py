import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional

from hdrtmo.domain.errors import TonemapConfigError
from hdrtmo.features.color.models import ColorCorrection
from hdrtmo.features.curve.models import Mantiuk08Config
from hdrtmo.features.display.models import DISPLAY_PRESETS, DisplayConfig
from hdrtmo.features.pattanaik.models import PattanaikConfig
from hdrtmo.kernel.image.validation import coerce_setting


class TonemapOperator(Enum):
    MANTIUK08 = "mantiuk08"
    PATTANAIK00 = "pattanaik00"


def parse_white_anchor(val: Any) -> Optional[float]:
    """
    None, "none" and the legacy -1 all mean "do not anchor".
    """
    if val is None:
        return None
    if isinstance(val, str):
        if val.strip().lower() in ("", "none"):
            return None
        val = float(val)
    val = float(val)
    if val == -1.0:
        return None
    return val


@dataclass(frozen=True)
class TonemapOptions:
    """
    Complete parameter set for one tone mapping run.
    """

    operator: str = TonemapOperator.MANTIUK08.value
    pregamma: float = 1.0  # Power-law pre-correction, 1.0 = no-op
    xsize: Optional[int] = None  # Working width, None = original size
    display: DisplayConfig = field(default_factory=DisplayConfig)
    mantiuk08: Mantiuk08Config = field(default_factory=Mantiuk08Config)
    pattanaik: PattanaikConfig = field(default_factory=PattanaikConfig)

    def validate(self) -> "TonemapOptions":
        """
        Raises TonemapConfigError on the first invalid value.
        """
        try:
            TonemapOperator(self.operator)
        except ValueError:
            raise TonemapConfigError("operator", f"unknown operator '{self.operator}'") from None
        if not self.pregamma > 0:
            raise TonemapConfigError("pregamma", "must be positive")
        if self.xsize is not None and self.xsize <= 0:
            raise TonemapConfigError("xsize", "must be a positive width")

        m = self.mantiuk08
        if not (math.isfinite(m.enhancement) and m.enhancement >= 0):
            raise TonemapConfigError("enhancement", "must be >= 0")
        if not (math.isfinite(m.saturation) and m.saturation >= 0):
            raise TonemapConfigError("saturation", "must be >= 0")
        if m.white_anchor is not None and not m.white_anchor > 0:
            raise TonemapConfigError("white_anchor", "must be a positive luminance or 'none'")
        try:
            ColorCorrection(m.color_correction)
        except ValueError:
            raise TonemapConfigError(
                "color_correction", f"unknown correction '{m.color_correction}'"
            ) from None

        d = self.display
        if (
            d.display_lut_path is None
            and d.display_preset not in (None, "custom")
            and d.display_preset not in DISPLAY_PRESETS
        ):
            raise TonemapConfigError("display_preset", f"unknown preset '{d.display_preset}'")

        p = self.pattanaik
        if not p.multiplier > 0:
            raise TonemapConfigError("multiplier", "must be positive")
        if p.cone < 0 or p.rod < 0:
            raise TonemapConfigError("cone/rod", "adaptation luminance must be >= 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """
        Flattens for serialization.
        """
        res: Dict[str, Any] = {
            "operator": self.operator,
            "pregamma": self.pregamma,
            "xsize": self.xsize,
        }
        res.update(asdict(self.display))
        res.update(asdict(self.mantiuk08))
        res.update(asdict(self.pattanaik))
        res["white_anchor"] = "none" if self.mantiuk08.white_anchor is None else self.mantiuk08.white_anchor
        return res

    @classmethod
    def from_flat_dict(cls, data: Dict[str, Any]) -> "TonemapOptions":
        """
        From a host settings dict. Unknown keys are ignored, None falls back
        to the default.
        """

        def filter_keys(config_cls: Any, d: Dict[str, Any]) -> Dict[str, Any]:
            res: Dict[str, Any] = {}
            for name, f in config_cls.__dataclass_fields__.items():
                if d.get(name) is None:
                    continue
                res[name] = coerce_setting(d[name], f.default)
            return res

        data = dict(data)
        if "white_anchor" in data:
            data["white_anchor"] = parse_white_anchor(data["white_anchor"])
        mantiuk = filter_keys(Mantiuk08Config, data)
        if "white_anchor" in data:
            mantiuk["white_anchor"] = data["white_anchor"]

        xsize = data.get("xsize")
        return cls(
            operator=str(data.get("operator") or TonemapOperator.MANTIUK08.value),
            pregamma=float(data["pregamma"]) if data.get("pregamma") is not None else 1.0,
            xsize=int(xsize) if xsize is not None else None,
            display=DisplayConfig(**filter_keys(DisplayConfig, data)),
            mantiuk08=Mantiuk08Config(**mantiuk),
            pattanaik=PattanaikConfig(**filter_keys(PattanaikConfig, data)),
        )

from typing import Optional

import numpy as np

from hdrtmo.domain.errors import TonemapError
from hdrtmo.domain.interfaces import IProgress, PipelineContext
from hdrtmo.domain.status import TmoStatus
from hdrtmo.domain.types import ImageBuffer
from hdrtmo.features.color.logic import apply_tone_curve
from hdrtmo.features.curve.logic import compute_tone_curve
from hdrtmo.features.curve.models import Mantiuk08Config, ToneCurve
from hdrtmo.features.curve.temporal import ToneCurveFilter
from hdrtmo.features.density.logic import compute_conditional_density
from hdrtmo.features.display.models import DisplayFunction, DisplaySize
from hdrtmo.kernel.image.logic import get_luminance
from hdrtmo.kernel.system.progress import ProgressRange


class DisplayAdaptiveProcessor:
    """
    Display adaptive tone mapping (Mantiuk, Daly, Kerofsky 2008):
    density -> curve -> (temporal filter) -> colour application.

    A density found in context.metrics["density"] is reused instead of
    being recomputed.
    """

    def __init__(
        self,
        config: Mantiuk08Config,
        df: DisplayFunction,
        ds: DisplaySize,
        temporal_filter: Optional[ToneCurveFilter] = None,
    ):
        self.config = config
        self.df = df
        self.ds = ds
        self.temporal_filter = temporal_filter

    def process(
        self, image: ImageBuffer, context: PipelineContext, progress: IProgress
    ) -> Optional[ImageBuffer]:
        h, w = image.shape[:2]
        lum = get_luminance(image)

        density = context.metrics.get("density")
        if density is None:
            status, density = compute_conditional_density(
                w, h, lum, ProgressRange(progress, 0, 0.6 * progress.maximum)
            )
            if status == TmoStatus.ABORTED:
                return None
            if status != TmoStatus.OK or density is None:
                raise TonemapError("Failed to compute image statistics")
            context.metrics["density"] = density

        tc = ToneCurve()
        status = compute_tone_curve(
            tc,
            density,
            self.df,
            self.ds,
            enhancement=self.config.enhancement,
            white_anchor=self.config.white_anchor,
            progress=ProgressRange(progress, 0.6 * progress.maximum, 0.85 * progress.maximum),
        )
        if status == TmoStatus.ABORTED:
            return None
        if status != TmoStatus.OK:
            raise TonemapError("Failed to compute the tone curve")

        if self.temporal_filter is not None:
            tc = self.temporal_filter.smooth(tc, context.metrics.get("frame_index"))
        context.metrics["tone_curve"] = tc

        out = np.empty_like(image)
        status = apply_tone_curve(
            out[..., 0],
            out[..., 1],
            out[..., 2],
            w,
            h,
            image[..., 0],
            image[..., 1],
            image[..., 2],
            lum,
            tc,
            self.df,
            saturation=self.config.saturation,
            correction=self.config.color_correction,
            progress=ProgressRange(progress, 0.85 * progress.maximum, progress.maximum),
        )
        if status == TmoStatus.ABORTED:
            return None
        if status != TmoStatus.OK:
            raise TonemapError("Failed to apply the tone curve")
        return out

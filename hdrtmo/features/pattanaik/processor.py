from typing import Optional

from hdrtmo.domain.interfaces import IProgress, PipelineContext
from hdrtmo.domain.types import ImageBuffer
from hdrtmo.features.display.models import DisplayFunction
from hdrtmo.features.pattanaik.logic import tonemap_pattanaik
from hdrtmo.features.pattanaik.models import PattanaikConfig
from hdrtmo.kernel.image.validation import ensure_image


class PattanaikProcessor:
    """
    Visual adaptation operator behind the same cancellable contract.
    The model runs in one pass, so cancellation is checked around it.
    """

    def __init__(self, config: PattanaikConfig, df: DisplayFunction):
        self.config = config
        self.df = df

    def process(
        self, image: ImageBuffer, context: PipelineContext, progress: IProgress
    ) -> Optional[ImageBuffer]:
        if progress.is_termination_requested():
            return None

        rel = tonemap_pattanaik(
            image,
            local=self.config.local,
            multiplier=self.config.multiplier,
            a_cone=self.config.cone,
            a_rod=self.config.rod,
            autolum=self.config.autolum,
        )
        progress.post_progress(0.8 * progress.maximum)
        if progress.is_termination_requested():
            return None

        black, peak = self.df.black_level, self.df.max_luminance
        codes = self.df.to_code(black + rel * (peak - black))
        progress.post_progress(progress.maximum)
        return ensure_image(codes)

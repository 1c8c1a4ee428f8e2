from typing import Iterator, Optional, Sequence

import numpy as np

from hdrtmo.domain.errors import TonemapError
from hdrtmo.domain.interfaces import IProgress, ITonemapOperator, PipelineContext
from hdrtmo.domain.models import TonemapOperator, TonemapOptions
from hdrtmo.domain.status import TmoStatus
from hdrtmo.domain.types import ImageBuffer
from hdrtmo.features.curve.processor import DisplayAdaptiveProcessor
from hdrtmo.features.curve.temporal import ToneCurveFilter
from hdrtmo.features.density.logic import ConditionalDensity, compute_conditional_density
from hdrtmo.features.display.models import create_display_function, create_display_size
from hdrtmo.features.pattanaik.processor import PattanaikProcessor
from hdrtmo.kernel.caching.logic import calculate_config_hash
from hdrtmo.kernel.caching.manager import DensityCache
from hdrtmo.kernel.image.logic import (
    apply_pregamma,
    calculate_buffer_hash,
    ensure_rgb,
    get_luminance,
    resize_to_width,
)
from hdrtmo.kernel.image.validation import ensure_image
from hdrtmo.kernel.system.config import APP_CONFIG
from hdrtmo.kernel.system.logging import get_logger
from hdrtmo.kernel.system.progress import ProgressRange, ProgressToken

logger = get_logger(__name__)


class TonemapEngine:
    """
    Orchestrates one tone mapping run: preprocessing, operator selection
    and reuse of the image statistics between runs on the same frame.
    """

    def __init__(self, cache: Optional[DensityCache] = None) -> None:
        self.config = APP_CONFIG
        self.cache = cache if cache is not None else DensityCache()

    def _preprocess(self, img: ImageBuffer, options: TonemapOptions) -> ImageBuffer:
        img = ensure_image(ensure_rgb(np.asarray(img)))
        if img.size == 0:
            raise TonemapError("Empty input image")
        if not np.all(np.isfinite(img)):
            raise TonemapError("Input image contains non-finite values")
        img = apply_pregamma(img, options.pregamma)
        if options.xsize is not None:
            img = resize_to_width(img, options.xsize)
        return img

    def _density(
        self,
        img: ImageBuffer,
        options: TonemapOptions,
        context: PipelineContext,
        progress: IProgress,
    ) -> Optional[ConditionalDensity]:
        conf_hash = calculate_config_hash({"pregamma": options.pregamma, "xsize": options.xsize})

        cached = self.cache.get(context.source_hash, conf_hash)
        if cached is not None:
            logger.debug(f"Density cache hit for {context.source_hash[:12]}")
            progress.post_progress(progress.maximum)
            return cached

        h, w = img.shape[:2]
        status, density = compute_conditional_density(w, h, get_luminance(img), progress)
        if status == TmoStatus.ABORTED:
            return None
        if status != TmoStatus.OK or density is None:
            raise TonemapError("Failed to compute image statistics")

        self.cache.put(context.source_hash, conf_hash, density)
        return density

    def process(
        self,
        img: ImageBuffer,
        options: TonemapOptions,
        source_hash: str = "",
        progress: Optional[IProgress] = None,
        temporal_filter: Optional[ToneCurveFilter] = None,
        frame_index: Optional[int] = None,
    ) -> Optional[ImageBuffer]:
        """
        Tone maps one frame into display codes [0, 1].

        Returns None when cancelled. Raises TonemapError (or one of its
        subclasses) for invalid options, input or numeric failure.
        """
        options.validate()
        ph = progress if progress is not None else ProgressToken(self.config.progress_steps)

        h_orig, w_orig = np.shape(img)[:2]
        work = self._preprocess(img, options)
        if ph.is_termination_requested():
            return None

        context = PipelineContext(
            source_hash=source_hash or calculate_buffer_hash(work),
        )
        if frame_index is not None:
            context.metrics["frame_index"] = frame_index

        df = create_display_function(options.display)
        logger.info(
            f"Tone mapping {w_orig}x{h_orig} with {options.operator} on {df!r}"
        )

        processor: ITonemapOperator
        if TonemapOperator(options.operator) == TonemapOperator.PATTANAIK00:
            processor = PattanaikProcessor(options.pattanaik, df)
            return processor.process(work, context, ph)

        density = self._density(work, options, context, ProgressRange(ph, 0, 0.6 * ph.maximum))
        if density is None:
            return None
        context.metrics["density"] = density

        processor = DisplayAdaptiveProcessor(
            options.mantiuk08,
            df,
            create_display_size(options.display),
            temporal_filter=temporal_filter,
        )
        return processor.process(work, context, ph)

    def process_sequence(
        self,
        frames: Sequence[ImageBuffer],
        options: TonemapOptions,
        progress: Optional[IProgress] = None,
    ) -> Iterator[ImageBuffer]:
        """
        Tone maps video frames in order. With temporal filtering enabled
        the tone curves are low-pass filtered across frames.

        Stops early when cancelled.
        """
        ph = progress if progress is not None else ProgressToken(self.config.progress_steps)
        tf = ToneCurveFilter() if options.mantiuk08.temporal else None

        count = len(frames)
        for index, frame in enumerate(frames):
            frame_ph = ProgressRange(
                ph, ph.maximum * index / count, ph.maximum * (index + 1) / count
            )
            out = self.process(
                frame, options, progress=frame_ph, temporal_filter=tf, frame_index=index
            )
            if out is None:
                logger.info(f"Sequence cancelled at frame {index}")
                return
            yield out

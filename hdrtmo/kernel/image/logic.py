import hashlib
from typing import cast

import cv2
import numpy as np

from hdrtmo.domain.types import ImageBuffer, LuminanceMap, LUMA_R, LUMA_G, LUMA_B
from hdrtmo.kernel.image.validation import ensure_image


def ensure_rgb(img: np.ndarray) -> np.ndarray:
    """
    Ensures the input image is a 3-channel RGB array.
    """
    if img.ndim == 2:
        return cast(np.ndarray, np.stack([img] * 3, axis=-1))
    if img.ndim == 3 and img.shape[2] == 1:
        return cast(np.ndarray, np.concatenate([img] * 3, axis=-1))
    if img.ndim == 3 and img.shape[2] > 3:
        return img[..., :3]
    return img


def get_luminance(img: np.ndarray) -> LuminanceMap:
    """
    Relative luminance of linear RGB (sRGB primaries).
    """
    return ensure_image(LUMA_R * img[..., 0] + LUMA_G * img[..., 1] + LUMA_B * img[..., 2])


def apply_pregamma(img: ImageBuffer, gamma: float) -> ImageBuffer:
    """
    Power-law pre-correction of the radiance map, I' = I^(1/gamma).
    Applied to the frame normalised by its maximum so that absolute
    luminance levels survive the correction.
    """
    if gamma == 1.0:
        return img
    peak = float(np.max(img))
    if peak <= 0:
        return img
    res = np.power(np.maximum(img / peak, 0.0), 1.0 / gamma) * peak
    return ensure_image(res)


def resize_to_width(img: ImageBuffer, width: int) -> ImageBuffer:
    """
    Resamples to the given width, keeping the aspect ratio.
    """
    h, w = img.shape[:2]
    if width == w:
        return img
    new_h = max(1, int(round(h * width / float(w))))
    interp = cv2.INTER_AREA if width < w else cv2.INTER_LINEAR
    return ensure_image(cv2.resize(img, (width, new_h), interpolation=interp))


def float_to_uint8(img: np.ndarray) -> np.ndarray:
    """
    Display codes [0, 1] to 8-bit.
    """
    return cast(np.ndarray, np.clip(np.rint(img * 255.0), 0, 255).astype(np.uint8))


def calculate_buffer_hash(img: np.ndarray) -> str:
    """
    Fingerprint of an in-memory frame, used to key the density cache.
    """
    hasher = hashlib.sha256()
    hasher.update(str(img.shape).encode())
    hasher.update(str(img.dtype).encode())
    hasher.update(np.ascontiguousarray(img).tobytes())
    return hasher.hexdigest()

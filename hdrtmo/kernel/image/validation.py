from typing import Any, TypeVar, cast

import numpy as np

from hdrtmo.domain.types import ImageBuffer

T = TypeVar("T")

_TRUE_WORDS = ("1", "true", "yes", "on")


def ensure_image(arr: Any) -> ImageBuffer:
    """
    Returns `arr` as a float32 array, converting only when needed.
    """
    if not isinstance(arr, np.ndarray):
        raise TypeError(f"Expected numpy.ndarray, got {type(arr)}")
    if arr.dtype != np.float32:
        arr = arr.astype(np.float32)
    return cast(ImageBuffer, arr)


def coerce_setting(val: Any, default: T) -> T:
    """
    Converts a host setting to the type of its default. Host dialogs and
    command lines hand over strings; anything unparsable keeps the default.
    """
    if val is None:
        return default
    if isinstance(default, bool):
        if isinstance(val, str):
            return cast(T, val.strip().lower() in _TRUE_WORDS)
        return cast(T, bool(val))
    if isinstance(default, (int, float)):
        try:
            num = float(val)
            return cast(T, int(num) if isinstance(default, int) else num)
        except (TypeError, ValueError):
            return default
    return cast(T, val)

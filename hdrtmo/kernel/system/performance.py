import csv
import functools
import os
import threading
import time
from typing import Callable, Optional, Tuple, TypeVar

import numpy as np
from typing_extensions import ParamSpec

from hdrtmo.kernel.system.config import APP_CONFIG
from hdrtmo.kernel.system.logging import get_logger

logger = get_logger("perf")

P = ParamSpec("P")
R = TypeVar("R")

_CSV_HEADER = ["timestamp", "stage", "duration_ms", "pixels"]
_csv_lock = threading.Lock()


def get_perf_log_path() -> str:
    return os.path.join(APP_CONFIG.cache_dir, "perf_stats.csv")


def log_to_csv(stage: str, duration_ms: float, pixels: Optional[int]) -> None:
    """
    Appends one timing row. Concurrent jobs share the file, so rows are
    written under a lock. I/O failures are logged and dropped.
    """
    path = get_perf_log_path()
    row = [time.strftime("%Y-%m-%d %H:%M:%S"), stage, f"{duration_ms:.3f}", pixels or ""]
    try:
        with _csv_lock:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            is_new = not os.path.exists(path)
            with open(path, "a", newline="") as f:
                writer = csv.writer(f)
                if is_new:
                    writer.writerow(_CSV_HEADER)
                writer.writerow(row)
    except OSError as e:
        logger.error(f"Failed to log perf stats: {e}")


def _frame_size(args: Tuple[object, ...]) -> Optional[int]:
    # Stages take the frame (or a plane of it) positionally
    for arg in args:
        if isinstance(arg, np.ndarray) and arg.ndim >= 2:
            return int(arg.shape[0] * arg.shape[1])
    return None


def time_function(func: Callable[P, R]) -> Callable[P, R]:
    """
    Logs the wall time of a pipeline stage, with the pixel count of the
    frame it worked on.
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        result = func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000

        pixels = _frame_size(args)
        logger.info(f"PERF: {func.__name__} took {duration_ms:.3f}ms ({pixels or '?'} px)")
        if APP_CONFIG.log_perf_csv:
            log_to_csv(func.__name__, duration_ms, pixels)
        return result

    return wrapper

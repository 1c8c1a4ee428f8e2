import numpy as np
from PyQt6.QtGui import QImage

from hdrtmo.kernel.image.logic import float_to_uint8


class ImageConverter:
    """
    Turns display code buffers into Qt images.
    """

    @staticmethod
    def to_qimage(codes: np.ndarray) -> QImage:
        """
        Float codes in [0, 1] (or uint8) RGB to a QImage that owns its
        pixels. RGBX rows are 4-byte aligned for any width.
        """
        u8 = codes if codes.dtype == np.uint8 else float_to_uint8(codes)
        h, w = u8.shape[:2]

        rgbx = np.full((h, w, 4), 255, dtype=np.uint8)
        rgbx[..., :3] = u8[..., :3]

        qimg = QImage(rgbx.data, w, h, w * 4, QImage.Format.Format_RGBX8888)
        return qimg.copy()

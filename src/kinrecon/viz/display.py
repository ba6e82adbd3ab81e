from __future__ import annotations

import cv2
import numpy as np


class CvDisplay:
    """2D display window plus keyboard polling (OpenCV highgui)."""

    def __init__(self, window_name: str = "render"):
        self.window_name = window_name

    def show(self, image: np.ndarray) -> None:
        cv2.imshow(self.window_name, image)

    def poll_key(self, timeout_ms: int = 1) -> str | None:
        c = cv2.waitKey(int(timeout_ms))
        if c < 0:
            return None
        c &= 0xFF
        return chr(c) if c else None

    def close(self) -> None:
        cv2.destroyAllWindows()

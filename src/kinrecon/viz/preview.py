from __future__ import annotations

import cv2
import numpy as np

COMMAND_HINT = "press R to reset, P to pause, Q to quit"

_COLORMAPS = {
    "parula": cv2.COLORMAP_PARULA,
    "jet": cv2.COLORMAP_JET,
    "turbo": cv2.COLORMAP_TURBO,
}


def mirror(depth: np.ndarray) -> np.ndarray:
    # sensor images are mirrored relative to the world view
    return cv2.flip(depth, 1)


def tone_map(depth: np.ndarray, max_depth: float = 3000.0) -> np.ndarray:
    """Linear scale of raw depth units to uint8, saturating at max_depth."""
    return cv2.convertScaleAbs(depth, alpha=255.0 / float(max_depth))


def pseudo_color(gray_u8: np.ndarray, colormap: str = "parula") -> np.ndarray:
    cmap = _COLORMAPS.get(colormap.lower())
    if cmap is None:
        raise ValueError(f"Unknown colormap: {colormap}")
    return cv2.applyColorMap(gray_u8, cmap)


def measure_fps(tick_frequency: float, prev_tick: int, cur_tick: int) -> float:
    dt = cur_tick - prev_tick
    if dt <= 0:
        return 0.0
    return float(tick_frequency) / float(dt)


def draw_status(image: np.ndarray, fps: float) -> np.ndarray:
    text = "FPS: %2d %s" % (int(fps), COMMAND_HINT)
    cv2.putText(
        image,
        text,
        (0, image.shape[0] - 1),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        (0, 255, 255),
    )
    return image

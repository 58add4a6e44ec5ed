# src/labelkit/annotation/auto_resize.py

"""
Smart auto-resize: refine a box's four edges onto nearby image edges.

The raster is reduced to a blurred intensity image, a Sobel gradient
magnitude is computed, and each side of the box is moved independently to
the strongest edge inside a search window around it. Sides without a
confident edge stay where they are.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Box = Tuple[float, float, float, float]


@dataclass(frozen=True)
class AutoResizeSettings:
    blur_sigma: float = 1.5
    search_fraction: float = 0.3   # of box width (left/right) or height (top/bottom)
    min_search: float = 5.0
    candidate_steps: float = 30.0
    perpendicular_samples: float = 20.0
    confidence_floor: float = 10.0
    min_result_size: float = 10.0

    @classmethod
    def from_config(cls, config) -> "AutoResizeSettings":
        if config is None:
            return cls()
        defaults = cls()
        return cls(
            blur_sigma=config.get_float("auto_resize.blur_sigma", defaults.blur_sigma),
            search_fraction=config.get_float("auto_resize.search_fraction", defaults.search_fraction),
            min_search=config.get_float("auto_resize.min_search", defaults.min_search),
            candidate_steps=config.get_float("auto_resize.candidate_steps", defaults.candidate_steps),
            perpendicular_samples=config.get_float("auto_resize.perpendicular_samples", defaults.perpendicular_samples),
            confidence_floor=config.get_float("auto_resize.confidence_floor", defaults.confidence_floor),
            min_result_size=config.get_float("auto_resize.min_result_size", defaults.min_result_size),
        )


DEFAULT_SETTINGS = AutoResizeSettings()


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Single-channel uint8 intensity image from gray, BGR or BGRA input."""
    if image.ndim == 2:
        gray = image
    elif image.shape[2] == 4:
        gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.shape[2] == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    else:
        gray = image[:, :, 0]
    if gray.dtype != np.uint8:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return gray


def gradient_magnitude(gray: np.ndarray, blur_sigma: float = DEFAULT_SETTINGS.blur_sigma) -> np.ndarray:
    """
    Sobel gradient magnitude of the blurred image as float32.

    Only interior pixels carry a value; the one-pixel border is zero.
    """
    blurred = cv2.GaussianBlur(gray, (0, 0), sigmaX=blur_sigma, sigmaY=blur_sigma)
    gx = cv2.Sobel(blurred, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(blurred, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)
    magnitude[0, :] = 0.0
    magnitude[-1, :] = 0.0
    magnitude[:, 0] = 0.0
    magnitude[:, -1] = 0.0
    return magnitude


def _best_edge(gradient: np.ndarray, center: float, lo: float, hi: float,
               span_start: float, span_end: float, axis_limit: float, span_limit: float,
               vertical: bool, settings: AutoResizeSettings) -> float:
    """
    Strongest edge position in [lo, hi] along the moving axis.

    For vertical edges the moving axis is x and the average runs down the
    column between span_start and span_end; for horizontal edges the roles
    swap. Returns `center` when the window is empty or no candidate
    reaches the confidence floor.
    """
    lo = min(max(lo, 0.0), axis_limit - 1.0)
    hi = min(max(hi, 0.0), axis_limit - 1.0)
    span_start = min(max(span_start, 0.0), span_limit - 1.0)
    span_end = min(max(span_end, 0.0), span_limit - 1.0)

    if lo >= hi or span_start >= span_end:
        return center

    grad_h, grad_w = gradient.shape[:2]
    step = max((hi - lo) / settings.candidate_steps, 1.0)
    span_step = max((span_end - span_start) / settings.perpendicular_samples, 1.0)

    best_pos = center
    best_score = 0.0
    pos = lo
    while pos <= hi:
        ipos = int(pos)
        total = 0.0
        count = 0
        s = span_start
        while s <= span_end:
            ispan = int(s)
            if vertical:
                if ipos < grad_w and ispan < grad_h:
                    total += float(gradient[ispan, ipos])
                    count += 1
            elif ispan < grad_w and ipos < grad_h:
                total += float(gradient[ipos, ispan])
                count += 1
            s += span_step
        score = total / count if count else 0.0
        if score > best_score:
            best_score = score
            best_pos = pos
        pos += step

    if best_score < settings.confidence_floor:
        return center
    return best_pos


def smart_auto_resize(image: np.ndarray, bbox: Box, image_size: Optional[Tuple[float, float]] = None,
                      settings: AutoResizeSettings = DEFAULT_SETTINGS) -> Box:
    """
    Refine `bbox` (x, y, width, height in pixels) against the edges of `image`.

    Returns the original box unchanged when the refined box would be
    smaller than `min_result_size` in either dimension; otherwise the
    refined box clamped to the image bounds.
    """
    x, y, width, height = (float(v) for v in bbox)
    if image_size is None:
        img_w, img_h = float(image.shape[1]), float(image.shape[0])
    else:
        img_w, img_h = (float(v) for v in image_size)

    gradient = gradient_magnitude(to_grayscale(image), settings.blur_sigma)

    search_w = max(width * settings.search_fraction, settings.min_search)
    search_h = max(height * settings.search_fraction, settings.min_search)

    left = _best_edge(gradient, x, x - search_w, x + search_w,
                      y, y + height, img_w, img_h, True, settings)
    right = _best_edge(gradient, x + width, x + width - search_w, x + width + search_w,
                       y, y + height, img_w, img_h, True, settings)
    top = _best_edge(gradient, y, y - search_h, y + search_h,
                     x, x + width, img_h, img_w, False, settings)
    bottom = _best_edge(gradient, y + height, y + height - search_h, y + height + search_h,
                        x, x + width, img_h, img_w, False, settings)

    new_w = right - left
    new_h = bottom - top
    if new_w < settings.min_result_size or new_h < settings.min_result_size:
        logger.debug(f"Auto-resize result {new_w:.1f}x{new_h:.1f} too small, keeping {bbox}")
        return (x, y, width, height)

    final_x = min(max(left, 0.0), img_w)
    final_y = min(max(top, 0.0), img_h)
    final_w = max(min(left + new_w, img_w) - final_x, 0.0)
    final_h = max(min(top + new_h, img_h) - final_y, 0.0)
    logger.debug(f"Auto-resize {bbox} -> {(final_x, final_y, final_w, final_h)}")
    return (final_x, final_y, final_w, final_h)


def auto_resize_from_path(image_path: Union[str, Path], bbox: Box,
                          image_size: Optional[Tuple[float, float]] = None,
                          settings: AutoResizeSettings = DEFAULT_SETTINGS) -> Optional[Box]:
    """Decode the image and refine; None signals that the image could not be processed."""
    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        logger.error(f"Auto-resize: failed to decode image {image_path}")
        return None
    return smart_auto_resize(image, bbox, image_size, settings)

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from color_ranges import ColorRange, color_mask, range_with_tolerance, text_range, to_hsv
from config import (
    ACCENT_TOLERANCE,
    BACKGROUND_TOLERANCE,
    MENU_DARK_RGB,
    MENU_LIGHT_RGB,
    MIN_MENU_AREA_FRACTION,
)
from utils import log, verbose_log

# Pixel-space box as returned by cv2.boundingRect: (x, y, w, h)
Rect = Tuple[int, int, int, int]


class CalibrationError(ValueError):
    """Raised when the reference image holds no usable menu region."""


@dataclass(frozen=True)
class SpatialTemplate:
    """
    Menu bounding box normalized to the reference image size, so it can be
    projected onto frames of any resolution.
    """
    x: float
    y: float
    w: float
    h: float
    aspect_ratio: float


@dataclass(frozen=True)
class VisionProfile:
    background: ColorRange
    accent: ColorRange
    text: ColorRange
    spatial: SpatialTemplate


@dataclass(frozen=True)
class Blob:
    """External contour of a binary mask."""
    area: float
    rect: Rect


def find_color_blobs(hsv: np.ndarray, color_range: ColorRange) -> List[Blob]:
    """
    Thresholds `hsv` with `color_range` and returns the external contours of
    the mask, largest area first. Ties keep discovery order.
    """
    mask = color_mask(hsv, color_range)
    # [-2] picks the contour list on both the OpenCV 3 and 4 return shapes
    contours = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)[-2]
    blobs = [Blob(area=cv2.contourArea(c), rect=tuple(cv2.boundingRect(c))) for c in contours]
    return sorted(blobs, key=lambda b: b.area, reverse=True)


def find_menu_box(
    image: np.ndarray,
    background: ColorRange,
    min_area_fraction: float = MIN_MENU_AREA_FRACTION,
) -> Rect:
    """
    Returns the bounding box of the largest background-colored region.
    Raises CalibrationError if no region covers more than
    `min_area_fraction` of the image.
    """
    try:
        hsv = to_hsv(image)
    except ValueError as e:
        raise CalibrationError(f"Unusable reference image: {e}") from e

    height, width = hsv.shape[:2]
    total_pixels = width * height
    threshold = total_pixels * min_area_fraction

    blobs = find_color_blobs(hsv, background)
    best: Optional[Blob] = blobs[0] if blobs else None
    max_area = best.area if best else 0.0

    if best is None or max_area <= threshold:
        log(f"❌ Calibration failed. Max area: {max_area:.0f} (threshold: {threshold:.0f})")
        raise CalibrationError("no menu detected")

    x, y, w, h = best.rect
    verbose_log(f"Detected menu box: x={x}, y={y}, w={w}, h={h} (area {max_area:.0f})")
    return best.rect


def calibrate(
    image: np.ndarray,
    background_rgb: Sequence[int] = MENU_DARK_RGB,
    accent_rgb: Sequence[int] = MENU_LIGHT_RGB,
    background_tolerance: Sequence[float] = BACKGROUND_TOLERANCE,
    accent_tolerance: Sequence[float] = ACCENT_TOLERANCE,
    min_area_fraction: float = MIN_MENU_AREA_FRACTION,
) -> VisionProfile:
    """
    Analyzes a reference screenshot (BGR, as loaded by cv2.imread) and
    builds the VisionProfile used to scan every frame of the session.

    1. Threshold the image with the wide-tolerance background range.
    2. Take the largest external contour; it must cover more than 1% of
       the image or CalibrationError is raised.
    3. Normalize its bounding box by the image size.
    4. Package it with the background, accent and text color ranges.
    """
    background = range_with_tolerance(background_rgb, background_tolerance)
    accent = range_with_tolerance(accent_rgb, accent_tolerance)
    text = text_range()

    if isinstance(image, np.ndarray) and image.ndim >= 2:
        verbose_log(f"Reference resolution: {image.shape[1]}x{image.shape[0]}")

    x, y, w, h = find_menu_box(image, background, min_area_fraction)
    img_h, img_w = image.shape[:2]

    spatial = SpatialTemplate(
        x=x / img_w,
        y=y / img_h,
        w=w / img_w,
        h=h / img_h,
        aspect_ratio=w / h,
    )
    verbose_log(
        f"Normalized profile: x={spatial.x:.4f}, y={spatial.y:.4f}, "
        f"w={spatial.w:.4f}, h={spatial.h:.4f}, aspect={spatial.aspect_ratio:.3f}"
    )
    return VisionProfile(background=background, accent=accent, text=text, spatial=spatial)


def calibrate_from_file(path: Path, **kwargs) -> VisionProfile:
    """
    Loads a reference screenshot from disk and calibrates on it.
    """
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise CalibrationError(f"Could not read reference image: {path}")
    verbose_log(f"Calibrating on reference image: {path}")
    return calibrate(image, **kwargs)

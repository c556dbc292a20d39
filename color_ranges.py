from dataclasses import dataclass
from typing import Sequence, Tuple

import cv2
import numpy as np

from config import DEFAULT_TOLERANCE, TEXT_HSV_LOWER, TEXT_HSV_UPPER

# OpenCV 8-bit HSV channel domains
HUE_MAX = 180
SAT_MAX = 255
VAL_MAX = 255
HSV_MAX = (HUE_MAX, SAT_MAX, VAL_MAX)

HSV = Tuple[float, float, float]


@dataclass(frozen=True)
class ColorRange:
    """
    Inclusive HSV window on the OpenCV scale (H 0-180, S/V 0-255).
    """
    lower: HSV
    upper: HSV

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns (lower, upper) as uint8 arrays ready for cv2.inRange.
        """
        lower = np.array(np.rint(self.lower), dtype=np.uint8)
        upper = np.array(np.rint(self.upper), dtype=np.uint8)
        return lower, upper

    def contains(self, hsv: Sequence[float]) -> bool:
        return all(lo <= c <= hi for lo, c, hi in zip(self.lower, hsv, self.upper))


def rgb_to_hsv(rgb: Sequence[int]) -> HSV:
    """
    Converts an 8-bit RGB triple to OpenCV-style HSV.
    Hue is computed in degrees [0, 360) then halved to [0, 180).
    """
    r, g, b = (c / 255.0 for c in rgb)
    high = max(r, g, b)
    low = min(r, g, b)
    delta = high - low

    if delta == 0:
        h = 0.0
    elif high == r:
        h = 60.0 * (((g - b) / delta) % 6)
    elif high == g:
        h = 60.0 * (((b - r) / delta) + 2)
    else:
        h = 60.0 * (((r - g) / delta) + 4)
    if h < 0:
        h += 360.0

    s = 0.0 if high == 0 else delta / high
    return (h / 2.0, s * SAT_MAX, high * VAL_MAX)


def range_from_color(
    rgb: Sequence[int],
    tolerance_h: float = DEFAULT_TOLERANCE[0],
    tolerance_s: float = DEFAULT_TOLERANCE[1],
    tolerance_v: float = DEFAULT_TOLERANCE[2],
) -> ColorRange:
    """
    Widens the HSV value of `rgb` by the per-channel tolerance and clamps
    each bound to its channel domain.
    """
    if len(rgb) != 3:
        raise ValueError(f"Expected an (R, G, B) triple, got {rgb!r}")
    tolerances = (tolerance_h, tolerance_s, tolerance_v)
    if any(t < 0 for t in tolerances):
        raise ValueError(f"Tolerances must be non-negative, got {tolerances}")

    center = rgb_to_hsv(rgb)
    lower = tuple(max(0.0, c - t) for c, t in zip(center, tolerances))
    upper = tuple(min(float(m), c + t) for c, t, m in zip(center, tolerances, HSV_MAX))
    return ColorRange(lower=lower, upper=upper)


def range_with_tolerance(rgb: Sequence[int], tolerance: Sequence[float]) -> ColorRange:
    h, s, v = tolerance
    return range_from_color(rgb, h, s, v)


def text_range(lower: HSV = TEXT_HSV_LOWER, upper: HSV = TEXT_HSV_UPPER) -> ColorRange:
    """
    Near-white text: any hue, low saturation, high value.
    """
    return ColorRange(lower=tuple(float(c) for c in lower), upper=tuple(float(c) for c in upper))


def to_hsv(image: np.ndarray) -> np.ndarray:
    """
    Converts a BGR or BGRA uint8 image (OpenCV channel order) to HSV.
    Raises ValueError for anything else.
    """
    if not isinstance(image, np.ndarray):
        raise ValueError(f"Expected a numpy image, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError(f"Expected an HxWxC image, got shape {image.shape}")
    if image.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {image.dtype}")
    channels = image.shape[2]
    if channels == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    elif channels != 3:
        raise ValueError(f"Unsupported channel count: {channels}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2HSV)


def color_mask(hsv: np.ndarray, color_range: ColorRange) -> np.ndarray:
    lower, upper = color_range.bounds()
    return cv2.inRange(hsv, lower, upper)


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """
    Parses '#rrggbb' (or 'rrggbb') into an (R, G, B) tuple.
    """
    text = value.strip().lstrip("#")
    if len(text) != 6:
        raise ValueError(f"Invalid hex color: {value!r}")
    try:
        return tuple(int(text[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise ValueError(f"Invalid hex color: {value!r}") from None

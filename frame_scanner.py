from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from calibration import Rect, VisionProfile, find_color_blobs
from color_ranges import color_mask, to_hsv
from config import IOU_THRESHOLD, TRIAD_MIN_RATIO
from utils import format_timestamp, verbose_log


class FrameScanError(RuntimeError):
    """A single frame could not be analyzed (bad shape, dtype or channels)."""


@dataclass(frozen=True)
class Frame:
    """
    One decoded frame. `image` is BGR uint8 and belongs to the frame source;
    the scanner only reads it.
    """
    image: np.ndarray
    timestamp: float
    index: int = 0


@dataclass(frozen=True)
class DetectionEvent:
    timestamp: float
    hit: bool
    confidence: float = 0.0


def project_box(profile: VisionProfile, width: int, height: int) -> Rect:
    """
    Projects the normalized template onto a frame of the given size.
    """
    s = profile.spatial
    return (
        int(np.floor(s.x * width)),
        int(np.floor(s.y * height)),
        int(np.floor(s.w * width)),
        int(np.floor(s.h * height)),
    )


def iou(a: Rect, b: Rect) -> float:
    """
    Intersection over Union of two (x, y, w, h) boxes. 0.0 when they do not
    overlap or the union is empty.
    """
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    inter_w = min(ax + aw, bx + bw) - max(ax, bx)
    inter_h = min(ay + ah, by + bh) - max(ay, by)
    if inter_w <= 0 or inter_h <= 0:
        return 0.0
    inter = inter_w * inter_h
    union = aw * ah + bw * bh - inter
    return inter / union if union > 0 else 0.0


def triad_ratios(hsv: np.ndarray, rect: Rect, profile: VisionProfile) -> Tuple[float, float]:
    """
    Returns (light_ratio, white_ratio): the share of pixels inside `rect`
    matching the accent and text ranges.
    """
    x, y, w, h = rect
    area = w * h
    if area <= 0:
        return 0.0, 0.0
    roi = hsv[y:y + h, x:x + w]
    light = cv2.countNonZero(color_mask(roi, profile.accent)) / area
    white = cv2.countNonZero(color_mask(roi, profile.text)) / area
    return light, white


def detect_overlay(
    image: np.ndarray,
    profile: VisionProfile,
    debug: bool = False,
    iou_threshold: float = IOU_THRESHOLD,
    min_ratio: float = TRIAD_MIN_RATIO,
) -> Tuple[bool, float]:
    """
    Tests one frame against the profile. Returns (detected, confidence).

    Candidates are background-colored blobs, largest first. A candidate must
    overlap the projected template with IoU >= `iou_threshold` (spatial lock)
    and contain more than `min_ratio` accent pixels and text pixels (triad
    check). The first candidate passing both wins; confidence is its text
    ratio.

    Raises FrameScanError for frames that cannot be converted to HSV.
    """
    try:
        hsv = to_hsv(image)
    except ValueError as e:
        raise FrameScanError(str(e)) from e

    height, width = hsv.shape[:2]
    expected = project_box(profile, width, height)

    for blob in find_color_blobs(hsv, profile.background):
        score = iou(blob.rect, expected)
        if score < iou_threshold:
            continue
        if debug:
            verbose_log(f"[scan] Spatial match, IoU {score:.2f} at ({blob.rect[0]}, {blob.rect[1]})")

        light, white = triad_ratios(hsv, blob.rect, profile)
        if debug:
            verbose_log(f"[scan] Triad density: light {light * 100:.2f}%, white {white * 100:.2f}%")
        if light > min_ratio and white > min_ratio:
            return True, min(1.0, white)

    return False, 0.0


def scan_frame(frame: Frame, profile: VisionProfile, debug: bool = False) -> DetectionEvent:
    """
    Scans one frame and never raises for per-frame faults: a frame that
    cannot be analyzed is logged and reported as a miss.
    """
    try:
        hit, confidence = detect_overlay(frame.image, profile, debug=debug)
    except Exception as e:
        verbose_log(f"⚠️ Frame {frame.index} at {format_timestamp(frame.timestamp)} skipped: {e}")
        return DetectionEvent(timestamp=frame.timestamp, hit=False, confidence=0.0)
    return DetectionEvent(timestamp=frame.timestamp, hit=hit, confidence=confidence)

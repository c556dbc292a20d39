import math
from dataclasses import dataclass, field
from typing import Iterable, List

from config import CLUSTER_TOLERANCE, MIN_KEEP_SEGMENT
from frame_scanner import DetectionEvent
from utils import verbose_log


@dataclass(frozen=True)
class DetectionRange:
    """Contiguous period (seconds) the menu was judged on screen."""
    start: float
    end: float
    confidence: float = 1.0

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Detection range starts after it ends: {self.start} > {self.end}")


@dataclass(frozen=True)
class KeepRange:
    """Clean footage (seconds) to retain in the output."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Timeline:
    duration: float
    detections: List[DetectionRange] = field(default_factory=list)
    keep_ranges: List[KeepRange] = field(default_factory=list)


def _check_finite(value: float, name: str) -> None:
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{name} must be finite, got {value}")


def cluster_timestamps(
    timestamps: Iterable[float],
    tolerance: float = CLUSTER_TOLERANCE,
) -> List[DetectionRange]:
    """
    Groups hit timestamps into continuous ranges. Timestamps are sorted
    first; a gap larger than `tolerance` between neighbours closes the
    current range.
    """
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")
    ordered = sorted(timestamps)
    for t in ordered:
        _check_finite(t, "timestamp")
    if not ordered:
        return []

    ranges = []
    start = prev = ordered[0]
    for curr in ordered[1:]:
        if curr - prev > tolerance:
            ranges.append(DetectionRange(start, prev, 1.0))
            start = curr
        prev = curr
    ranges.append(DetectionRange(start, prev, 1.0))
    return ranges


def invert_ranges(
    detections: Iterable[DetectionRange],
    duration: float,
    min_segment: float = MIN_KEEP_SEGMENT,
) -> List[KeepRange]:
    """
    Returns the parts of [0, duration] not covered by `detections`.
    A gap is kept only if it is longer than `min_segment`; a detection
    starting exactly `min_segment` after the cursor emits nothing.
    """
    _check_finite(duration, "duration")
    if duration < 0:
        raise ValueError(f"duration must be non-negative, got {duration}")
    if min_segment < 0:
        raise ValueError(f"min_segment must be non-negative, got {min_segment}")

    ordered = sorted(detections, key=lambda d: d.start)
    if not ordered:
        return [KeepRange(0.0, duration)] if duration > 0 else []

    keep = []
    cursor = 0.0
    for det in ordered:
        start = min(det.start, duration)
        if start > cursor + min_segment:
            keep.append(KeepRange(cursor, start))
        cursor = max(cursor, min(det.end, duration))

    if cursor < duration - min_segment:
        keep.append(KeepRange(cursor, duration))
    return keep


def build_timeline(
    events: Iterable[DetectionEvent],
    duration: float,
    tolerance: float = CLUSTER_TOLERANCE,
    min_segment: float = MIN_KEEP_SEGMENT,
) -> Timeline:
    """
    Clusters the hit events and inverts them against the full duration.
    """
    hits = [e.timestamp for e in events if e.hit]
    detections = cluster_timestamps(hits, tolerance)
    keep = invert_ranges(detections, duration, min_segment)
    verbose_log(
        f"Timeline: {len(hits)} hit frames -> {len(detections)} menu ranges, "
        f"{len(keep)} keep ranges ({total_kept(keep):.2f}s of {duration:.2f}s)"
    )
    return Timeline(duration=duration, detections=detections, keep_ranges=keep)


def segment_timeline(
    events: Iterable[DetectionEvent],
    duration: float,
    tolerance: float = CLUSTER_TOLERANCE,
    min_segment: float = MIN_KEEP_SEGMENT,
) -> List[KeepRange]:
    return build_timeline(events, duration, tolerance, min_segment).keep_ranges


def total_kept(ranges: Iterable[KeepRange]) -> float:
    return sum(r.duration for r in ranges)

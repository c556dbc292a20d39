from __future__ import annotations

import math

import pytest

from frame_scanner import DetectionEvent
from timeline import (
    DetectionRange,
    KeepRange,
    build_timeline,
    cluster_timestamps,
    invert_ranges,
    segment_timeline,
    total_kept,
)


def test_cluster_empty() -> None:
    assert cluster_timestamps([]) == []


def test_cluster_single_timestamp() -> None:
    assert cluster_timestamps([4.2]) == [DetectionRange(4.2, 4.2, 1.0)]


def test_cluster_splits_on_gap() -> None:
    ranges = cluster_timestamps([1.0, 1.3, 1.6, 5.0], tolerance=0.5)
    assert ranges == [DetectionRange(1.0, 1.6, 1.0), DetectionRange(5.0, 5.0, 1.0)]


def test_cluster_sorts_input_and_keeps_duplicates() -> None:
    ranges = cluster_timestamps([5.0, 1.3, 1.0, 1.3, 1.6])
    assert ranges == [DetectionRange(1.0, 1.6), DetectionRange(5.0, 5.0)]


def test_cluster_gap_equal_to_tolerance_merges() -> None:
    assert cluster_timestamps([1.0, 1.5], tolerance=0.5) == [DetectionRange(1.0, 1.5)]


def test_cluster_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        cluster_timestamps([1.0], tolerance=-0.1)
    with pytest.raises(ValueError):
        cluster_timestamps([1.0, math.nan])


def test_detection_range_rejects_reversed_bounds() -> None:
    with pytest.raises(ValueError):
        DetectionRange(3.0, 2.0)


def test_invert_without_detections_keeps_everything() -> None:
    assert invert_ranges([], duration=10) == [KeepRange(0.0, 10)]


def test_invert_zero_duration() -> None:
    assert invert_ranges([], duration=0) == []


def test_invert_single_detection() -> None:
    keep = invert_ranges([DetectionRange(2, 4, 1.0)], duration=10, min_segment=0.1)
    assert keep == [KeepRange(0.0, 2), KeepRange(4, 10)]


def test_invert_drops_leading_sliver() -> None:
    keep = invert_ranges([DetectionRange(0, 0.05, 1.0)], duration=10)
    assert keep == [KeepRange(0.05, 10)]


def test_invert_start_exactly_min_segment_after_cursor_is_not_emitted() -> None:
    keep = invert_ranges([DetectionRange(0.5, 3.0)], duration=10, min_segment=0.5)
    assert keep == [KeepRange(3.0, 10)]


def test_invert_drops_trailing_sliver() -> None:
    keep = invert_ranges([DetectionRange(2, 9.95)], duration=10)
    assert keep == [KeepRange(0.0, 2)]


def test_invert_detection_covering_everything() -> None:
    assert invert_ranges([DetectionRange(0, 10)], duration=10) == []


def test_invert_sorts_and_merges_overlapping_detections() -> None:
    detections = [DetectionRange(6, 7), DetectionRange(1, 3), DetectionRange(2, 4)]
    keep = invert_ranges(detections, duration=10)
    assert keep == [KeepRange(0.0, 1), KeepRange(4, 6), KeepRange(7, 10)]


def test_invert_clamps_detections_past_duration() -> None:
    keep = invert_ranges([DetectionRange(2, 4), DetectionRange(12, 13)], duration=10)
    assert keep == [KeepRange(0.0, 2), KeepRange(4, 10)]


def test_invert_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        invert_ranges([], duration=-1)
    with pytest.raises(ValueError):
        invert_ranges([], duration=10, min_segment=-0.1)
    with pytest.raises(ValueError):
        invert_ranges([], duration=math.inf)


@pytest.mark.parametrize(
    "detections",
    [
        [DetectionRange(0.0, 1.0)],
        [DetectionRange(0.5, 1.0), DetectionRange(1.05, 2.0), DetectionRange(8.0, 9.97)],
        [DetectionRange(3.0, 3.0), DetectionRange(3.08, 4.0), DetectionRange(9.0, 10.0)],
    ],
)
def test_keep_and_detections_cover_timeline(detections) -> None:
    duration = 10.0
    min_segment = 0.1
    keep = invert_ranges(detections, duration, min_segment)

    assert all(k.end - k.start > 0 for k in keep)
    assert all(a.end <= b.start for a, b in zip(keep, keep[1:]))

    spans = sorted([(k.start, k.end) for k in keep] + [(d.start, d.end) for d in detections])
    cursor = 0.0
    for start, end in spans:
        assert start - cursor < min_segment + 1e-9
        cursor = max(cursor, end)
    assert duration - cursor < min_segment + 1e-9


def test_build_timeline_uses_only_hits() -> None:
    events = [
        DetectionEvent(0.0, False),
        DetectionEvent(2.0, True, 0.4),
        DetectionEvent(2.4, True, 0.3),
        DetectionEvent(2.8, True, 0.5),
        DetectionEvent(5.0, False),
    ]
    timeline = build_timeline(events, duration=6.0)

    assert timeline.detections == [DetectionRange(2.0, 2.8, 1.0)]
    assert timeline.keep_ranges == [KeepRange(0.0, 2.0), KeepRange(2.8, 6.0)]
    assert segment_timeline(events, duration=6.0) == timeline.keep_ranges


def test_total_kept() -> None:
    assert total_kept([KeepRange(0.0, 2.0), KeepRange(4.0, 10.0)]) == pytest.approx(8.0)

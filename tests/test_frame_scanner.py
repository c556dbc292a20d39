from __future__ import annotations

import cv2
import numpy as np
import pytest

import frame_scanner
from calibration import VisionProfile
from conftest import REF_BOX, blank, draw_menu
from frame_scanner import (
    DetectionEvent,
    Frame,
    FrameScanError,
    detect_overlay,
    iou,
    project_box,
    scan_frame,
)


def test_iou_identical_boxes() -> None:
    assert iou((10, 20, 30, 40), (10, 20, 30, 40)) == pytest.approx(1.0)


def test_iou_disjoint_and_touching_boxes() -> None:
    assert iou((0, 0, 10, 10), (20, 20, 5, 5)) == 0.0
    assert iou((0, 0, 10, 10), (10, 0, 10, 10)) == 0.0


def test_iou_partial_overlap_is_symmetric() -> None:
    a = (0, 0, 10, 10)
    b = (5, 0, 10, 10)
    assert iou(a, b) == pytest.approx(1 / 3)
    assert iou(b, a) == pytest.approx(iou(a, b))


def test_iou_degenerate_box() -> None:
    assert iou((0, 0, 0, 0), (0, 0, 0, 0)) == 0.0


def test_project_box_scales_to_frame(profile: VisionProfile) -> None:
    x, y, w, h = project_box(profile, 1280, 720)
    assert (x, w) == (200, 400)
    assert abs(y - 100) <= 1
    assert abs(h - 400) <= 1


def test_detects_reference_at_same_resolution(reference_image: np.ndarray, profile: VisionProfile) -> None:
    hit, confidence = detect_overlay(reference_image, profile)
    assert hit
    assert 0.01 < confidence <= 1.0


def test_detects_reference_projected_to_larger_frame(reference_image: np.ndarray, profile: VisionProfile) -> None:
    frame = cv2.resize(reference_image, (1280, 720), interpolation=cv2.INTER_NEAREST)
    hit, _ = detect_overlay(frame, profile)
    assert hit


def test_detects_reference_projected_to_smaller_frame(reference_image: np.ndarray, profile: VisionProfile) -> None:
    frame = cv2.resize(reference_image, (320, 180), interpolation=cv2.INTER_NEAREST)
    hit, _ = detect_overlay(frame, profile)
    assert hit


def test_detects_bgra_frame(reference_image: np.ndarray, profile: VisionProfile) -> None:
    frame = cv2.cvtColor(reference_image, cv2.COLOR_BGR2BGRA)
    assert detect_overlay(frame, profile)[0]


def test_plain_panel_fails_triad_check(profile: VisionProfile) -> None:
    frame = draw_menu(blank(640, 360), *REF_BOX, content=False)
    assert detect_overlay(frame, profile) == (False, 0.0)


def test_menu_in_wrong_place_fails_spatial_lock(profile: VisionProfile) -> None:
    frame = draw_menu(blank(640, 360), 400, 140, 200, 200)
    assert detect_overlay(frame, profile) == (False, 0.0)


def test_empty_frame_is_a_miss(profile: VisionProfile) -> None:
    assert detect_overlay(blank(640, 360), profile) == (False, 0.0)


def test_real_menu_found_next_to_plain_decoy(profile: VisionProfile) -> None:
    frame = draw_menu(blank(640, 360), *REF_BOX)
    draw_menu(frame, 420, 60, 150, 150, content=False)
    assert detect_overlay(frame, profile)[0]


def test_detect_overlay_does_not_modify_frame(reference_image: np.ndarray, profile: VisionProfile) -> None:
    before = reference_image.copy()
    detect_overlay(reference_image, profile, debug=True)
    assert np.array_equal(before, reference_image)


def test_detect_overlay_raises_on_malformed_frame(profile: VisionProfile) -> None:
    with pytest.raises(FrameScanError):
        detect_overlay(np.zeros((10, 10), dtype=np.uint8), profile)


def test_scan_frame_reports_event(reference_image: np.ndarray, profile: VisionProfile) -> None:
    event = scan_frame(Frame(image=reference_image, timestamp=12.5, index=375), profile)
    assert event.timestamp == 12.5
    assert event.hit
    assert event.confidence > 0


def test_scan_frame_swallows_per_frame_faults(profile: VisionProfile) -> None:
    frame = Frame(image=np.zeros((10, 10, 2), dtype=np.uint8), timestamp=3.0, index=90)
    assert scan_frame(frame, profile) == DetectionEvent(timestamp=3.0, hit=False, confidence=0.0)


def test_scan_frame_treats_unexpected_errors_as_a_miss(monkeypatch, reference_image: np.ndarray, profile: VisionProfile) -> None:
    def broken(image, profile, debug=False):
        raise ZeroDivisionError("division by zero")

    monkeypatch.setattr(frame_scanner, "detect_overlay", broken)

    event = scan_frame(Frame(image=reference_image, timestamp=4.0, index=120), profile)
    assert event == DetectionEvent(timestamp=4.0, hit=False, confidence=0.0)

from __future__ import annotations

import cv2
import numpy as np
import pytest

import utils
from calibration import VisionProfile, calibrate

# OpenCV channel order
MENU_BGR = (49, 4, 14)
LIGHT_BGR = (139, 4, 50)
WHITE_BGR = (255, 255, 255)

REF_SIZE = (640, 360)
REF_BOX = (100, 50, 200, 200)


def draw_menu(image: np.ndarray, x: int, y: int, w: int, h: int, content: bool = True) -> np.ndarray:
    """Paints a purple menu panel with a selection bar and two lines of text."""
    cv2.rectangle(image, (x, y), (x + w - 1, y + h - 1), MENU_BGR, thickness=-1)
    if not content:
        return image
    bar_top = y + 2 * h // 5
    cv2.rectangle(image, (x + w // 20, bar_top), (x + w - w // 20 - 1, bar_top + h // 8), LIGHT_BGR, thickness=-1)
    for top in (y + h // 10, y + 3 * h // 4):
        cv2.rectangle(image, (x + w // 10, top), (x + w // 10 + w // 2, top + h // 25), WHITE_BGR, thickness=-1)
    return image


def blank(width: int, height: int) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


@pytest.fixture
def reference_image() -> np.ndarray:
    return draw_menu(blank(*REF_SIZE), *REF_BOX)


@pytest.fixture
def profile(reference_image: np.ndarray) -> VisionProfile:
    return calibrate(reference_image)


@pytest.fixture(autouse=True)
def restore_verbose(monkeypatch):
    """main --quiet flips the module-level flag; put it back after each test."""
    monkeypatch.setattr(utils, "VERBOSE", True)

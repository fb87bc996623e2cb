"""Shared fixtures: candidate factories, thresholds and synthetic card images."""

import cv2
import numpy as np
import pytest

from card_grid.types import Candidate, ThresholdParams


@pytest.fixture
def make_card():
    """Factory for candidates with card-like defaults (60x80, conf 0.9)."""
    def _make(id, x, y, w=60.0, h=80.0, conf=0.9, row=-1, col=-1):
        return Candidate(
            id=id, center_x=float(x), center_y=float(y), width=float(w), height=float(h),
            confidence=conf, grid_row=row, grid_column=col,
        )
    return _make


@pytest.fixture
def grid_cards(make_card):
    """24 candidates at x=100+col*120, y=100+row*140, uniform confidence 0.95."""
    return [
        make_card(row * 6 + col, 100 + col * 120, 100 + row * 140, conf=0.95)
        for row in range(4)
        for col in range(6)
    ]


@pytest.fixture
def card_thresholds():
    return ThresholdParams(
        min_area=1000, max_area=50000, min_width=30, min_height=40,
        aspect_ratio_min=0.6, aspect_ratio_max=1.8,
    )


@pytest.fixture
def loose_thresholds():
    return ThresholdParams(
        min_area=100, max_area=10000, min_width=10, min_height=10,
        aspect_ratio_min=0.5, aspect_ratio_max=2.0,
    )


@pytest.fixture
def card_grid_image():
    """820x680 black image with a 4x6 grid of 90x120 card outlines.

    Card (row, col) spans x 40+col*130 .. +90 and y 40+row*160 .. +120.
    """
    img = np.zeros((680, 820, 3), dtype=np.uint8)
    for row in range(4):
        for col in range(6):
            x = 40 + col * 130
            y = 40 + row * 160
            cv2.rectangle(img, (x, y), (x + 90, y + 120), (255, 255, 255), 3)
    return img

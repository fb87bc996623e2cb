"""Card rectangle validator and scorer.

Angles are expected folded into (-45, 45] by `geometry.min_area_rect`, so an
upright card arrives at 0 degrees and the 60-degree side of the diagonal
band only matters for unfolded input.
"""
from .types import OrientedRect, ThresholdParams


def normalized_size(rect: OrientedRect):
    """Return (width, height) with width <= height (portrait)."""
    return min(rect.size_a, rect.size_b), max(rect.size_a, rect.size_b)


def is_valid_card_rect(rect: OrientedRect, thresholds: ThresholdParams) -> bool:
    w, h = normalized_size(rect)

    if h <= 0 or w < thresholds.min_width or h < thresholds.min_height:
        return False

    ratio = w / h
    if ratio < thresholds.aspect_ratio_min or ratio > thresholds.aspect_ratio_max:
        return False

    # diagonal boxes are neither upright nor sideways cards
    angle = abs(rect.angle)
    if 30.0 < angle < 60.0:
        return False

    return True


def score_rect(rect: OrientedRect) -> float:
    confidence = 1.0

    angle = abs(rect.angle)
    if angle > 5.0:
        confidence *= 1.0 - angle / 90.0

    w, h = normalized_size(rect)
    ratio = w / h if h > 0 else 0.0
    if ratio < 0.5 or ratio > 0.8:
        confidence *= 0.9

    return min(1.0, max(0.5, confidence))

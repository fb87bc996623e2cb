"""Six-stage result filter plus the adaptive quota trimmer.

Every stage returns a new list; the input candidates are never modified.
Stage order and thresholds:

1. Size            area in [min_area, max_area], width/height floors
2. Aspect ratio    width/height in [aspect_ratio_min, aspect_ratio_max]
3. Bounds          box inside the image padded by 5 px
4. Outliers        median/MAD z-score > 3 on width or height (>= 10 cards)
5. Confidence      fixed floor of 0.5
6. Duplicates      centers closer than 0.3 x pair average size
"""
from typing import Callable, List, Optional, Tuple

import numpy as np

from .config import FILTER_PARAMS, MIN_CARDS_FOR_VALID_GRID, TOTAL_CARDS
from .diagnostics import DiagnosticsSink, ensure_sink
from .nms import by_confidence, remove_duplicates
from .types import Candidate, FilterResult, FilterStep, ThresholdParams


def upper_median(values: List[float]) -> float:
    return sorted(values)[len(values) // 2]


def filter_by_size(cards: List[Candidate], thresholds: ThresholdParams, sink: DiagnosticsSink) -> List[Candidate]:
    out = []
    for c in cards:
        ok_area = thresholds.min_area <= c.area <= thresholds.max_area
        ok_size = c.width >= thresholds.min_width and c.height >= thresholds.min_height
        if ok_area and ok_size:
            out.append(c)
        else:
            sink.debug(f"Card {c.id} filtered by size: area={c.area:.0f}, w={c.width:.0f}, h={c.height:.0f}")
    return out


def filter_by_aspect_ratio(cards: List[Candidate], thresholds: ThresholdParams, sink: DiagnosticsSink) -> List[Candidate]:
    out = []
    for c in cards:
        if thresholds.aspect_ratio_min <= c.aspect_ratio <= thresholds.aspect_ratio_max:
            out.append(c)
        else:
            sink.debug(f"Card {c.id} filtered by aspect ratio: {c.aspect_ratio:.2f}")
    return out


def filter_by_bounds(
    cards: List[Candidate],
    image_width: int,
    image_height: int,
    sink: DiagnosticsSink,
    margin: float = FILTER_PARAMS["bounds_margin"],
) -> List[Candidate]:
    out = []
    for c in cards:
        inside = (
            c.left >= -margin
            and c.top >= -margin
            and c.right <= image_width + margin
            and c.bottom <= image_height + margin
        )
        if inside:
            out.append(c)
        else:
            sink.debug(f"Card {c.id} filtered by bounds: position ({c.center_x:.0f}, {c.center_y:.0f})")
    return out


def filter_size_outliers(cards: List[Candidate], sink: DiagnosticsSink) -> List[Candidate]:
    if len(cards) < FILTER_PARAMS["outlier_min_cards"]:
        return list(cards)

    widths = [c.width for c in cards]
    heights = [c.height for c in cards]
    med_w = upper_median(widths)
    med_h = upper_median(heights)
    mad_w = upper_median([abs(w - med_w) for w in widths])
    mad_h = upper_median([abs(h - med_h) for h in heights])

    limit = FILTER_PARAMS["outlier_mad_threshold"]
    out = []
    for c in cards:
        z_w = abs(c.width - med_w) / mad_w if mad_w > 0 else 0.0
        z_h = abs(c.height - med_h) / mad_h if mad_h > 0 else 0.0
        if z_w > limit or z_h > limit:
            sink.debug(f"Card {c.id} identified as size outlier")
        else:
            out.append(c)
    return out


def filter_by_confidence(cards: List[Candidate], min_confidence: float, sink: DiagnosticsSink) -> List[Candidate]:
    out = []
    for c in cards:
        if c.confidence >= min_confidence:
            out.append(c)
        else:
            sink.debug(f"Card {c.id} filtered by confidence: {c.confidence:.2f}")
    return out


def filter_results(
    candidates: List[Candidate],
    thresholds: ThresholdParams,
    image_width: int,
    image_height: int,
    min_cards_for_valid_grid: int = MIN_CARDS_FOR_VALID_GRID,
    sink: Optional[DiagnosticsSink] = None,
) -> FilterResult:
    sink = ensure_sink(sink)
    sink.info(f"Starting filtering: {len(candidates)} initial detections")

    stages: List[Tuple[str, Callable[[List[Candidate]], List[Candidate]]]] = [
        ("Size Filter", lambda cs: filter_by_size(cs, thresholds, sink)),
        ("Aspect Ratio Filter", lambda cs: filter_by_aspect_ratio(cs, thresholds, sink)),
        ("Bounds Filter", lambda cs: filter_by_bounds(cs, image_width, image_height, sink)),
        ("Outlier Filter", lambda cs: filter_size_outliers(cs, sink)),
        # fixed floor, independent of DetectionConfig.min_confidence_threshold
        ("Confidence Filter", lambda cs: filter_by_confidence(cs, FILTER_PARAMS["min_confidence"], sink)),
        ("Duplicate Removal", lambda cs: remove_duplicates(cs)),
    ]

    current = [c for c in candidates if not c.removed]
    steps: List[FilterStep] = []
    for name, stage in stages:
        kept = stage(current)
        steps.append(FilterStep(name=name, cards_remaining=len(kept), cards_removed=len(current) - len(kept)))
        current = kept

    sink.info(f"Filtering complete: {len(current)} cards remaining (removed {len(candidates) - len(current)})")
    return FilterResult(
        filtered=current,
        original_count=len(candidates),
        steps=steps,
        is_valid=len(current) >= min_cards_for_valid_grid,
    )


def ensure_spatial_distribution(cards: List[Candidate], target_count: int) -> List[Candidate]:
    """Take the best cards per quadrant around the mean center, then the global top `target_count`."""
    if len(cards) <= target_count:
        return list(cards)

    mid_x = float(np.mean([c.center_x for c in cards]))
    mid_y = float(np.mean([c.center_y for c in cards]))

    quadrants: List[List[List[Candidate]]] = [[[], []], [[], []]]
    for c in cards:
        qx = 0 if c.center_x < mid_x else 1
        qy = 0 if c.center_y < mid_y else 1
        quadrants[qy][qx].append(c)

    per_quadrant = target_count // 4 + 2
    picked: List[Candidate] = []
    for row in quadrants:
        for quadrant in row:
            picked.extend(by_confidence(quadrant)[:per_quadrant])

    return by_confidence(picked)[:target_count]


def adaptive_filter(
    candidates: List[Candidate],
    target_count: int = TOTAL_CARDS,
    sink: Optional[DiagnosticsSink] = None,
) -> List[Candidate]:
    sink = ensure_sink(sink)

    if len(candidates) > target_count * 1.5:
        sink.info(f"Applying strict filtering: {len(candidates)} cards detected")
        strict = by_confidence(candidates)[:target_count + 4]
        return ensure_spatial_distribution(strict, target_count)

    if len(candidates) < target_count * 0.7:
        sink.info(f"Detection count low ({len(candidates)}), keeping all valid detections")

    return list(candidates)

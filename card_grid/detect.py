from typing import List, Optional, Tuple
import time
import cv2
import numpy as np

from .config import (
    CONNECTED_COMPONENT_CONFIDENCE,
    EDGE_PARAMS,
    LOW_YIELD_COUNT,
    OVERLAP_TOLERANCE,
    DetectionStrategy,
)
from .diagnostics import DiagnosticsSink, ensure_sink
from .geometry import _filter_by_area, approx_poly, find_contours, mean_intensity, min_area_rect, to_gray
from .nms import suppress_overlaps
from .shape import is_valid_card_rect, normalized_size, score_rect
from .types import Candidate, OrientedRect, ThresholdParams


def canny_thresholds(gray: np.ndarray, sigma: float = EDGE_PARAMS["canny_sigma"]) -> Tuple[float, float]:
    v = mean_intensity(gray)
    lower = max(0.0, (1.0 - sigma) * v)
    upper = min(255.0, (1.0 + sigma) * v)
    return lower, upper


def edge_map(gray: np.ndarray, lower: float, upper: float) -> np.ndarray:
    edges = cv2.Canny(gray, lower, upper, apertureSize=3, L2gradient=False)
    k = EDGE_PARAMS["close_kernel"]
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (k, k))
    return cv2.morphologyEx(edges, cv2.MORPH_CLOSE, kernel)


def rects_from_contours(contours: List[np.ndarray], thresholds: ThresholdParams) -> List[OrientedRect]:
    out: List[OrientedRect] = []
    for cnt in contours:
        if _filter_by_area(cnt, thresholds.min_area, thresholds.max_area) is None:
            continue

        poly = approx_poly(cnt, EDGE_PARAMS["poly_eps_ratio"])
        if not EDGE_PARAMS["min_vertices"] <= len(poly) <= EDGE_PARAMS["max_vertices"]:
            continue

        rect = min_area_rect(cnt)
        if is_valid_card_rect(rect, thresholds):
            out.append(rect)
    return out


def rects_to_candidates(rects: List[OrientedRect]) -> List[Candidate]:
    out: List[Candidate] = []
    for i, rect in enumerate(rects):
        w, h = normalized_size(rect)
        out.append(Candidate(
            id=i,
            center_x=rect.center_x,
            center_y=rect.center_y,
            width=w,
            height=h,
            confidence=score_rect(rect),
        ))
    return out


def _candidates_from_contours(
    contours: List[np.ndarray],
    thresholds: ThresholdParams,
    remove_overlapping: bool,
    sink: DiagnosticsSink,
) -> List[Candidate]:
    rects = rects_from_contours(contours, thresholds)
    sink.debug(f"Rectangle filtering - {len(rects)} rectangles found")
    cands = rects_to_candidates(rects)
    if not remove_overlapping:
        return cands
    kept = suppress_overlaps(cands, tolerance=OVERLAP_TOLERANCE)
    sink.debug(f"Removed {len(cands) - len(kept)} overlapping detections")
    return kept


def detect_card_borders(
    image: np.ndarray,
    thresholds: ThresholdParams,
    sink: Optional[DiagnosticsSink] = None,
    canny: Optional[Tuple[float, float]] = None,
    remove_overlapping: bool = True,
) -> List[Candidate]:
    """Edge + contour pipeline over a grayscale (or BGR) image.

    `canny` overrides the mean-intensity thresholds. Returns an empty list
    when nothing qualifies; it never raises for a blank image.
    """
    sink = ensure_sink(sink)
    t0 = time.perf_counter()

    gray = to_gray(image)
    lower, upper = canny if canny is not None else canny_thresholds(gray)
    sink.debug(f"Canny thresholds: lower={lower:.1f}, upper={upper:.1f}")

    edges = edge_map(gray, lower, upper)
    contours = find_contours(edges)
    sink.debug(f"Contour detection - {len(contours)} contours found")

    cards = _candidates_from_contours(contours, thresholds, remove_overlapping, sink)

    if len(cards) < LOW_YIELD_COUNT:
        relaxed = _candidates_from_contours(contours, thresholds.relaxed(), remove_overlapping, sink)
        if len(relaxed) > len(cards):
            sink.info(f"Low yield ({len(cards)}), relaxed thresholds found {len(relaxed)}")
            cards = relaxed

    ms = (time.perf_counter() - t0) * 1000.0
    sink.info(f"Border detection completed: {len(cards)} cards found in {ms:.0f}ms")
    return cards


def detect_using_connected_components(
    binary: np.ndarray,
    thresholds: ThresholdParams,
    sink: Optional[DiagnosticsSink] = None,
) -> List[Candidate]:
    sink = ensure_sink(sink)
    num, _, stats, centroids = cv2.connectedComponentsWithStats(binary, connectivity=8, ltype=cv2.CV_32S)

    out: List[Candidate] = []
    for i in range(1, num):  # 0 is background
        area = int(stats[i, cv2.CC_STAT_AREA])
        w = int(stats[i, cv2.CC_STAT_WIDTH])
        h = int(stats[i, cv2.CC_STAT_HEIGHT])
        if not thresholds.min_area <= area <= thresholds.max_area:
            continue
        if w < thresholds.min_width or h < thresholds.min_height:
            continue
        out.append(Candidate(
            id=len(out),
            center_x=float(centroids[i, 0]),
            center_y=float(centroids[i, 1]),
            width=float(w),
            height=float(h),
            confidence=CONNECTED_COMPONENT_CONFIDENCE,
        ))
    sink.debug(f"Connected components: {num - 1} regions, {len(out)} cards")
    return out


def detect_by_strategy(
    image: np.ndarray,
    thresholds: ThresholdParams,
    strategy: DetectionStrategy = DetectionStrategy.EDGE,
    sink: Optional[DiagnosticsSink] = None,
    **kwargs,
) -> List[Candidate]:
    sink = ensure_sink(sink)
    if strategy == DetectionStrategy.COLOR:
        sink.warning("Color detection not yet implemented, falling back to edge detection")
    elif strategy == DetectionStrategy.TEMPLATE:
        sink.warning("Template matching not yet implemented, falling back to edge detection")
    return detect_card_borders(image, thresholds, sink=sink, **kwargs)

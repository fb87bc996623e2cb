from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
import time

import cv2
import numpy as np

from .config import DetectionConfig, DetectionStrategy, GRID_COLUMNS, GRID_ROWS, MIN_CARDS_FOR_VALID_GRID
from .detect import detect_by_strategy
from .diagnostics import DiagnosticsSink, ensure_sink
from .filters import adaptive_filter, filter_results
from .grid import analyze_grid, map_to_grid, refine_grid_positions, resolve_conflicts
from .preprocess import adaptive_thresholds, fixed_thresholds, maybe_resize, preprocess_for_edges
from .types import Candidate
from .visualize import show_cards

ALGORITHM_NAMES = {
    DetectionStrategy.EDGE: "Canny Edge + Contour Analysis",
    DetectionStrategy.COLOR: "Color-based Detection",
    DetectionStrategy.TEMPLATE: "Template Matching",
}


@dataclass(frozen=True)
class DetectionMetadata:
    algorithm_used: str = ALGORITHM_NAMES[DetectionStrategy.EDGE]
    preprocessing_steps: List[str] = field(default_factory=list)
    detection_parameters: Dict[str, str] = field(default_factory=dict)
    quality_score: float = 0.0
    detected_edges: int = 0
    filtered_contours: int = 0
    grid_analysis_score: float = 0.0


@dataclass(frozen=True)
class DetectionResult:
    cards: List[Candidate]
    processing_time_ms: int
    image_width: int
    image_height: int
    is_successful: bool
    error_message: Optional[str] = None
    metadata: DetectionMetadata = field(default_factory=DetectionMetadata)
    rows: int = GRID_ROWS
    cols: int = GRID_COLUMNS

    def valid_cards(self) -> List[Candidate]:
        return [c for c in self.cards if not c.removed]

    @property
    def removed_count(self) -> int:
        return sum(1 for c in self.cards if c.removed)

    @property
    def average_confidence(self) -> float:
        return float(np.mean([c.confidence for c in self.cards])) if self.cards else 0.0

    @property
    def grid_completeness(self) -> float:
        return len(self.valid_cards()) / float(self.rows * self.cols)

    @property
    def is_grid_complete(self) -> bool:
        return len(self.valid_cards()) >= MIN_CARDS_FOR_VALID_GRID

    def cards_by_grid(self) -> List[List[Optional[Candidate]]]:
        grid: List[List[Optional[Candidate]]] = [[None] * self.cols for _ in range(self.rows)]
        for c in self.valid_cards():
            if c.has_valid_grid_position(self.rows, self.cols):
                grid[c.grid_row][c.grid_column] = c
        return grid

    def cards_by_confidence(self) -> List[Candidate]:
        return sorted(self.cards, key=lambda c: c.confidence, reverse=True)

    def with_card_removed(self, card_id: int) -> "DetectionResult":
        return replace(self, cards=[c.as_removed() if c.id == card_id else c for c in self.cards])

    def with_additional_cards(self, cards: List[Candidate]) -> "DetectionResult":
        return replace(self, cards=list(self.cards) + list(cards))

    def to_export_format(self) -> Dict[str, Any]:
        valid = self.valid_cards()
        return {
            "cardPositions": [c.to_simple_coordinate() for c in valid],
            "metadata": {
                "totalCards": len(valid),
                "gridRows": self.rows,
                "gridColumns": self.cols,
                "imageWidth": self.image_width,
                "imageHeight": self.image_height,
                "processingTimeMs": self.processing_time_ms,
                "averageConfidence": self.average_confidence,
                "timestamp": int(time.time() * 1000),
            },
        }

    @classmethod
    def success(cls, cards, processing_time_ms, image_width, image_height, metadata=None, rows=GRID_ROWS, cols=GRID_COLUMNS):
        return cls(
            cards=cards,
            processing_time_ms=processing_time_ms,
            image_width=image_width,
            image_height=image_height,
            is_successful=True,
            metadata=metadata or DetectionMetadata(),
            rows=rows,
            cols=cols,
        )

    @classmethod
    def failure(cls, error, processing_time_ms=0, image_width=0, image_height=0, partial_cards=None):
        return cls(
            cards=list(partial_cards or []),
            processing_time_ms=processing_time_ms,
            image_width=image_width,
            image_height=image_height,
            is_successful=False,
            error_message=error,
        )


def preprocessing_steps(config: DetectionConfig) -> List[str]:
    steps = []
    if config.max_image_width > 0 and config.max_image_height > 0:
        steps.append("Image Resizing")
    if config.enhance_contrast:
        steps.append("Contrast Enhancement (CLAHE)")
    if config.gaussian_blur_size > 0:
        steps.append(f"Gaussian Blur ({config.gaussian_blur_size}x{config.gaussian_blur_size})")
    steps.append("Grayscale Conversion")
    return steps


def quality_score(cards: List[Candidate], rows: int = GRID_ROWS, cols: int = GRID_COLUMNS) -> float:
    if not cards:
        return 0.0
    avg_conf = float(np.mean([c.confidence for c in cards]))
    completeness = len(cards) / float(rows * cols)
    return min(1.0, max(0.0, avg_conf * 0.6 + completeness * 0.4))


def grid_score(cards: List[Candidate], rows: int = GRID_ROWS, cols: int = GRID_COLUMNS) -> float:
    a = analyze_grid(cards, rows, cols)
    return min(1.0, max(0.0, a.completeness * 0.4 + a.row_coverage * 0.3 + a.column_coverage * 0.3))


def detect_cards(
    image_bgr: np.ndarray,
    config: Optional[DetectionConfig] = None,
    sink: Optional[DiagnosticsSink] = None,
    debug: bool = False,
) -> DetectionResult:
    """Full pass: detect -> filter -> trim -> grid -> refine, in original image coordinates.

    With `debug` the labelled cards are shown over the working image.
    """
    config = (config or DetectionConfig.default()).validate()
    sink = ensure_sink(sink)
    t0 = time.perf_counter()
    H0, W0 = image_bgr.shape[:2]
    rows, cols = config.expected_rows, config.expected_columns

    try:
        sink.info(f"Card detection started on {W0}x{H0} image")
        img, scale = image_bgr, 1.0
        # a zero limit disables resizing
        if config.max_image_width > 0 and config.max_image_height > 0:
            img, scale = maybe_resize(image_bgr, config.max_image_width, config.max_image_height)
        H, W = img.shape[:2]
        if scale != 1.0:
            sink.info(f"Image resized from {W0}x{H0} to {W}x{H}")

        if config.use_adaptive_size_filter:
            thresholds = adaptive_thresholds(W, H)
        else:
            thresholds = fixed_thresholds(config.min_card_area, config.max_card_area)
        sink.debug(f"Thresholds: {thresholds}")

        gray = preprocess_for_edges(img, config.gaussian_blur_size, config.enhance_contrast)
        canny = None
        if not config.use_adaptive_thresholds:
            canny = (config.canny_lower_threshold, config.canny_upper_threshold)
        detected = detect_by_strategy(
            gray, thresholds, config.strategy, sink=sink,
            canny=canny, remove_overlapping=config.remove_overlapping,
        )
        sink.debug(f"Initial detection - {len(detected)} cards found")

        filtered = filter_results(detected, thresholds, W, H, config.min_cards_for_valid_grid, sink=sink)
        cards = filtered.filtered
        if config.use_adaptive_size_filter:
            cards = adaptive_filter(cards, rows * cols, sink=sink)

        cards = map_to_grid(cards, rows, cols, config.min_cards_for_valid_grid, sink=sink)
        if config.refine_grid_positions:
            cards = resolve_conflicts(refine_grid_positions(cards, rows, cols, sink=sink), rows, cols, sink=sink)

        if debug:
            show_cards(img, cards, "Grid assignment")

        if scale != 1.0:
            cards = [c.scaled(W0 / float(W), H0 / float(H)) for c in cards]
    except (cv2.error, ValueError) as e:
        ms = int((time.perf_counter() - t0) * 1000)
        sink.error(f"Detection failed: {e}")
        return DetectionResult.failure(str(e), ms, W0, H0)

    ms = int((time.perf_counter() - t0) * 1000)
    metadata = DetectionMetadata(
        algorithm_used=ALGORITHM_NAMES[config.strategy],
        preprocessing_steps=preprocessing_steps(config),
        detection_parameters=config.parameters(),
        quality_score=quality_score(cards, rows, cols),
        detected_edges=len(detected),
        filtered_contours=filtered.total_removed,
        grid_analysis_score=grid_score(cards, rows, cols),
    )
    msg = f"Detection completed: {len(cards)} cards found in {ms}ms"
    if len(cards) >= config.min_cards_for_valid_grid:
        sink.info(msg)
    else:
        sink.warning(f"{msg} (below minimum threshold)")
    return DetectionResult.success(cards, ms, W0, H0, metadata, rows, cols)
